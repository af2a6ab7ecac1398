from __future__ import annotations

from typing import List


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert / delete / substitute, each costs 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    # keep the shorter string on the inner loop
    if len(a) < len(b):
        a, b = b, a
    prev: List[int] = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                cur[j] = prev[j - 1]
            else:
                cur[j] = 1 + min(prev[j],      # deletion
                                 cur[j - 1],   # insertion
                                 prev[j - 1])  # substitution
        prev = cur
    return prev[-1]


def similarity(a: str, b: str) -> float:
    """
    Normalized score in [0, 1]: ``1 - distance / max(len)``, case-insensitive.
    An exact (case-folded) match is always 1.0.
    """
    a, b = a.lower(), b.lower()
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest
