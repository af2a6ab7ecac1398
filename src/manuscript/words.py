from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

# letters and digits (any script), plus hyphen and apostrophe inside names
_WORD = re.compile(r"(?:[^\W_]|['-])+")


@dataclass(frozen=True, slots=True)
class Word:
    text: str
    start: int
    end: int


def extract_words(text: str) -> List[Word]:
    """Tokenize ``text`` into words with their ``[start, end)`` offsets."""
    return [Word(m.group(0), m.start(), m.end()) for m in _WORD.finditer(text or "")]
