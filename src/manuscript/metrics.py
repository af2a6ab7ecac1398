# src/manuscript/metrics.py
"""Chapter statistics shown in the editor's status bar."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from .dialogue import detect_dialogues
from .models import DialogueFormats

# a sentence is any run of text closed by terminal punctuation (or the end of the text)
_SENTENCE = re.compile(r"[^.!?…]*[^\s.!?…][^.!?…]*(?:[.!?…]+|$)")


@dataclass(frozen=True, slots=True)
class ChapterMetrics:
    word_count: int = 0
    character_count: int = 0              # whitespace excluded
    character_count_with_spaces: int = 0
    paragraph_count: int = 0
    sentence_count: int = 0
    dialogue_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def compute_metrics(content: str, dialogue_formats: Optional[DialogueFormats] = None) -> ChapterMetrics:
    trimmed = content.strip()
    if not trimmed:
        # whitespace still counts toward the raw length, except the lone newline
        # an empty editable surface reports
        with_spaces = 0 if content in ("", "\n") else len(content)
        return ChapterMetrics(character_count_with_spaces=with_spaces)

    paragraphs = [line for line in content.split("\n") if line.strip()]
    sentences = sum(1 for p in paragraphs for _ in _SENTENCE.finditer(p))
    return ChapterMetrics(
        word_count=len(trimmed.split()),
        character_count=len("".join(trimmed.split())),
        character_count_with_spaces=len(content),
        paragraph_count=len(paragraphs),
        sentence_count=sentences,
        dialogue_count=len(detect_dialogues(content, dialogue_formats)),
    )
