# src/manuscript/autolink.py
"""
Fuzzy word-to-entity linking with a persistent blacklist.

``rescan`` is the pure algorithm; ``AutoLinker`` decides when it runs:
after a quiet period following an edit, shortly after a space keystroke, and
right away when the mentioned entities or the blacklist change.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import config as CFG
from .fuzzy import similarity
from .models import Entity, EntityLink, EntityType, MentionedEntities
from .scheduling import DeferredTask, Scheduler
from .words import Word, extract_words

log = logging.getLogger(__name__)


class Blacklist:
    """Ordered set of entity ids excluded from auto-linking; persisted by the host."""

    def __init__(self, ids: Iterable[str] = (), on_change: Optional[Callable[[List[str]], None]] = None) -> None:
        self._ids: Dict[str, None] = dict.fromkeys(str(i) for i in ids)
        self._on_change = on_change

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def to_list(self) -> List[str]:
        return list(self._ids)

    def add(self, entity_id: str) -> bool:
        if entity_id in self._ids:
            return False
        self._ids[entity_id] = None
        self._notify()
        return True

    def remove(self, entity_id: str) -> bool:
        if entity_id not in self._ids:
            return False
        del self._ids[entity_id]
        self._notify()
        return True

    def replace(self, ids: Iterable[str]) -> None:
        self._ids = dict.fromkeys(str(i) for i in ids)

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.to_list())
        except Exception:
            log.exception("blacklist change callback failed")


def _still_valid(link: EntityLink, content: str) -> bool:
    return link.end_offset <= len(content) and content[link.start_offset:link.end_offset] == link.text


def _gap_is_space(content: str, a: Word, b: Word) -> bool:
    gap = content[a.end:b.start]
    return bool(gap) and gap.isspace()


def rescan(
    content: str,
    mentioned: MentionedEntities,
    blacklist: Iterable[str] = (),
    threshold: float = CFG.AUTOLINK_THRESHOLD,
    previous: Sequence[EntityLink] = (),
) -> List[EntityLink]:
    """
    Link words of ``content`` to mentioned entities.

    Each token is compared with every non-blacklisted entity name using
    ``similarity``; the best score at or above ``threshold`` wins (an exact
    case-insensitive match always wins). Multi-word names match a run of
    whitespace-separated tokens word by word and score the run by its mean.
    Ties keep the entity met first (character, region, item, faction, race,
    then list order); at equal score a longer run wins.

    Links from ``previous`` whose text is unchanged at their offsets are kept
    as they are and their tokens are not matched again.
    """
    banned = set(blacklist)
    mentioned_ids = {e.id for e, _ in mentioned.iter_all()}
    words = extract_words(content)

    kept: List[EntityLink] = []
    for link in sorted(previous, key=lambda l: l.start_offset):
        if link.entity.id in banned or link.entity.id not in mentioned_ids:
            continue
        if not _still_valid(link, content):
            continue
        if kept and link.start_offset < kept[-1].end_offset:
            continue
        kept.append(link)

    covered = [any(l.start_offset <= w.start and w.end <= l.end_offset for l in kept) for w in words]

    candidates: List[Tuple[Entity, EntityType, List[str]]] = []
    for entity, etype in mentioned.iter_all():
        if entity.id in banned:
            continue
        parts = [w.text for w in extract_words(entity.name)]
        if parts:
            candidates.append((entity, etype, parts))

    fresh: List[EntityLink] = []
    i = 0
    while i < len(words):
        if covered[i]:
            i += 1
            continue
        best: Optional[Tuple[float, int, Entity, EntityType]] = None
        for entity, etype, parts in candidates:
            k = len(parts)
            run = words[i:i + k]
            if len(run) < k or any(covered[i:i + k]):
                continue
            if any(not _gap_is_space(content, a, b) for a, b in zip(run, run[1:])):
                continue
            scores = [similarity(w.text, p) for w, p in zip(run, parts)]
            if any(s < threshold and s < 1.0 for s in scores):
                continue
            score = sum(scores) / k
            if best is None or (score, k) > (best[0], best[1]):
                best = (score, k, entity, etype)
        if best is None:
            i += 1
            continue
        _, k, entity, etype = best
        start, end = words[i].start, words[i + k - 1].end
        fresh.append(EntityLink(content[start:end], entity, etype, start, end))
        i += k

    links = kept + fresh
    links.sort(key=lambda l: l.start_offset)
    return links


class AutoLinker:
    """
    Keeps the active entity links of the buffer up to date.

    ``content`` is read through a callable at rescan time so a deferred
    rescan always sees the latest buffer.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        content: Callable[[], str],
        *,
        entities: Optional[MentionedEntities] = None,
        blacklist: Iterable[str] = (),
        threshold: float = CFG.AUTOLINK_THRESHOLD,
        debounce_ms: int = CFG.AUTOLINK_DEBOUNCE_MS,
        space_delay_ms: int = CFG.AUTOLINK_SPACE_DELAY_MS,
        on_blacklist_change: Optional[Callable[[List[str]], None]] = None,
        enabled: bool = True,
    ) -> None:
        self._content = content
        self.entities = entities or MentionedEntities()
        self.blacklist = Blacklist(blacklist, on_change=on_blacklist_change)
        self.threshold = float(threshold)
        self.space_delay_ms = int(space_delay_ms)
        self.enabled = enabled
        self.links: List[EntityLink] = []
        self._task = DeferredTask(scheduler, debounce_ms, self.refresh, name="auto-link rescan")

    # ------------- triggers -------------

    def on_edit(self) -> None:
        if self.enabled:
            self._task.schedule()

    def on_key(self, key: str) -> None:
        if self.enabled and key == " ":
            self._task.schedule(delay_ms=self.space_delay_ms)

    def set_entities(self, entities: MentionedEntities) -> None:
        self.entities = entities
        self.refresh()

    def set_blacklist(self, ids: Iterable[str]) -> None:
        self.blacklist.replace(ids)
        self.refresh()

    def add_to_blacklist(self, entity_id: str) -> None:
        if self.blacklist.add(entity_id):
            self.links = [l for l in self.links if l.entity.id != entity_id]
            log.info("entity %s blacklisted from auto-linking", entity_id)

    def remove_from_blacklist(self, entity_id: str) -> None:
        if self.blacklist.remove(entity_id):
            log.info("entity %s allowed to auto-link again", entity_id)
            self.refresh()

    # ------------- work -------------

    def refresh(self) -> List[EntityLink]:
        self._task.cancel()
        if not self.enabled:
            return self.links
        self.links = rescan(
            self._content(),
            self.entities,
            self.blacklist.to_list(),
            self.threshold,
            previous=self.links,
        )
        return self.links

    def links_at(self, offset: int) -> Optional[EntityLink]:
        return next((l for l in self.links if l.start_offset <= offset < l.end_offset), None)

    def cancel(self) -> None:
        self._task.cancel()
