"""Heuristic attribution of windows to tracked processes.

Window titles reported by the OS do not always equal the titles we recorded
at launch: they can be truncated, decorated, mis-decoded (mojibake) or have
their non-ASCII characters replaced. Each tier below is a pure predicate over
``(known_title, candidate_title)``; ``WindowMatcher`` tries them in order and
reports which one succeeded.
"""

import logging
import re
import unicodedata
from typing import Callable, Collection, Iterable, Sequence

from gamewatch.models import MatchResult, MatchTier, TrackedProcess, WindowSnapshotEntry

logger = logging.getLogger(__name__)

TitlePredicate = Callable[[str, str], bool]

MIN_ASCII_LENGTH = 3
_LEGACY_CODECS = ("cp1252", "latin-1")
_NON_PRINTABLE_ASCII = re.compile(r"[^\x20-\x7e]+")


def exact_match(known: str, candidate: str) -> bool:
    return known == candidate


def contains_match(known: str, candidate: str) -> bool:
    known, candidate = known.strip(), candidate.strip()
    if not known or not candidate:
        return False
    return known in candidate or candidate in known


def byte_forms(title: str) -> list[bytes]:
    """
    Byte buffers a title may have come from.

    The UTF-8 encoding of the normalised title, plus its encoding through the
    single-byte codecs a mis-decoded UTF-8 title would round-trip through.
    """
    text = unicodedata.normalize("NFC", title.strip())
    forms = [text.encode("utf-8", errors="surrogatepass")]
    for codec in _LEGACY_CODECS:
        try:
            encoded = text.encode(codec)
        except UnicodeEncodeError:
            continue
        if encoded not in forms:
            forms.append(encoded)
    return [form for form in forms if form]


def bytes_match(known: str, candidate: str) -> bool:
    candidate_forms = byte_forms(candidate)
    for k in byte_forms(known):
        for c in candidate_forms:
            if k == c or k in c or c in k:
                return True
    return False


def ascii_subset(title: str) -> str:
    """Keep printable ASCII only, collapsing the gaps into single spaces."""
    return " ".join(_NON_PRINTABLE_ASCII.sub(" ", title).split())


def ascii_squeezed(title: str) -> str:
    """Keep printable ASCII only, closing up the gaps left by removed characters."""
    return " ".join(_NON_PRINTABLE_ASCII.sub("", title).split())


def ascii_forms(title: str) -> list[str]:
    forms = []
    for form in (ascii_subset(title), ascii_squeezed(title)):
        if form and form not in forms:
            forms.append(form)
    return forms


def ascii_match(known: str, candidate: str) -> bool:
    """
    Compare the ASCII leftovers of both titles.

    Non-ASCII characters may have been replaced by a separator or dropped
    entirely, so ``"My游戏Game"`` is tried both as ``"My Game"`` and
    ``"MyGame"`` against both forms of the candidate.
    """
    candidate_forms = ascii_forms(candidate)
    for k in ascii_forms(known):
        if len(k) < MIN_ASCII_LENGTH:
            continue
        if any(k in c for c in candidate_forms):
            return True
    return False


DEFAULT_TIERS: tuple[tuple[MatchTier, TitlePredicate], ...] = (
    (MatchTier.EXACT, exact_match),
    (MatchTier.CONTAINS, contains_match),
    (MatchTier.BYTES, bytes_match),
    (MatchTier.ASCII, ascii_match),
)


def known_titles(process: TrackedProcess, extra_titles: Iterable[str] = ()) -> list[str]:
    """Titles to match on: fresh OS titles first, then the cached ones."""
    titles: list[str] = []
    for title in list(extra_titles) + list(process.window_titles):
        if title and title not in titles:
            titles.append(title)
    return titles


class WindowMatcher:
    """Pick the window that best belongs to a tracked process."""

    def __init__(self, tiers: Sequence[tuple[MatchTier, TitlePredicate]] = DEFAULT_TIERS) -> None:
        self._tiers = tuple(tiers)

    @property
    def tiers(self) -> tuple[MatchTier, ...]:
        return tuple(tier for tier, _ in self._tiers)

    def match(
        self,
        process: TrackedProcess,
        candidates: Sequence[WindowSnapshotEntry],
        exclude_ids: Collection[str] = frozenset(),
        *,
        extra_titles: Iterable[str] = (),
        owns_focus: bool = False,
    ) -> MatchResult | None:
        """
        Match ``process`` against the unclaimed windows in ``candidates``.

        Args:
            process: The tracked process to find a window for.
            candidates: Windows in OS enumeration order.
            exclude_ids: Window ids already claimed by other processes.
            extra_titles: Freshly queried titles, tried before the cached ones.
            owns_focus: The process holds input focus; enables the sole
                remaining window fallback.

        Returns:
            The winning window with its tier, or None.
        """
        available = [w for w in candidates if w.id not in exclude_ids]
        titles = known_titles(process, extra_titles)

        if titles:
            for tier, predicate in self._tiers:
                hits = [w for w in available if any(predicate(t, w.title) for t in titles)]
                if not hits:
                    continue
                if len(hits) > 1:
                    logger.warning(
                        "%d windows tie for %s at tier %s: %s; using the first",
                        len(hits),
                        process.label,
                        tier.value,
                        [w.title for w in hits],
                    )
                return MatchResult(window=hits[0], tier=tier, tied=len(hits))

        if owns_focus and len(available) == 1:
            logger.debug("Attributing sole window %r to focused %s", available[0].title, process.label)
            return MatchResult(window=available[0], tier=MatchTier.SOLE)

        return None
