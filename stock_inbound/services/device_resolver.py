from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

from stock_inbound.config.loader import DEFAULT_SCORES
from stock_inbound.models.catalog import DeviceCatalogEntry, canonical_key

"""Device resolution: free-text device mention -> one catalog entry.

Both sides are normalized with `canonical_key` (upper case, alphanumerics only). Every
active catalog entry is scored by a table of named rules, tried in priority order; the
first rule that matches gives the entry its score:

| rule         | condition                                 | default score     |
|--------------|-------------------------------------------|-------------------|
| exact        | raw == key                                | 1000              |
| raw_prefix   | raw starts with key                       | 900 + len(key)    |
| key_prefix   | key starts with raw                       | 700 + len(raw)    |
| pad3         | <letters><digits>, digits zero-padded to 3 | 850              |
| trim3        | <letters><digits>, digits cut to 3        | 840               |
| pad4         | <letters><digits>, digits zero-padded to 4 | 830              |

The highest positive score wins; on equal scores the earlier catalog entry wins (the
store returns the catalog ordered by canonical name). No positive score means the device
is not recognized. Scores come from configuration (`resolver.scores`) so vendor naming
conventions can be re-tuned without touching the algorithm.
"""

__all__ = [
    "Resolution",
    "ScoringRule",
    "build_rules",
    "DeviceResolver",
]

logger = logging.getLogger(__name__)

_SUFFIX_RE = re.compile(r"^([A-Z]+)(\d+)$")

RuleFn = Callable[[str, str], int | None]


@dataclass(frozen=True)
class ScoringRule:
    name: str
    score: RuleFn  # (normalized raw, catalog key) -> score or None


@dataclass(frozen=True)
class Resolution:
    entry: DeviceCatalogEntry
    score: int
    rule: str


def _numeric_variants(raw: str) -> dict[str, str] | None:
    match = _SUFFIX_RE.match(raw)
    if not match:
        return None
    letters, digits = match.groups()
    number = str(int(digits))
    return {
        "pad3": letters + number.zfill(3),
        "trim3": letters + digits[:3],
        "pad4": letters + number.zfill(4),
    }


def build_rules(scores: Mapping[str, int] | None = None) -> list[ScoringRule]:
    """Scoring rules in priority order, using `scores` over the defaults."""
    table = dict(DEFAULT_SCORES)
    if scores:
        table.update(scores)

    def exact(raw: str, key: str) -> int | None:
        return table["exact"] if raw == key else None

    def raw_prefix(raw: str, key: str) -> int | None:
        return table["raw_prefix"] + len(key) if raw.startswith(key) else None

    def variant(name: str) -> RuleFn:
        def rule(raw: str, key: str) -> int | None:
            variants = _numeric_variants(raw)
            return table[name] if variants and variants[name] == key else None
        return rule

    def key_prefix(raw: str, key: str) -> int | None:
        return table["key_prefix"] + len(raw) if key.startswith(raw) else None

    return [
        ScoringRule("exact", exact),
        ScoringRule("raw_prefix", raw_prefix),
        ScoringRule("key_prefix", key_prefix),
        ScoringRule("pad3", variant("pad3")),
        ScoringRule("trim3", variant("trim3")),
        ScoringRule("pad4", variant("pad4")),
    ]


class DeviceResolver:
    """Resolves raw device text against the active entries of a catalog.

    Results are memoized per raw text; the catalog is immutable for the resolver's
    lifetime, so resolution is deterministic.
    """

    def __init__(
        self,
        catalog: Iterable[DeviceCatalogEntry],
        rules: Sequence[ScoringRule] | None = None,
    ) -> None:
        self.entries = [e for e in catalog if e.active and e.canonical_key]
        self.rules = list(rules) if rules is not None else build_rules()
        self._cache: dict[str, Resolution | None] = {}

    def score(self, raw: str, key: str) -> tuple[int, str | None]:
        """Score of one normalized raw text against one catalog key (first matching rule)."""
        for rule in self.rules:
            value = rule.score(raw, key)
            if value is not None:
                return value, rule.name
        return 0, None

    def explain(self, raw_text: str) -> Resolution | None:
        """Best-scoring active entry for `raw_text` with the rule that matched.

        Both sides are compared as canonical keys (upper case, alphanumerics only). The
        strictly highest positive score wins; the first entry keeps a tie.
        """
        raw = canonical_key(raw_text)
        if not raw:
            return None
        if raw in self._cache:
            return self._cache[raw]

        best: Resolution | None = None
        for entry in self.entries:
            value, rule = self.score(raw, entry.canonical_key)
            if rule is None or value <= 0:
                continue
            if best is None or value > best.score:
                best = Resolution(entry=entry, score=value, rule=rule)

        if best is None:
            logger.debug("device not recognized: %r", raw_text)
        else:
            logger.debug(
                "device %r -> %s (rule=%s score=%d)", raw_text, best.entry.display_name, best.rule, best.score
            )
        self._cache[raw] = best
        return best

    def resolve(self, raw_text: str) -> DeviceCatalogEntry | None:
        """Catalog entry for raw device text.

        Args:
            raw_text: device cell, hint or master box prefix as read from the sheet

        Returns:
            the matching active entry, or None when no rule scores (never guessed)
        """
        resolution = self.explain(raw_text)
        return resolution.entry if resolution else None

    def display_name(self, raw_text: str) -> str | None:
        entry = self.resolve(raw_text)
        return entry.display_name if entry else None

    def entry_for_display(self, display_name: str) -> DeviceCatalogEntry | None:
        """First active entry rendering as `display_name`."""
        for entry in self.entries:
            if entry.display_name == display_name:
                return entry
        return None
