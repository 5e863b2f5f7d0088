"""
Review identity keys, duplicate detection and merging.

Two records describe the same review when their normalized outlet and
critic match within a show. There is no fuzzy matching: the only heuristic
beyond the alias table is CriticRoster's outlet-scoped token-prefix rule
for truncated bylines ("Jesse" at nytimes -> "jesse-green").
"""

from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .aliases import UNKNOWN_ID
from .cascade import tier_rank
from .normalize import Normalizer, canonical_url

KEY_SEPARATOR = "|"

TEXT_FIELDS = ("raw_text", "cleaned_text", "content_tier")
SCORE_FIELDS = (
    "score", "score_source", "confidence", "needs_review", "review_reason",
    "model_scores", "ensemble", "scoring_version",
)
METADATA_FIELDS = (
    "outlet_name", "outlet_tier", "critic_name", "publish_date", "explicit_rating",
    "aggregator_signal", "manual_override",
)


def _identity(outlet_raw, critic_raw, normalizer: Normalizer) -> Tuple[str, str]:
    outlet, critic = normalizer.strip_critic_from_outlet(outlet_raw, critic_raw)
    return normalizer.normalize_outlet(outlet), normalizer.normalize_critic(critic)


def generate_key(outlet_raw, critic_raw, normalizer: Optional[Normalizer] = None) -> str:
    """Canonical "outlet|critic" key; spelling variants of one pair give one key."""
    normalizer = normalizer or Normalizer()
    outlet_id, critic_id = _identity(outlet_raw, critic_raw, normalizer)
    return f"{outlet_id}{KEY_SEPARATOR}{critic_id}"


def record_key(record: Dict[str, Any], normalizer: Optional[Normalizer] = None) -> str:
    if record.get("outlet_id") and record.get("critic_id"):
        return f"{record['outlet_id']}{KEY_SEPARATOR}{record['critic_id']}"
    return generate_key(
        record.get("outlet_name") or record.get("outlet"),
        record.get("critic_name") or record.get("critic"),
        normalizer,
    )


def are_identical(a: Dict[str, Any], b: Dict[str, Any], normalizer: Optional[Normalizer] = None) -> bool:
    normalizer = normalizer or Normalizer()
    return record_key(a, normalizer) == record_key(b, normalizer)


class CriticRoster:
    """
    Critics already known at each outlet.

    resolve() collapses an incoming critic id onto a known one at the same
    outlet when the incoming tokens are a strict prefix of exactly one known
    critic's tokens. Ambiguous prefixes and other outlets are never touched.
    """

    def __init__(self):
        self._known: Dict[str, Set[str]] = defaultdict(set)

    def add(self, outlet_id: str, critic_id: str):
        if critic_id and critic_id != UNKNOWN_ID:
            self._known[outlet_id].add(critic_id)

    def known(self, outlet_id: str) -> Set[str]:
        return set(self._known.get(outlet_id, ()))

    def resolve(self, outlet_id: str, critic_id: str) -> str:
        if not critic_id or critic_id == UNKNOWN_ID:
            return critic_id
        tokens = critic_id.split("-")
        matches = [
            known for known in self._known.get(outlet_id, ())
            if known != critic_id
            and len(known.split("-")) > len(tokens)
            and known.split("-")[: len(tokens)] == tokens
        ]
        if len(matches) == 1:
            return matches[0]
        return critic_id


def best_url(a: Optional[str], b: Optional[str]) -> Optional[str]:
    """A valid absolute URL beats a missing or malformed one; then the longer wins."""
    a_ok, b_ok = canonical_url(a) is not None, canonical_url(b) is not None
    if a_ok != b_ok:
        return a if a_ok else b
    if not a:
        return b or a
    if not b:
        return a
    return b if len(b) > len(a) else a


def _text_len(record: Dict[str, Any]) -> int:
    text = record.get("cleaned_text") or record.get("raw_text") or ""
    return len(text)


def _present(value) -> bool:
    return value is not None and value != "" and value != {} and value != []


def merge_reviews(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fold an incoming record for the same review into an existing one.

    Never downgrades: the longer text wins, existing metadata is kept when both
    sides have it, and an assigned score is only replaced by one from a
    strictly higher cascade tier.
    """
    merged = dict(existing)

    if _text_len(incoming) > _text_len(existing):
        for f in TEXT_FIELDS:
            if f in incoming:
                merged[f] = incoming[f]
        # The stored score was judged on the old text
        merged["scoring_version"] = None

    excerpts = dict(incoming.get("excerpts") or {})
    excerpts.update({k: v for k, v in (existing.get("excerpts") or {}).items() if _present(v)})
    if excerpts:
        merged["excerpts"] = excerpts

    for f in METADATA_FIELDS:
        if not _present(merged.get(f)) and _present(incoming.get(f)):
            merged[f] = incoming[f]

    sources = list(OrderedDict.fromkeys([*(existing.get("sources") or []), *(incoming.get("sources") or [])]))
    if sources:
        merged["sources"] = sources

    url = best_url(existing.get("url"), incoming.get("url"))
    if url is not None:
        merged["url"] = url

    existing_scored = existing.get("score") is not None
    incoming_scored = incoming.get("score") is not None
    if incoming_scored and (
        not existing_scored
        or tier_rank(incoming.get("score_source")) > tier_rank(existing.get("score_source"))
    ):
        for f in SCORE_FIELDS:
            if f in incoming:
                merged[f] = incoming[f]

    return merged


@dataclass
class DedupeReport:
    records: List[Dict[str, Any]] = field(default_factory=list)
    duplicates: Dict[str, int] = field(default_factory=dict)
    collapsed: List[Tuple[str, str, str]] = field(default_factory=list)
    rejected: List[Tuple[Dict[str, Any], str]] = field(default_factory=list)


def dedupe_records(
    records: Iterable[Dict[str, Any]],
    normalizer: Optional[Normalizer] = None,
    known: Iterable[Tuple[Any, str, str]] = (),
) -> DedupeReport:
    """
    Resolve identities for a batch of raw records and fold duplicates.

    Each returned record carries show_id, outlet_id and critic_id. Duplicate
    counts are keyed by "show_id:outlet|critic"; collapsed lists
    (outlet_id, from_critic, to_critic) for every prefix collapse applied.
    Two records for one key from the same source are not merged: the later
    one is rejected, since one source cannot review the same show twice.

    `known` holds (show_id, outlet_id, critic_id) keys already stored, so a
    truncated byline also collapses onto a critic from an earlier run.
    """
    normalizer = normalizer or Normalizer()
    resolved = []
    rosters: Dict[str, CriticRoster] = defaultdict(CriticRoster)
    for show_id, outlet_id, critic_id in known:
        rosters[show_id].add(outlet_id, critic_id)

    for raw in records:
        record = dict(raw)
        if not (record.get("outlet_id") and record.get("critic_id")):
            outlet, critic = normalizer.strip_critic_from_outlet(
                record.get("outlet_name") or record.get("outlet"),
                record.get("critic_name") or record.get("critic"),
            )
            record["outlet_id"] = normalizer.normalize_outlet(outlet)
            record["critic_id"] = normalizer.normalize_critic(critic)
            record["outlet_name"] = outlet or normalizer.outlet_display_name(record["outlet_id"])
            if not record.get("critic_name") and critic:
                record["critic_name"] = critic
        if record.get("outlet_tier") is None:
            record["outlet_tier"] = normalizer.outlet_tier(record["outlet_id"])
        record.pop("outlet", None)
        record.pop("critic", None)
        rosters[record.get("show_id")].add(record["outlet_id"], record["critic_id"])
        resolved.append(record)

    report = DedupeReport()
    groups: "OrderedDict[Tuple[Any, str], Dict[str, Any]]" = OrderedDict()
    for record in resolved:
        roster = rosters[record.get("show_id")]
        critic_id = roster.resolve(record["outlet_id"], record["critic_id"])
        if critic_id != record["critic_id"]:
            report.collapsed.append((record["outlet_id"], record["critic_id"], critic_id))
            record["critic_id"] = critic_id
        key = f"{record['outlet_id']}{KEY_SEPARATOR}{critic_id}"
        group_key = (record.get("show_id"), key)
        label = f"{record.get('show_id')}:{key}"
        if group_key in groups:
            clash = set(groups[group_key].get("sources") or []) & set(record.get("sources") or [])
            if clash:
                report.rejected.append(
                    (record, f"duplicate key {label} from source {', '.join(sorted(clash))}")
                )
                continue
            groups[group_key] = merge_reviews(groups[group_key], record)
            report.duplicates[label] = report.duplicates.get(label, 1) + 1
        else:
            groups[group_key] = record

    report.records = list(groups.values())
    return report
