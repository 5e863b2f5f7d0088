"""
Batch stages: ingest, score, corroborate, guard.

Each stage owns a disjoint set of record fields. Ingestion writes identity
and text fields; scoring writes the judgment and final-score fields and the
scoring version marker. Every stage supports a dry run that reports what
would change without touching the store.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .barrier import gather_with_timeout
from .cascade import EXPLICIT_RATING, MANUAL_OVERRIDE, record_label, resolve_score, scored_text
from .config import Settings
from .corroboration import Change, Observation, ValidatedChange, validate_change
from .database import ReviewStore
from .dedupe import dedupe_records, merge_reviews
from .ensemble import ModelScore, combine
from .errors import ValidationError
from .guardian import Conflict, detect_conflict, should_block
from .logger import get_logger
from .normalize import Normalizer
from .schema import validate_review
from .textclean import classify_content_tier, clean_review_text


@dataclass
class ValidationSummary:
    """What an ingest run accepted, merged and rejected."""

    accepted: int = 0
    statuses: Dict[str, int] = field(default_factory=dict)
    duplicates: Dict[str, int] = field(default_factory=dict)
    collapsed: List[Dict[str, str]] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    def reject(self, key: str, errors: List[str]):
        self.rejected.append({"key": key, "errors": list(errors)})

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "statuses": dict(self.statuses),
            "duplicates": dict(self.duplicates),
            "collapsed": list(self.collapsed),
            "rejected": list(self.rejected),
            "dry_run": self.dry_run,
        }


def prepare_text(record: Dict[str, Any]) -> Dict[str, Any]:
    """Fill cleaned_text and content_tier from raw_text when missing."""
    if record.get("raw_text") and not record.get("cleaned_text"):
        record["cleaned_text"] = clean_review_text(record["raw_text"])
    if not record.get("content_tier"):
        tier, _reason, _words = classify_content_tier(
            record.get("cleaned_text"), (record.get("excerpts") or {}).values()
        )
        record["content_tier"] = tier
    return record


def ingest_records(
    raw_records: Iterable[Dict[str, Any]],
    store: Optional[ReviewStore],
    normalizer: Optional[Normalizer] = None,
    dry_run: bool = False,
) -> ValidationSummary:
    """
    Normalize, deduplicate, validate and store a batch of raw review records.

    Invalid records are rejected whole and listed in the summary; the rest of
    the batch is unaffected.
    """
    logger = get_logger()
    normalizer = normalizer or Normalizer()
    summary = ValidationSummary(dry_run=dry_run)

    raw_records = list(raw_records)
    known = []
    if store is not None:
        for show_id in OrderedDict.fromkeys(r.get("show_id") for r in raw_records):
            known.extend(store.critic_keys(show_id))

    report = dedupe_records(raw_records, normalizer, known=known)
    summary.duplicates = report.duplicates
    summary.collapsed = [
        {"outlet": outlet, "from": src, "to": dst} for outlet, src, dst in report.collapsed
    ]
    for record, reason in report.rejected:
        summary.reject(record_label(record), [reason])
        logger.record_rejected()

    for record in report.records:
        key = record_label(record)
        prepare_text(record)
        errors = validate_review(record)
        if errors:
            summary.reject(key, errors)
            logger.record_rejected()
            logger.warning("Rejected record", key=key, errors=errors)
            continue

        existing = store.get(*ReviewStore.key_of(record)) if store is not None else None
        merged = merge_reviews(existing, record) if existing else record

        if dry_run or store is None:
            status = "new" if existing is None else "would-update"
        else:
            try:
                status = store.put(merged)
            except ValidationError as e:
                summary.reject(key, e.errors)
                logger.record_rejected()
                continue
        summary.accepted += 1
        summary.statuses[status] = summary.statuses.get(status, 0) + 1
        logger.debug("Ingested record", key=key, status=status)

    logger.info(
        "Ingest complete",
        accepted=summary.accepted,
        rejected=len(summary.rejected),
        duplicates=len(summary.duplicates),
        dry_run=dry_run,
    )
    return summary


def _judgment_to_dict(judgment: ModelScore) -> Dict[str, Any]:
    return {
        "model": judgment.model,
        "bucket": judgment.bucket.value if judgment.bucket else None,
        "score": judgment.score,
        "confidence": judgment.confidence,
        "error": judgment.error,
    }


async def run_models(record: Dict[str, Any], scorers: Sequence, settings: Settings) -> List[ModelScore]:
    """
    Call every scorer for one record and wait for all of them.

    A slot that times out or raises comes back as a ModelScore error marker.
    """
    text = scored_text(record)
    context = {
        "show_id": record.get("show_id"),
        "outlet": record.get("outlet_name"),
        "critic": record.get("critic_name"),
    }
    calls = [
        (scorer.model, lambda s=scorer: s.ascore(text, context))
        for scorer in scorers
    ]
    # Each slot may spend its full retry budget before the barrier gives up on it
    timeout = settings.model_timeout * (settings.model_max_retries + 1)
    result = await gather_with_timeout(calls, timeout=timeout, minimum=1)
    if not result.satisfied:
        get_logger().warning(
            "No model returned a judgment",
            key=record_label(record),
            errors=[f"{o.label}: {o.error}" for o in result.failures],
        )
    judgments = []
    for outcome in result.outcomes:
        if outcome.ok and isinstance(outcome.value, ModelScore):
            judgments.append(outcome.value)
        else:
            judgments.append(ModelScore.failed(outcome.label, outcome.error or "no result"))
    return judgments


async def score_record(record: Dict[str, Any], scorers: Sequence, settings: Settings) -> Dict[str, Any]:
    """Run models (when needed) and the cascade for one record; returns an updated copy."""
    logger = get_logger()
    updated = dict(record)

    outcome = resolve_score(updated, None, settings)
    ensemble = None
    if outcome.source not in (EXPLICIT_RATING, MANUAL_OVERRIDE) and scorers and scored_text(updated):
        judgments = await run_models(updated, scorers, settings)
        padded = (list(judgments) + [None, None, None])[:3]
        ensemble = combine(*padded, settings=settings)
        updated["model_scores"] = [_judgment_to_dict(j) for j in judgments]
        updated["ensemble"] = ensemble.to_dict()
        outcome = resolve_score(updated, ensemble, settings)

    outcome.apply_to(updated)
    updated["scoring_version"] = settings.scoring_version

    if outcome.source:
        logger.record_score_source(outcome.source)
    if outcome.needs_review:
        logger.record_flagged()
        logger.info("Flagged for review", key=record_label(updated), reason=outcome.reason)
    return updated


@dataclass
class ScoreBatchResult:
    scored: int = 0
    skipped: int = 0
    checkpoints: int = 0
    flagged: List[Dict[str, Any]] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    records: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "scored": self.scored,
            "skipped": self.skipped,
            "checkpoints": self.checkpoints,
            "flagged": list(self.flagged),
            "rejected": list(self.rejected),
            "dry_run": self.dry_run,
        }


async def score_batch_async(
    records: Iterable[Dict[str, Any]],
    scorers: Sequence,
    store: Optional[ReviewStore],
    settings: Optional[Settings] = None,
    dry_run: bool = False,
    force: bool = False,
) -> ScoreBatchResult:
    settings = settings or Settings()
    logger = get_logger()
    result = ScoreBatchResult(dry_run=dry_run)
    pending: List[Dict[str, Any]] = []

    def checkpoint():
        if pending and store is not None and not dry_run:
            store.put_many(pending)
            result.checkpoints += 1
            logger.info("Checkpoint written", records=len(pending), checkpoints=result.checkpoints)
        pending.clear()

    for record in records:
        key = record_label(record)
        if not force and record.get("scoring_version") == settings.scoring_version:
            result.skipped += 1
            continue
        try:
            updated = await score_record(record, scorers, settings)
        except ValidationError as e:
            result.rejected.append({"key": key, "errors": e.errors})
            logger.record_rejected()
            logger.warning("Rejected record during scoring", key=key, errors=e.errors)
            continue

        errors = validate_review(updated)
        if errors:
            result.rejected.append({"key": key, "errors": errors})
            logger.record_rejected()
            logger.warning("Rejected record during scoring", key=key, errors=errors)
            continue

        result.scored += 1
        result.records.append(updated)
        if updated.get("needs_review"):
            result.flagged.append({"key": key, "reason": updated.get("review_reason")})
        pending.append(updated)
        if len(pending) >= settings.checkpoint_every:
            checkpoint()

    checkpoint()
    logger.info(
        "Scoring complete",
        scored=result.scored,
        skipped=result.skipped,
        flagged=len(result.flagged),
        dry_run=dry_run,
    )
    return result


def score_batch(
    records: Iterable[Dict[str, Any]],
    scorers: Sequence,
    store: Optional[ReviewStore],
    settings: Optional[Settings] = None,
    dry_run: bool = False,
    force: bool = False,
) -> ScoreBatchResult:
    """
    Score records, checkpointing to the store every `settings.checkpoint_every`.

    Records already scored at the current scoring version are skipped unless
    `force` is set, so re-running an interrupted batch only does the rest.
    """
    return asyncio.run(score_batch_async(records, scorers, store, settings, dry_run, force))


def corroborate_changes(
    changes: Iterable[Change],
    observations: Iterable[Observation],
    settings: Optional[Settings] = None,
) -> List[ValidatedChange]:
    logger = get_logger()
    observations = list(observations)
    validated = []
    for change in changes:
        v = validate_change(change, observations, settings)
        if v.flagged:
            logger.record_flagged()
            logger.warning(
                "Change contradicted by prior observations",
                entity=change.entity_id,
                field=change.field,
                notes=v.notes,
            )
        validated.append(v)
    return validated


@dataclass
class GuardReport:
    allowed: List[Change] = field(default_factory=list)
    blocked: List[Conflict] = field(default_factory=list)
    noted: List[Conflict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "allowed": [
                {"entity_id": c.entity_id, "field": c.field, "new_value": c.new_value}
                for c in self.allowed
            ],
            "blocked": [c.to_dict() for c in self.blocked],
            "noted": [c.to_dict() for c in self.noted],
        }


def guard_changes(changes: Iterable[Change], records: Dict[str, Dict[str, Any]]) -> GuardReport:
    """
    Check proposed changes against manually verified fields.

    Args:
        changes: Proposed changes
        records: entity_id -> current record (with its "verification" block)

    Returns:
        GuardReport; low/medium conflicts are allowed but listed in `noted`
    """
    logger = get_logger()
    report = GuardReport()
    for change in changes:
        conflict = detect_conflict(change, records.get(change.entity_id))
        if conflict is None:
            report.allowed.append(change)
            continue
        if should_block(conflict):
            report.blocked.append(conflict)
            logger.warning(
                "Blocked change to verified field",
                entity=conflict.entity_id,
                field=conflict.field,
                severity=conflict.severity,
                discrepancy=conflict.describe(),
            )
        else:
            report.allowed.append(change)
            report.noted.append(conflict)
            logger.info(
                "Verified field changed within tolerance",
                entity=conflict.entity_id,
                field=conflict.field,
                severity=conflict.severity,
                discrepancy=conflict.describe(),
            )
    return report
