import argparse
import json
from pathlib import Path
from typing import Any, List, Optional

from . import __version__
from .aliases import load_alias_table
from .config import Settings, load_settings
from .corroboration import Change, Observation
from .database import ReviewStore
from .env import load_env
from .logger import get_logger
from .normalize import Normalizer
from .pipeline import corroborate_changes, guard_changes, ingest_records, score_batch
from .schema import validate_review
from .scorers import scorers_from_settings
from .storage import load_json, save_json


def _read_json(path_str: str) -> Any:
    path = Path(path_str)
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    try:
        return load_json(path)
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid JSON in {path}: {e}")


def _as_list(data: Any) -> List[dict]:
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def _settings() -> Settings:
    try:
        return load_settings()
    except ValueError as e:
        raise SystemExit(f"Configuration error: {e}")


def _db_path(args: argparse.Namespace, settings: Settings) -> Path:
    return Path(args.db) if getattr(args, "db", None) else settings.db_path


def _normalizer(args: argparse.Namespace, settings: Settings) -> Normalizer:
    alias_path = getattr(args, "aliases", None) or settings.alias_path
    if alias_path:
        return Normalizer(load_alias_table(Path(alias_path)))
    return Normalizer()


def _emit(payload: dict, output: Optional[str]) -> None:
    if output:
        save_json(Path(output), payload)
        print(f"Report written to {output}")
    else:
        print(json.dumps(payload, indent=2, default=str))


def cmd_ingest(args: argparse.Namespace) -> None:
    settings = _settings()
    records = _as_list(_read_json(args.input))
    db_path = _db_path(args, settings)
    # Dry runs still compare against an existing store but never create one
    store = ReviewStore(db_path) if (not args.dry_run or db_path.exists()) else None

    summary = ingest_records(records, store, _normalizer(args, settings), dry_run=args.dry_run)
    prefix = "[dry-run] " if args.dry_run else ""
    print(f"{prefix}Accepted: {summary.accepted}")
    for status, count in sorted(summary.statuses.items()):
        print(f"  {status}: {count}")
    if summary.duplicates:
        print(f"Merged duplicates: {len(summary.duplicates)}")
    for c in summary.collapsed:
        print(f"  collapsed {c['outlet']}: {c['from']} -> {c['to']}")
    if summary.rejected:
        print(f"Rejected: {len(summary.rejected)}")
        for r in summary.rejected:
            print(f" - {r['key']}: {'; '.join(r['errors'])}")
    if args.output:
        _emit(summary.to_dict(), args.output)


def cmd_validate(args: argparse.Namespace) -> None:
    records = _as_list(_read_json(args.input))
    invalid = 0
    for i, record in enumerate(records):
        errors = validate_review(record)
        if errors:
            invalid += 1
            print(f"Record {i} invalid:")
            for e in errors:
                print(f" - {e}")
    if invalid:
        raise SystemExit(2)
    print(f"Valid ({len(records)} records)")


def cmd_score(args: argparse.Namespace) -> None:
    settings = _settings()
    store = ReviewStore(_db_path(args, settings))
    if args.outdated:
        records = store.select(show_id=args.show, outdated_version=settings.scoring_version)
    else:
        records = store.select(show_id=args.show)

    scorers = scorers_from_settings(settings)
    if not scorers:
        print("No model endpoints configured (CURTAINCALL_MODELS); using explicit/override/aggregator signals only.")

    result = score_batch(
        records, scorers, store, settings, dry_run=args.dry_run, force=args.force,
    )
    prefix = "[dry-run] " if args.dry_run else ""
    print(f"{prefix}Scored: {result.scored}  skipped (current version): {result.skipped}  "
          f"checkpoints: {result.checkpoints}")
    if result.flagged:
        print(f"Flagged for review: {len(result.flagged)}")
        for f in result.flagged:
            print(f" - {f['key']}: {f['reason']}")
    if result.rejected:
        print(f"Rejected: {len(result.rejected)}")
        for r in result.rejected:
            print(f" - {r['key']}: {'; '.join(r['errors'])}")
    get_logger().log_metrics_summary()
    if args.output:
        _emit(result.to_dict(), args.output)


def cmd_corroborate(args: argparse.Namespace) -> None:
    settings = _settings()
    try:
        changes = [Change.from_dict(c) for c in _as_list(_read_json(args.changes))]
        observations = [Observation.from_dict(o) for o in _as_list(_read_json(args.observations))]
    except KeyError as e:
        raise SystemExit(f"Missing field in input: {e}")

    validated = corroborate_changes(changes, observations, settings)
    for v in validated:
        marker = "FLAGGED" if v.flagged else v.confidence
        print(f"[{marker}] {v.change.entity_id}.{v.change.field} -> {v.change.new_value!r}")
        for note in v.notes:
            print(f"    {note}")
    payload = {"changes": [v.to_dict() for v in validated]}
    if args.output and not args.dry_run:
        _emit(payload, args.output)
    elif args.dry_run:
        print("[dry-run] no report written")


def cmd_guard(args: argparse.Namespace) -> None:
    try:
        changes = [Change.from_dict(c) for c in _as_list(_read_json(args.changes))]
    except KeyError as e:
        raise SystemExit(f"Missing field in input: {e}")
    records = _read_json(args.records) or {}
    if not isinstance(records, dict):
        raise SystemExit("--records must be a JSON object keyed by entity id")

    report = guard_changes(changes, records)
    print(f"Allowed: {len(report.allowed)}  Blocked: {len(report.blocked)}  Noted: {len(report.noted)}")
    for c in report.blocked:
        print(f" - BLOCKED {c.entity_id}.{c.field} [{c.severity}]: {c.describe()}")
    for c in report.noted:
        print(f" - note {c.entity_id}.{c.field} [{c.severity}]: {c.describe()}")
    if args.output and not args.dry_run:
        _emit(report.to_dict(), args.output)
    elif args.dry_run:
        print("[dry-run] no report written")


def main(argv: Optional[List[str]] = None) -> None:
    # Load .env if present (CURTAINCALL_MODELS, CURTAINCALL_MODEL_API_KEY, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="curtaincall", description="CurtainCall review identity and consensus engine")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ing = subparsers.add_parser("ingest", help="Normalize, deduplicate and store raw review records")
    ing.add_argument("--input", required=True, help="Path to JSON file with one record or a list of records")
    ing.add_argument("--db", help="Path to SQLite review store (default: CURTAINCALL_DB_PATH or data/reviews.db)")
    ing.add_argument("--aliases", help="Alias table JSON (default: bundled table)")
    ing.add_argument("--output", help="Write the validation summary JSON here")
    ing.add_argument("--dry-run", action="store_true", help="Report intended actions without writing")
    ing.set_defaults(func=cmd_ingest)

    val = subparsers.add_parser("validate", help="Validate review records without storing them")
    val.add_argument("--input", required=True, help="Path to JSON review record(s)")
    val.set_defaults(func=cmd_validate)

    sco = subparsers.add_parser("score", help="Run the ensemble and scoring cascade over stored reviews")
    sco.add_argument("--show", help="Only reviews of this show id")
    sco.add_argument("--outdated", action="store_true", help="Only reviews not scored at the current scoring version")
    sco.add_argument("--force", action="store_true", help="Re-score even when the scoring version is current")
    sco.add_argument("--db", help="Path to SQLite review store")
    sco.add_argument("--output", help="Write the batch report JSON here")
    sco.add_argument("--dry-run", action="store_true", help="Score but do not write to the store")
    sco.set_defaults(func=cmd_score)

    cor = subparsers.add_parser("corroborate", help="Check proposed field changes against prior observations")
    cor.add_argument("--changes", required=True, help="JSON list of proposed changes")
    cor.add_argument("--observations", required=True, help="JSON list of prior observations")
    cor.add_argument("--output", help="Write the validated changes JSON here")
    cor.add_argument("--dry-run", action="store_true", help="Print results only")
    cor.set_defaults(func=cmd_corroborate)

    grd = subparsers.add_parser("guard", help="Block changes that overwrite manually verified fields")
    grd.add_argument("--changes", required=True, help="JSON list of proposed changes")
    grd.add_argument("--records", required=True, help="JSON object of current records keyed by entity id")
    grd.add_argument("--output", help="Write the guard report JSON here")
    grd.add_argument("--dry-run", action="store_true", help="Print results only")
    grd.set_defaults(func=cmd_guard)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
