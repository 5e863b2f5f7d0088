#!/usr/bin/env python3
"""
Dry-run gate for alias table edits.

Loads a candidate alias table and checks it against pairs of names that are
known to be different people (or outlets). Exits non-zero if the table has an
internal conflict or would merge any known-distinct pair.

Usage:
    python scripts/audit_aliases.py --table data/aliases.json --distinct data/distinct.json

The distinct file looks like:
    {"critics": [["Jesse Green", "Jesse Oxfeld"]], "outlets": [["Time Out", "Timeout London"]]}
"""

import argparse
import json
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from curtaincall.aliases import audit_alias_table, default_alias_table, load_alias_table
from curtaincall.errors import AliasConflictError


def audit(table_path, distinct_path: Path) -> bool:
    """
    Run the audit and print a report.

    Returns True if the table is safe to adopt, False otherwise.
    """
    try:
        if table_path:
            print(f"Loading alias table from {table_path}...")
            table = load_alias_table(table_path)
        else:
            print("Auditing bundled alias table...")
            table = default_alias_table()
    except AliasConflictError as e:
        print(f"\n❌ CONFLICT: {e}")
        return False

    print(f"  version {table.version}: {len(table.outlets)} outlets, {len(table.critics)} critics")

    with open(distinct_path) as f:
        distinct = json.load(f)

    collisions = []
    for kind, key in (("critic", "critics"), ("outlet", "outlets")):
        pairs = [tuple(p) for p in distinct.get(key, [])]
        print(f"  checking {len(pairs)} known-distinct {kind} pairs")
        for c in audit_alias_table(table, pairs, kind=kind):
            collisions.append((kind, c))

    if collisions:
        print(f"\n❌ {len(collisions)} COLLISIONS:")
        for kind, c in collisions:
            print(f"  {kind}: {c['a']!r} and {c['b']!r} both resolve to {c['canonical']!r}")
        return False

    print("\n✅ No collisions")
    return True


def main():
    parser = argparse.ArgumentParser(description="Audit an alias table against known-distinct names")
    parser.add_argument("--table", type=Path, help="Candidate alias table JSON (default: bundled table)")
    parser.add_argument("--distinct", type=Path, required=True, help="JSON of known-distinct name pairs")
    args = parser.parse_args()

    if args.table and not args.table.exists():
        print(f"Error: {args.table} not found")
        sys.exit(1)
    if not args.distinct.exists():
        print(f"Error: {args.distinct} not found")
        sys.exit(1)

    ok = audit(args.table, args.distinct)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
