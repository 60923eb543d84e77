"""Audit identity counters and alias ownership against the attendance ledger.

Usage (from repository root):
    python backend/scripts/check_identity_consistency.py [--repair]

Usage (from backend directory):
    python scripts/check_identity_consistency.py [--repair]
    # or
    python -m scripts.check_identity_consistency
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Make `attendee_identity` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from attendee_identity.db.session import SessionLocal
from attendee_identity.services.identity_store import (
    ConsistencyReport,
    audit_identity_consistency,
    repair_appearance_counts,
)


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Audit identity counters against the attendance ledger.")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Recount total_appearances from the ledger for every drifted identity.",
    )
    return parser.parse_args()


def print_report(report: ConsistencyReport) -> None:
    print(f"appearance_mismatches={len(report.appearance_mismatches)}")
    for identity_id, (recorded, ledger) in sorted(report.appearance_mismatches.items()):
        print(f"  identity_id={identity_id} recorded={recorded} ledger={ledger}")
    print(f"aliases_on_merged_identities={len(report.aliases_on_merged_identities)}")
    print(f"attendance_on_merged_identities={len(report.attendance_on_merged_identities)}")
    print(f"shared_platform_user_ids={len(report.shared_platform_user_ids)}")


def main() -> int:
    """Print the audit and optionally repair drifted counters."""

    args = parse_args()
    with SessionLocal() as db:
        report = audit_identity_consistency(db)
        print_report(report)
        if args.repair and report.appearance_mismatches:
            repaired = repair_appearance_counts(db)
            print()
            print(f"Repaired {len(repaired)} counter(s)")
            for identity_id, (old, new) in sorted(repaired.items()):
                print(f"  identity_id={identity_id} {old} -> {new}")
            report = audit_identity_consistency(db)

    print()
    print("Consistency OK" if report.ok else "Consistency violations remain")
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
