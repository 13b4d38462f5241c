"""Print the reconciled documents and derived aggregate for one driver.

Read-only: nothing is written back to the database.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from driverdocs.database import init_db
from driverdocs.services.aggregate import recompute
from driverdocs.services.store import SQLDocumentStore
from driverdocs.services.reconcile import reconcile
from driverdocs.utils.errors import VerificationEngineError


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("driver_id", help="Identifier of the driver to inspect.")
    parser.add_argument(
        "--raw",
        action="store_true",
        help="Also print both source records as stored.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_db()
    store = SQLDocumentStore()
    try:
        snapshot = store.load_snapshot(args.driver_id)
    except VerificationEngineError as exc:
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 1

    document_set = reconcile(snapshot.profile_documents, snapshot.verification_documents)
    report: dict[str, object] = {
        "driverId": snapshot.driver_id,
        "version": snapshot.version,
        "storedStatus": snapshot.verification_status,
        "documents": document_set.to_dict(),
        "aggregate": recompute(document_set).to_dict(),
    }
    if args.raw:
        report["sources"] = {
            "profile": snapshot.profile_documents,
            "verification": snapshot.verification_documents,
        }
    print(json.dumps(report, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
