"""Reorder, sort or delete references in a local document store.

This helper is local/offline and intended for maintenance and quick checks:
- moves one reference or sorts the whole list
- deletes a reference and orphans its citations
- resequences references by order of first citation
- prints the current reference list
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reorder references and renumber citations")
    parser.add_argument("store_folder", help="Path to the document store folder")
    parser.add_argument("document_id", help="Document to operate on")
    parser.add_argument("--tenant", required=True, help="Tenant that owns the document")
    parser.add_argument("--json", action="store_true", help="Print the full JSON result")

    sub = parser.add_subparsers(dest="command", required=True)

    move = sub.add_parser("move", help="Move one reference to a new 1-based position")
    move.add_argument("reference_id")
    move.add_argument("new_position", type=int)

    sort = sub.add_parser("sort", help="Sort the whole reference list")
    sort.add_argument("sort_by", choices=["alphabetical", "year", "appearance"])
    sort.add_argument(
        "--order",
        choices=["asc", "desc"],
        default=None,
        help="Year sort direction (default: desc). Ignored by other sorts.",
    )

    delete = sub.add_parser("delete", help="Delete one reference")
    delete.add_argument("reference_id")

    sub.add_parser("resequence", help="Renumber references by first appearance in the text")
    sub.add_parser("show", help="Print the current reference list")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    # Allow running this script directly without requiring installation.
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

    from refsync.citations.service import CitationReferenceService
    from refsync.citations.store import DocumentStore
    from refsync.errors import ReferenceEngineError

    service = CitationReferenceService(DocumentStore(args.store_folder))

    try:
        if args.command == "move":
            result = service.reorder(
                args.document_id,
                args.tenant,
                {"referenceId": args.reference_id, "newPosition": args.new_position},
            )
        elif args.command == "sort":
            body = {"sortBy": args.sort_by}
            if args.order is not None:
                body["order"] = args.order
            result = service.reorder(args.document_id, args.tenant, body)
        elif args.command == "delete":
            result = service.delete_reference(args.document_id, args.tenant, args.reference_id)
        elif args.command == "resequence":
            result = service.resequence_by_appearance(args.document_id, args.tenant)
        else:
            result = service.list_references(args.document_id, args.tenant)
    except ReferenceEngineError as e:
        print(json.dumps(e.to_response(), indent=2))
        return 2

    if args.json:
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return 0

    print(f"document_id: {args.document_id}")
    print(f"command: {args.command}")
    if "message" in result:
        print(f"message: {result['message']}")
    for key in ("updatedCount", "citationsUpdated", "deletedPosition", "remainingReferences"):
        if key in result:
            print(f"{key}: {result[key]}")
    for ref in result.get("references") or []:
        print(f"  [{ref['number']}] {ref['rawText']} (citations: {ref['citationCount']})")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
