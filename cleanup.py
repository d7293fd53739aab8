#!/usr/bin/env python3
"""
CRM maintenance: list recent deals and purge test/demo records.

Usage:
    python cleanup.py list
    python cleanup.py purge --dry-run
    python cleanup.py purge --keyword Probe --keyword Mock
"""

import argparse
import os
import sys
from typing import Dict, Any, Iterable, List, Sequence

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

from tools import zoho

# Deal names containing any of these are treated as test records
TEST_KEYWORDS = ["Tiago", "Test", "Cloud", "Probe", "Check", "Witness", "Crash", "Mock", "Final", "Match"]

PROTECTED_NAMES = [
    n.strip().lower() for n in os.getenv("CRM_PROTECTED_NAMES", "sarah,litowich").split(",") if n.strip()
]


def is_protected(name: str, protected: Sequence[str] = None) -> bool:
    lowered = (name or "").lower()
    return any(p in lowered for p in (PROTECTED_NAMES if protected is None else protected))


def select_for_purge(
    deals: Iterable[Dict[str, Any]],
    keywords: Sequence[str] = TEST_KEYWORDS,
    protected: Sequence[str] = None,
) -> List[Dict[str, Any]]:
    """
    Pick the deals to delete.

    The protected-name check runs first and always wins over a keyword match.
    """
    selected = []
    for deal in deals:
        name = deal.get("Deal_Name") or ""
        if is_protected(name, protected):
            logger.info(f"[SAFE] Skipping protected deal: {name}")
            continue
        if any(kw in name for kw in keywords):
            selected.append(deal)
    return selected


def list_deals() -> int:
    deals = zoho.list_recent_deals()
    if not deals:
        print("CRM is empty.")
        return 0

    for deal in deals:
        print(f"ID: {deal.get('id')} | Name: {deal.get('Deal_Name')} | Amount: ${deal.get('Amount')}")
    return 0


def purge(keywords: Sequence[str], dry_run: bool = False) -> int:
    deals = zoho.list_recent_deals()
    doomed = select_for_purge(deals, keywords)

    if not doomed:
        print("No test deals found to delete.")
        return 0

    print(f"{'Would delete' if dry_run else 'Deleting'} {len(doomed)} test deals...")
    failures = 0
    for deal in doomed:
        print(f"  {deal.get('Deal_Name')} ({deal.get('id')})")
        if dry_run:
            continue
        try:
            zoho.delete_deal(deal["id"])
        except Exception as e:
            failures += 1
            logger.error(f"Failed to delete deal {deal.get('id')}: {e}")

    print("--- PURGE COMPLETE ---" if not failures else f"--- PURGE FINISHED WITH {failures} FAILURES ---")
    return 1 if failures else 0


def main(argv: Sequence[str] = None) -> int:
    parser = argparse.ArgumentParser(description="CRM deal maintenance")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List recent deals")

    purge_cmd = commands.add_parser("purge", help="Delete test/demo deals")
    purge_cmd.add_argument("--keyword", action="append", dest="keywords",
                           help="Keyword to match (repeatable, replaces the defaults)")
    purge_cmd.add_argument("--dry-run", action="store_true", help="Show what would be deleted")

    args = parser.parse_args(argv)

    if args.command == "list":
        return list_deals()
    return purge(args.keywords or TEST_KEYWORDS, dry_run=args.dry_run)


if __name__ == "__main__":
    sys.exit(main())
