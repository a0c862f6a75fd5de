#!/usr/bin/env python3
"""Rescore one creator's prospects and print tier counts."""

import argparse
import json
import os
import sys

from loguru import logger


def main(argv=None, db=None):
    parser = argparse.ArgumentParser(description="Rescore a creator's prospects")
    parser.add_argument("owner_id", help="Creator (owner) id")
    parser.add_argument("--output", help="Also write the tier counts to this JSON file")
    args = parser.parse_args(argv)

    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="INFO"
    )

    from database.connection import get_database
    from models.errors import OutreachError
    from orchestration.outreach_state import OutreachStateMachine

    try:
        machine = OutreachStateMachine(db or get_database())
        changed = machine.rescore_owner(args.owner_id)
        prospects = machine.list_prospects(args.owner_id)
    except OutreachError as e:
        print(f"Error: {e}")
        return 1

    tiers = {"hot": 0, "warm": 0, "cool": 0, "cold": 0}
    for prospect in prospects:
        tiers[machine.engine.classify_tier(prospect.compatibility_score)] += 1

    print(f"Total scored: {len(prospects)} ({len(changed)} changed)")
    print(f"Hot: {tiers['hot']}, Warm: {tiers['warm']}, Cool: {tiers['cool']}, Cold: {tiers['cold']}")

    if args.output:
        with open(args.output, "w") as f:
            json.dump({"total": len(prospects), "changed": len(changed), **tiers}, f)

    # Write to GitHub output file
    github_output = os.environ.get("GITHUB_OUTPUT", "")
    if github_output:
        with open(github_output, "a") as f:
            f.write(f"hot_leads={tiers['hot']}\n")
            f.write(f"total_scored={len(prospects)}\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
