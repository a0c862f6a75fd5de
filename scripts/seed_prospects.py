#!/usr/bin/env python3
"""
🌱 SEED PROSPECTS
=================
Inserts synthetic prospects (and optionally offerings) for one creator.

USAGE:
    python scripts/seed_prospects.py OWNER_ID
    python scripts/seed_prospects.py OWNER_ID --count 25 --with-offerings
    DATABASE_BACKEND=memory python scripts/seed_prospects.py demo-owner --verbose

Exits with status 1 if any prospect could not be inserted, after printing how
many were.
"""

import argparse
import sys
import uuid
from pathlib import Path
from typing import Dict, List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger


SAMPLE_PROSPECTS: List[Dict[str, str]] = [
    {
        "name": "Technologie Innovante SAS",
        "sector": "technologie",
        "budget": "500€-1000€",
        "company_size": "moyenne",
        "needs": "Customer service automation and handling of frequent requests.",
    },
    {
        "name": "Santé Plus",
        "sector": "sante",
        "budget": "200€-500€",
        "company_size": "petite",
        "needs": "Appointment scheduling and patient follow-up assistant.",
    },
    {
        "name": "Finance Conseil",
        "sector": "finance",
        "budget": "> 1000€",
        "company_size": "grande",
        "needs": "Financial data analysis and automated reporting.",
    },
    {
        "name": "Éducation Future",
        "sector": "education",
        "budget": "< 200€",
        "company_size": "petite",
        "needs": "Personalized quizzes and student progress tracking.",
    },
    {
        "name": "Boutique Élégance",
        "sector": "commerce",
        "budget": "200€-500€",
        "company_size": "petite",
        "needs": "Product recommendations and purchase behaviour analysis.",
    },
    {
        "name": "Manufacture Industrielle",
        "sector": "industrie",
        "budget": "500€-1000€",
        "company_size": "grande",
        "needs": "Predictive maintenance and production optimization.",
    },
    {
        "name": "Immobilier Prestige",
        "sector": "immobilier",
        "budget": "> 1000€",
        "company_size": "moyenne",
        "needs": "Market trend analysis and automatic property valuation.",
    },
    {
        "name": "Services Juridiques Pro",
        "sector": "services",
        "budget": "500€-1000€",
        "company_size": "moyenne",
        "needs": "Legal research and document analysis assistant.",
    },
    {
        "name": "Restaurant Gastronomique",
        "sector": "restauration",
        "budget": "< 200€",
        "company_size": "petite",
        "needs": "Reservation management and customer review analysis.",
    },
    {
        "name": "Transport Express",
        "sector": "transport",
        "budget": "200€-500€",
        "company_size": "moyenne",
        "needs": "Route optimization and logistics management.",
    },
]

SAMPLE_OFFERINGS: List[Dict] = [
    {
        "name": "FinReport AI",
        "sector": "finance",
        "description": "Turns raw ledgers into monthly reports and cash-flow forecasts.",
        "features": ["Automated reporting", "Cash-flow forecasts", "Anomaly alerts"],
        "price": 750,
    },
    {
        "name": "CareDesk Assistant",
        "sector": "health",
        "description": "Books appointments and follows up with patients.",
        "features": ["Online booking", "Reminders", "Follow-up surveys"],
        "price": 350,
    },
    {
        "name": "ShopAdvisor",
        "sector": "commerce",
        "description": "Product recommendations for small online shops.",
        "features": ["Recommendations", "Basket analysis"],
        "price": 150,
    },
]


def setup_logging(verbose: bool = False):
    """Configure logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="DEBUG" if verbose else "INFO"
    )


def build_rows(count: int) -> List[Dict[str, str]]:
    """``count`` prospect rows, cycling through the samples."""
    rows = []
    for i in range(count):
        sample = dict(SAMPLE_PROSPECTS[i % len(SAMPLE_PROSPECTS)])
        cycle = i // len(SAMPLE_PROSPECTS)
        if cycle:
            sample["name"] = f"{sample['name']} #{cycle + 1}"
        rows.append(sample)
    return rows


def seed_offerings(machine, owner_id: str) -> int:
    from models.outreach import Offering

    for sample in SAMPLE_OFFERINGS:
        # Stable ids so re-running the seed updates instead of duplicating
        offering_id = str(uuid.uuid5(uuid.NAMESPACE_URL, f"{owner_id}/{sample['name']}"))
        machine.offerings.upsert(Offering(id=offering_id, owner_id=owner_id, **sample))
    logger.info(f"🧩 Seeded {len(SAMPLE_OFFERINGS)} offerings for {owner_id}")

    # Prospects created before these offerings still carry old scores
    machine.rescore_owner(owner_id)
    return len(SAMPLE_OFFERINGS)


def seed(machine, owner_id: str, count: int, with_offerings: bool = False) -> int:
    """
    Insert ``count`` synthetic prospects for ``owner_id``.

    Returns:
        Number of prospects actually inserted
    """
    if with_offerings:
        seed_offerings(machine, owner_id)

    result = machine.bulk_create(owner_id, build_rows(count))
    for index, error in result.failed:
        logger.error(f"❌ Prospect #{index} not inserted: {error}")
    return len(result.created)


def main(argv: Optional[List[str]] = None, db=None) -> int:
    parser = argparse.ArgumentParser(description="Insert synthetic prospects for a creator")
    parser.add_argument("owner_id", help="Creator (owner) id")
    parser.add_argument("--count", type=int, default=len(SAMPLE_PROSPECTS),
                        help="Number of prospects to insert")
    parser.add_argument("--with-offerings", action="store_true",
                        help="Also insert sample offerings before scoring")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if args.count < 1:
        parser.error("--count must be at least 1")

    from database.connection import get_database
    from models.errors import OutreachError
    from orchestration.outreach_state import OutreachStateMachine

    inserted = 0
    try:
        machine = OutreachStateMachine(db or get_database())
        inserted = seed(machine, args.owner_id, args.count, args.with_offerings)
    except OutreachError as e:
        logger.error(f"❌ Seeding failed: {e}")

    print(f"Inserted {inserted}/{args.count} prospects for owner {args.owner_id}")
    return 0 if inserted == args.count else 1


if __name__ == "__main__":
    sys.exit(main())
