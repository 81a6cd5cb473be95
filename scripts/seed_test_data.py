#!/usr/bin/env python3
"""
Seed script for matching test profiles.

This script:
1. Builds realistic dads across four cities plus a few scattered controls
2. Dates every child relative to today so life stages stay stable over time
3. Upserts them into the 'profiles' collection as eligible and unmatched

Usage:
    python -m scripts.seed_test_data
    python -m scripts.seed_test_data --reset   # also clears existing test groups

Environment variables required:
    MONGODB_URI - MongoDB connection string
    MONGODB_DATABASE - Database name (default: dadcircles)
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime, timezone
from typing import List, Dict, Any, Tuple

from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

TEST_ID_PREFIX = "test-session-"

# (city, region, id prefix, months-from-now per user; negative = expecting)
CITIES: List[Tuple[str, str, str, List[int]]] = [
    ("Ann Arbor", "MI", "aa", [-2, -3, -4, -5, -6, -1, -7, -3, 2, 3, 4, 8, 10, 12, 27]),
    ("Austin", "TX", "au", [-3, -4, -5, -2, -6, -4, 1, 2, 4, 9, 11, 24]),
    ("Boulder", "CO", "bo", [-2, -3, -4, -5, -3, 1, 3, 7, 9, 30]),
    ("Portland", "OR", "po", [-4, -5, -6, -3, 2, 4, 12, 20]),
]

# One dad per city, nobody to match with
SCATTERED: List[Tuple[str, str, int]] = [
    ("Fargo", "ND", -3),
    ("Bozeman", "MT", 2),
    ("Burlington", "VT", 9),
    ("Santa Fe", "NM", 20),
    ("Duluth", "MN", -5),
]

GENDERS = ["boy", "girl", None]


def _shift_month(now: datetime, months: int) -> Tuple[int, int]:
    """Return (year, month) that is ``months`` before now (negative = after)."""
    index = now.year * 12 + (now.month - 1) - months
    return index // 12, index % 12 + 1


def build_profile(session_id: str, city: str, region: str, months_old: int, n: int, now: datetime) -> Dict[str, Any]:
    year, month = _shift_month(now, months_old)
    child: Dict[str, Any] = {"birthYear": year, "birthMonth": month}
    gender = GENDERS[n % len(GENDERS)]
    if gender:
        child["gender"] = gender

    return {
        "_id": session_id,
        "email": f"{session_id.replace('session', 'dad')}@example.com",
        "location": {"city": city, "regionCode": region},
        "children": [child],
        "matchingEligible": True,
        "groupId": None,
        "matchedAt": None,
        "lastUpdated": now,
    }


def generate_test_profiles(now: datetime) -> List[Dict[str, Any]]:
    profiles = []
    for city, region, prefix, ages in CITIES:
        for n, months_old in enumerate(ages, start=1):
            session_id = f"{TEST_ID_PREFIX}{prefix}-{n:03d}"
            profiles.append(build_profile(session_id, city, region, months_old, n, now))

    for n, (city, region, months_old) in enumerate(SCATTERED, start=1):
        session_id = f"{TEST_ID_PREFIX}sc-{n:03d}"
        profiles.append(build_profile(session_id, city, region, months_old, n, now))

    return profiles


async def seed(reset: bool) -> None:
    """Upsert test profiles."""
    mongodb_uri = os.getenv("MONGODB_URI")
    database_name = os.getenv("MONGODB_DATABASE", "dadcircles")

    if not mongodb_uri:
        print("ERROR: MONGODB_URI environment variable not set")
        sys.exit(1)

    print(f"Connecting to database: {database_name}")
    client = AsyncIOMotorClient(mongodb_uri)
    db = client[database_name]

    try:
        profiles = generate_test_profiles(datetime.now(timezone.utc))
        print(f"Generating {len(profiles)} test profiles")

        if reset:
            id_pattern = {"$regex": f"^{TEST_ID_PREFIX}"}
            result = await db["circleGroups"].delete_many({"memberIds": id_pattern})
            print(f"Removed {result.deleted_count} groups containing test profiles")

        for profile in profiles:
            await db["profiles"].replace_one({"_id": profile["_id"]}, profile, upsert=True)

        print(f"Seeded {len(profiles)} profiles")
    finally:
        client.close()


def main():
    parser = argparse.ArgumentParser(description="Seed matching test profiles")
    parser.add_argument("--reset", action="store_true", help="Delete groups that contain test profiles")
    args = parser.parse_args()
    asyncio.run(seed(reset=args.reset))


if __name__ == "__main__":
    main()
