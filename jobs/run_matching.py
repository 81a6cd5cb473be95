"""
Daily matching background job.

Creates PENDING groups from the eligible pool. No emails are sent; groups
wait for admin approval.

Usage:
    Run via CRON:
        0 6 * * * cd /path/to/project && python -m jobs.run_matching

    Or run directly, optionally for one city:
        python -m jobs.run_matching --city "Ann Arbor" --region MI
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from common.database import MongoDB
from app_circles.config import Settings
from app_circles.matching.dependencies import build_matching_service, ensure_matching_indexes

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class MatchingJob:
    """
    Runs one matching cycle against MongoDB.

    A second copy started while one is running exits with
    MatchingInProgressException instead of matching the same pool twice.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.db = MongoDB()

    async def run(
        self,
        city: Optional[str] = None,
        region_code: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Run the job.

        Returns:
            Dictionary with job results
        """
        start_time = datetime.now(timezone.utc)
        logger.info(f"Starting matching job at {start_time.isoformat()}")

        results: Dict[str, Any] = {
            "startTime": start_time.isoformat(),
            "groupsCreated": 0,
            "usersMatched": 0,
            "usersUnmatched": 0,
            "summary": "",
            "errors": [],
        }

        self.settings.validate_required()
        await self.db.connect(
            uri=self.settings.MONGODB_URI,
            database_name=self.settings.MONGODB_DATABASE,
            timeout_ms=self.settings.MONGODB_TIMEOUT_MS,
        )
        await ensure_matching_indexes(self.db.db)

        service = build_matching_service(self.db.db, self.settings)

        try:
            summary = await service.run(city=city, region_code=region_code)
            results["groupsCreated"] = len(summary.groups_created)
            results["usersMatched"] = summary.users_matched
            results["usersUnmatched"] = summary.users_unmatched
            results["summary"] = summary.summary
            results["errors"] = [
                f"{e.city}, {e.region_code} / {e.life_stage.value}: {e.message}"
                for e in summary.per_bucket_errors
            ]
        except Exception as e:
            logger.error(f"Matching run failed: {e}")
            results["errors"].append(str(e))

        end_time = datetime.now(timezone.utc)
        results["endTime"] = end_time.isoformat()
        results["durationSeconds"] = (end_time - start_time).total_seconds()

        logger.info(
            f"Matching job completed: {results['groupsCreated']} groups, "
            f"{results['usersMatched']} users matched, {len(results['errors'])} errors"
        )
        return results

    async def close(self):
        """Close database connection."""
        await self.db.disconnect()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run DadCircles matching")
    parser.add_argument("--city", help="Only match users in this city")
    parser.add_argument("--region", dest="region_code", help="Region code for --city")
    args = parser.parse_args(argv)
    if bool(args.city) != bool(args.region_code):
        parser.error("--city and --region must be given together")
    return args


async def main():
    """Main entry point for the matching job."""
    args = parse_args()
    job = MatchingJob(Settings())

    try:
        results = await job.run(city=args.city, region_code=args.region_code)

        print("\n=== Matching Job Results ===")
        print(f"Start Time: {results['startTime']}")
        print(f"End Time: {results['endTime']}")
        print(f"Duration: {results['durationSeconds']:.2f} seconds")
        print(f"Groups Created: {results['groupsCreated']}")
        print(f"Users Matched: {results['usersMatched']}")
        print(f"Users Left Unmatched: {results['usersUnmatched']}")
        print(f"Summary: {results['summary']}")

        if results["errors"]:
            print(f"\nErrors ({len(results['errors'])}):")
            for error in results["errors"]:
                print(f"  - {error}")

        exit_code = 1 if results["errors"] else 0
        sys.exit(exit_code)

    finally:
        await job.close()


if __name__ == "__main__":
    asyncio.run(main())
