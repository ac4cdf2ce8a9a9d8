"""Main entry point for the sales blitz categorization engine"""

import argparse
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables FIRST, before any other imports
# Find the .env file in the project root
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

from sales_blitz.orchestrator.blitz_orchestrator import BlitzOrchestrator
from sales_blitz.reporting import calculate_blitz_summary
from sales_blitz.utils.config_loader import load_blitz_config
from sales_blitz.utils.logging import get_logger

logger = get_logger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Categorize an organization's accounts by sales trend")
    parser.add_argument("organization_id", help="Organization to categorize")
    parser.add_argument("--force", action="store_true", help="Invalidate cached categorizations first")
    parser.add_argument("--config", default=None, help="Path to blitz.yaml")
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    logger.info("=" * 60)
    logger.info("SALES BLITZ - Account Trend Categorization")
    logger.info("=" * 60)

    try:
        orchestrator = BlitzOrchestrator(config=load_blitz_config(args.config))

        if args.force:
            result = orchestrator.force_recategorize(args.organization_id)
        else:
            result = orchestrator.run_categorization(args.organization_id)

        summary = calculate_blitz_summary(result.accounts)

        # Print summary
        logger.info("=" * 60)
        logger.info("BLITZ SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Run ID: {result.run_id}")
        logger.info(f"Status: {result.status.value}")
        logger.info(f"Records Loaded: {result.records_loaded}")
        logger.info(f"Duplicates Dropped: {result.records_deduplicated}")
        logger.info(f"Records Excluded: {result.records_excluded}")
        logger.info(f"Accounts: {len(result.accounts)} ({result.cache_hits} cached, {result.recategorized} recategorized)")
        logger.info("Categories", **summary.model_dump(exclude={'total_revenue', 'revenue_at_risk'}))
        logger.info(f"Revenue at Risk: ${summary.revenue_at_risk:,.2f} of ${summary.total_revenue:,.2f}")
        logger.info("=" * 60)

        return result

    except Exception as e:
        logger.error(f"Main execution failed: {e}")
        raise


if __name__ == "__main__":
    main()
