"""
Scheduled background jobs.
Module-level coroutines so the MongoDB job store can reference them by name.
Each run_* returns a dict with "message" and counts.
"""
import logging

logger = logging.getLogger(__name__)


async def run_subscription_period_check():
    """Expire cancelled-at-period-end subscriptions and roll renewing periods forward."""
    try:
        from invoicing.services.subscription_service import subscription_service
        result = await subscription_service.process_period_ends()
        logger.info(
            f"Subscription period job completed: {result['expired']} expired, {result['renewed']} renewed"
        )
        return {
            "message": f"Subscriptions expired: {result['expired']}, renewed: {result['renewed']}",
            **result,
        }
    except Exception as e:
        logger.error(f"Subscription period job failed: {e}")
        raise
