from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def clear_availability_cache(user_id):
    """
    Invalidate cached availability for every booking link that reads this
    user's calendar, as owner or as team member.
    """
    from apps.events.utils import invalidate_availability_for_user

    cleared = invalidate_availability_for_user(user_id)
    logger.info(f"Cleared availability cache for user {user_id}: {cleared} booking links")
    return f"Cleared availability cache for {cleared} booking links"
