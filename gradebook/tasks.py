"""
Celery tasks for gradebook app.
Publishes class-term results in the background once they are complete.
"""
import logging

from celery import shared_task
from django.db import OperationalError

from academics.models import ClassTerm
from . import config
from .services import PLATFORM_SCOPE, auto_publish_class_term_results


logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=config.TASK_MAX_RETRIES,
    default_retry_delay=config.TASK_RETRY_DELAY,
)
def publish_class_term_results(self, class_term_id):
    """
    Publish every assessment of a class-term if all results are entered.

    Returns:
        dict: {'success': bool, 'message': str}
    """
    try:
        published, message = auto_publish_class_term_results(PLATFORM_SCOPE, class_term_id)
    except ClassTerm.DoesNotExist:
        # Non-retryable - class-term doesn't exist
        logger.error(f"ClassTerm {class_term_id} not found")
        return {'success': False, 'message': 'Class term not found'}
    except OperationalError as e:
        # Transient database error - retry with exponential backoff
        logger.warning(f"Retryable error publishing class term {class_term_id}: {str(e)}")
        raise self.retry(exc=e, countdown=config.TASK_RETRY_DELAY * (2 ** self.request.retries))

    if published:
        logger.info(f"Class term {class_term_id}: {message}")
    else:
        logger.warning(f"Class term {class_term_id}: {message}")
    return {'success': published, 'message': message}
