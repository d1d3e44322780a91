"""
Signals that keep the cached grading scheme in step with the database.

When a GradingSystem or one of its GradeLevels is saved or deleted, the
school's cached scheme is dropped and rebuilt on next use.
"""
import logging

from django.core.cache import cache
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .models import GradingSystem, GradeLevel

logger = logging.getLogger(__name__)


def grading_scheme_cache_key(school_id):
    return f'grading_scheme_{school_id}'


def invalidate_grading_scheme(school_id):
    cache.delete(grading_scheme_cache_key(school_id))
    logger.debug(f"Cleared cached grading scheme for school {school_id}")


@receiver([post_save, post_delete], sender=GradingSystem)
def grading_system_changed(sender, instance, **kwargs):
    invalidate_grading_scheme(instance.school_id)


@receiver([post_save, post_delete], sender=GradeLevel)
def grade_level_changed(sender, instance, **kwargs):
    # The parent may already be gone during a cascade delete
    school_id = GradingSystem.objects.filter(
        pk=instance.grading_system_id
    ).values_list('school_id', flat=True).first()
    if school_id is not None:
        invalidate_grading_scheme(school_id)
