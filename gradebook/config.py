"""
Configuration settings for the gradebook app.

These values can be overridden in Django settings by prefixing with GRADEBOOK_.
For example, to change the pass mark used when a school has no grading system:
    GRADEBOOK_DEFAULT_PASS_MARK = Decimal('50.00')

All configuration values are lazily loaded to avoid Django setup issues.
"""
from decimal import Decimal


def _get_setting(name, default):
    """Get a gradebook setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'GRADEBOOK_{name}', default)


# Define defaults as constants for direct use when Django settings are not needed
_DEFAULTS = {
    # Fallback grading system (min, max, grade, remark)
    'DEFAULT_PASS_MARK': Decimal('40'),
    'FALLBACK_GRADE_LEVELS': (
        (80, 100, 'A1', 'Excellent'),
        (70, 79, 'A2', 'Very Good'),
        (60, 69, 'B1', 'Good'),
        (50, 59, 'B2', 'Fair'),
        (45, 49, 'C1', 'Pass'),
        (40, 44, 'C2', 'Weak Pass'),
        (0, 39, 'F', 'Fail'),
    ),

    # Caching
    'GRADING_SYSTEM_CACHE_TIMEOUT': 60 * 60,  # seconds

    # Display limits
    'TRANSITION_HISTORY_LIMIT': 100,

    # Export settings
    'EXCEL_HEADER_COLOR': '4F46E5',

    # Celery task settings
    'TASK_MAX_RETRIES': 3,
    'TASK_RETRY_DELAY': 60,  # seconds
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


# Module-level proxy object for attribute access
_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
