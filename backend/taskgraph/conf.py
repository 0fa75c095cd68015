from typing import Any

from django.conf import settings

DEFAULTS = {
    "SOFT_PROGRESS_THRESHOLD": 50,
    "DEFAULT_TASK_DURATION_HOURS": 8.0,
    "CRITICAL_FLOAT_EPSILON": 0.01,
    "EXTERNAL_CONSTRAINT_LAG_HOURS": 24,
    "LAG_REVIEW_HOURS": 24,
    "BLOCKED_RATIO_THRESHOLD": 0.3,
    "HIGH_RISK_FACTOR_COUNT": 3,
}


def get_setting(name: str, override: Any = None) -> Any:
    """Return a scheduling policy value.

    An explicit ``override`` wins, then ``settings.TASKGRAPH[name]``, then
    the built-in default.
    """
    if override is not None:
        return override
    configured = getattr(settings, "TASKGRAPH", None) or {}
    if name in configured:
        return configured[name]
    return DEFAULTS[name]
