import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "y", "on")


def get_str_env(name: str, default: str = "") -> str:
    """Return a stripped string environment variable or the default."""
    value = os.getenv(name)
    return default if value is None else value.strip()


def get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def get_float_env(
    name: str,
    default: float = 0.0,
    *,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        logger.warning("Invalid float for %s: %r, using %s", name, value, default)
        return default
    if minimum is not None and parsed < minimum:
        logger.warning("%s=%s below minimum %s, clamping", name, parsed, minimum)
        parsed = minimum
    if maximum is not None and parsed > maximum:
        logger.warning("%s=%s above maximum %s, clamping", name, parsed, maximum)
        parsed = maximum
    return parsed
