from .configuration import Configuration
from .loader import get_bool_env, get_float_env, get_str_env

__all__ = [
    "Configuration",
    "get_bool_env",
    "get_float_env",
    "get_str_env",
]
