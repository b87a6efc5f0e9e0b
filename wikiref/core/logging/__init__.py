from .constants import get_request_id, request_scope, reset_request_id, set_request_id
from .formatters import JsonFormatter, PlainFormatter, SmartFormatter, module_tag
from .structured_logger import StructuredLogger, get_logger, set_log_level

__all__ = [
    "get_logger",
    "set_log_level",
    "StructuredLogger",
    "SmartFormatter",
    "PlainFormatter",
    "JsonFormatter",
    "module_tag",
    "request_scope",
    "set_request_id",
    "reset_request_id",
    "get_request_id",
]
