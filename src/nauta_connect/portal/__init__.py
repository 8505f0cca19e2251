from . import keys
from .extractor import (
    FieldMap,
    check_for_inline_alert,
    extract_hidden_form_fields,
    extract_session_tokens_from_script,
    format_duration,
    try_parse_duration,
)
from .events import (
    ConnectionStateChanged,
    ErrorOccurred,
    EventRecorder,
    PortalEvent,
    PortalListener,
    RetryScheduled,
    StatusMessage,
    TimeRemainingUpdated,
)
from .engine import PortalSession

__all__ = [
    "keys",
    "PortalSession",
    "FieldMap",
    "extract_hidden_form_fields",
    "check_for_inline_alert",
    "extract_session_tokens_from_script",
    "try_parse_duration",
    "format_duration",
    "PortalEvent",
    "PortalListener",
    "EventRecorder",
    "StatusMessage",
    "ErrorOccurred",
    "ConnectionStateChanged",
    "TimeRemainingUpdated",
    "RetryScheduled",
]
