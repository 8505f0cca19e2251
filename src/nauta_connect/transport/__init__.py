from .client import DEFAULT_USER_AGENT, CookieStore, PortalTransport
from .models import (
    CancelToken,
    FormContent,
    HttpOutcome,
    JsonContent,
    RequestOptions,
    RetryNotice,
    StatusClass,
)

__all__ = [
    "PortalTransport",
    "CookieStore",
    "CancelToken",
    "FormContent",
    "JsonContent",
    "HttpOutcome",
    "RequestOptions",
    "RetryNotice",
    "StatusClass",
    "DEFAULT_USER_AGENT",
]
