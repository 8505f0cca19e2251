from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class SessionSnapshot(BaseModel):
    """
    Durable copy of the portal session so `status`/`logout` work across process restarts.
    """

    username: str
    attribute_uuid: str = ""
    csrfhw: str = ""
    wlanuserip: str = ""
    logger_id: str = ""
    login_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserCredentials(BaseModel):
    username: str
    password: str = Field(repr=False)
