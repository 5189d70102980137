"""Request-scoped caller context passed explicitly into every engine call."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import structlog


@dataclass(frozen=True)
class RequestContext:
    """The authenticated caller of an engine operation."""

    user_id: int
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def bind(self) -> None:
        """Bind user_id and request_id into structlog contextvars for this call."""
        structlog.contextvars.bind_contextvars(user_id=self.user_id, request_id=self.request_id)
