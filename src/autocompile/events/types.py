"""Event type definitions for the event bus."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Notifications emitted while compiling and swapping modules."""

    # Compile events
    COMPILE_STARTED = "compile.started"
    COMPILE_SUCCEEDED = "compile.succeeded"
    COMPILE_FAILED = "compile.failed"

    # Artifact reload events
    RELOAD_REQUESTED = "reload.requested"
    RELOAD_COMPLETED = "reload.completed"
    RELOAD_FAILED = "reload.failed"

    # Interceptor lifecycle
    INTERCEPTION_ENABLED = "interception.enabled"
    INTERCEPTION_DISABLED = "interception.disabled"

    # Source watcher
    SOURCE_CHANGED = "source.changed"


class Event(BaseModel):
    """A broadcast notification."""

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    path: str | None = None  # File the event is about
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "path": self.path,
            "data": self.data,
        }
