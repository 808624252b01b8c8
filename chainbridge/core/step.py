"""Step models for chainbridge."""

import copy
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Reserved event name owned by the engine for the delay primitive
DELAY_EVENT = "__SLEEP__"

# Event name that marks a delay item inside a batch plan
BATCH_DELAY_MARKER = "sleep"

Payload = dict[str, Any]


def validate_payload(v: Payload) -> Payload:
    """Ensure a payload is strictly JSON-serializable.

    Raises ValueError for non-JSON-serializable types (no default=str
    fallback) to enforce strict JSON compatibility.
    """
    try:
        json.dumps(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"payload must be JSON-serializable: {e}") from e
    return v


def _validate_event_name(v: str) -> str:
    if not v:
        raise ValueError("event must not be empty")
    return v


class Step(BaseModel):
    """One named unit of work queued for sequential dispatch.

    Steps are immutable once stored. The engine never mutates the stored
    payload; it builds a fresh dispatch mapping carrying ``prev`` instead.

    Attributes:
        event: Non-empty event name, matched exactly against registrations.
        payload: JSON-serializable mapping.
    """

    event: str
    payload: Payload = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("event")
    @classmethod
    def validate_event(cls, v: str) -> str:
        return _validate_event_name(v)

    @field_validator("payload")
    @classmethod
    def validate_payload(cls, v: Payload) -> Payload:
        return validate_payload(v)

    @property
    def is_delay(self) -> bool:
        return self.event == DELAY_EVENT

    def dispatch_payload(self, prev: Payload) -> Payload:
        """Return the payload handed to handlers: own fields plus ``prev``.

        The result is a deep copy, so nothing a handler does to it reaches the
        stored step or the carried ``prev``.
        """
        return copy.deepcopy({**self.payload, "prev": prev})


class BatchItem(BaseModel):
    """One entry of a serialized batch plan.

    Plans produced by agents use ``props`` for the payload; ``payload`` is
    accepted as well.
    """

    event: str
    payload: Payload | None = Field(default=None, alias="props")

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @field_validator("event")
    @classmethod
    def validate_event(cls, v: str) -> str:
        return _validate_event_name(v)

    @field_validator("payload")
    @classmethod
    def validate_payload(cls, v: Payload | None) -> Payload | None:
        if v is None:
            return v
        return validate_payload(v)

    def to_step(self) -> Step:
        """Translate the item into the step the engine stores.

        A ``sleep`` item with a truthy ``duration`` becomes a delay step;
        anything else is stored as-is.
        """
        payload = self.payload or {}
        if self.event == BATCH_DELAY_MARKER and payload.get("duration"):
            return Step(event=DELAY_EVENT, payload={"duration": payload["duration"]})
        return Step(event=self.event, payload=payload)
