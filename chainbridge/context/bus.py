"""Context bus: named context records grouped by source.

The bus keeps a mapping of ``from`` key to an ordered list of records and
notifies subscribers with the whole mapping every time a group changes.
It shares nothing with the chain engine; the two are uncoordinated.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from chainbridge.core.logging import CONTEXT_LOGGER_NAME, get_logger


class ContextRecord(BaseModel):
    """A named, keyed blob of context published by one source.

    Attributes:
        id: Unique id; assigned by the bus when missing.
        name: Human readable name of the record.
        data: Opaque data carried by the record.
        from_: Source key the record is grouped under (``from`` on the wire).
        type: Free-form record type.
        role: ``"system"`` for system-level records, otherwise None.
        title: Optional display title.
        content: Optional display content.
        once: Optional hint that the record is meant to be consumed once.
    """

    id: str | None = None
    name: str
    data: Any = None
    from_: str = Field(alias="from")
    type: str
    role: Literal["system"] | None = None
    title: str | None = None
    content: str | None = None
    once: bool | None = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


ContextMapping = dict[str, list[ContextRecord]]
EndCallback = Callable[[], None]
ContextListener = Callable[[ContextMapping, str | None, EndCallback | None], None]


class ContextBus:
    """Publish/notify structure over context records grouped by source."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._context: ContextMapping = {}
        self._listeners: list[ContextListener] = []
        self._pending_removals: list[tuple[str, str]] = []
        self._notifying = 0
        self._log = logger or get_logger(CONTEXT_LOGGER_NAME)

    @property
    def context(self) -> ContextMapping:
        """The live grouped mapping handed to subscribers."""
        return self._context

    def get(self, from_: str) -> list[ContextRecord]:
        """Return a copy of the records published under `from_`."""
        return list(self._context.get(from_, []))

    def add_context(
        self, record: ContextRecord | Mapping[str, Any], keep_alive: bool = True
    ) -> str:
        """Publish a record and return its id.

        With keep_alive=False subscribers receive an ``end`` callback; calling
        it removes the record once the current notification cycle is over.
        """
        record = _coerce(record)
        if record.id is None:
            record = record.model_copy(update={"id": str(uuid4())})
        self._context.setdefault(record.from_, []).append(record)
        self._log.debug(
            f"Context added: {record.name}",
            extra={"from_key": record.from_, "context_id": record.id},
        )
        self._notify(record.from_, None if keep_alive else self._ender(record.from_, record.id))
        return record.id

    def update_context(
        self, record: ContextRecord | Mapping[str, Any], keep_alive: bool = True
    ) -> str | None:
        """Replace an existing record in place.

        Returns the id, or None (without notifying) when the record has no id
        or no record with that id exists under its ``from`` key.
        """
        record = _coerce(record)
        if record.id is None:
            return None
        group = self._context.get(record.from_, [])
        for i, existing in enumerate(group):
            if existing.id == record.id:
                group[i] = record
                self._log.debug(
                    f"Context updated: {record.name}",
                    extra={"from_key": record.from_, "context_id": record.id},
                )
                self._notify(
                    record.from_, None if keep_alive else self._ender(record.from_, record.id)
                )
                return record.id
        return None

    def remove_context(self, context_id: str) -> None:
        """Remove the first record with `context_id` and notify subscribers.

        Subscribers are notified even when nothing matched; the changed key
        is None in that case.
        """
        removed_from: str | None = None
        for from_, group in self._context.items():
            for i, existing in enumerate(group):
                if existing.id == context_id:
                    del group[i]
                    removed_from = from_
                    break
            if removed_from is not None:
                break
        self._log.debug(
            "Context removed" if removed_from is not None else "Context not found",
            extra={"from_key": removed_from, "context_id": context_id},
        )
        self._notify(removed_from, None)

    def on_context_change(self, callback: ContextListener) -> Callable[[], None]:
        """Subscribe to changes; returns a function that unsubscribes."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, from_: str | None, end: EndCallback | None) -> None:
        self._notifying += 1
        try:
            for listener in list(self._listeners):
                listener(self._context, from_, end)
        finally:
            self._notifying -= 1
            if not self._notifying:
                self._flush_removals()

    def _ender(self, from_: str, context_id: str) -> EndCallback:
        def end() -> None:
            self._schedule_removal(from_, context_id)

        return end

    def _schedule_removal(self, from_: str, context_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            loop.call_soon(self._discard, from_, context_id)
        elif self._notifying:
            self._pending_removals.append((from_, context_id))
        else:
            self._discard(from_, context_id)

    def _flush_removals(self) -> None:
        pending, self._pending_removals = self._pending_removals, []
        for from_, context_id in pending:
            self._discard(from_, context_id)

    def _discard(self, from_: str, context_id: str) -> None:
        group = self._context.get(from_)
        if group is None:
            return
        self._context[from_] = [r for r in group if r.id != context_id]
        self._log.debug(
            "Ephemeral context expired",
            extra={"from_key": from_, "context_id": context_id},
        )


def _coerce(record: ContextRecord | Mapping[str, Any]) -> ContextRecord:
    if isinstance(record, ContextRecord):
        return record
    return ContextRecord.model_validate(dict(record))
