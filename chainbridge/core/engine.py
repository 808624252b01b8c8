"""Engine for chainbridge sequential step chains.

The Engine owns a handler registry and a chain store, and walks the store
one step at a time:
- Each step is dispatched to every handler registered for its event name
- The drain only advances when a handler calls the step's continuation
- The result passed to the continuation is handed to the next step as `prev`

The walk is an explicit cursor driven by a trampoline loop. Continuations
called while the handler is still running are picked up by the loop;
continuations called later (timers, tasks) resume the loop from where it
stopped. A drain starts only when a step is appended while the engine is
IDLE; steps appended during a drain are read from the live store.
"""

import asyncio
import copy
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from chainbridge.core.chain import ChainStore, DrainState
from chainbridge.core.handler import StepHandler
from chainbridge.core.logging import configure_engine_logger
from chainbridge.core.registry import HandlerRegistry
from chainbridge.core.step import DELAY_EVENT, BatchItem, Payload, Step

DEFAULT_MAX_STEPS = 10_000


class HandlerFailureMode(Enum):
    """Strategy for handling handler failures.

    RAISE: Log the error and re-raise it; the chain stays stalled
    LOG: Log the error and advance, carrying the previous result forward
    STORE: Record the failed step in the failed step store, then advance like LOG
    """

    RAISE = "raise"
    LOG = "log"
    STORE = "store"


class ChainLimitError(RuntimeError):
    """Raised when a single drain walks more than `max_steps` steps.

    Attributes:
        max_steps: The limit that was exceeded.
    """

    def __init__(self, max_steps: int):
        self.max_steps = max_steps
        super().__init__(f"Max steps exceeded ({max_steps}) in a single drain")


class FailedStepStore(Protocol):
    """Protocol for recording steps whose handler raised."""

    def store(self, step: Step, error: BaseException) -> None: ...
    def get_failed_steps(self) -> list[tuple[Step, BaseException]]: ...
    def clear(self) -> None: ...


class InMemoryFailedStepStore:
    """Simple in-memory failed step store with bounded size."""

    def __init__(self, max_size: int = 10_000) -> None:
        self._steps: list[tuple[Step, BaseException]] = []
        self._max_size = max_size

    def store(self, step: Step, error: BaseException) -> None:
        if len(self._steps) >= self._max_size:
            # Drop oldest to make room (FIFO eviction)
            self._steps.pop(0)
        self._steps.append((step, error))

    def get_failed_steps(self) -> list[tuple[Step, BaseException]]:
        return list(self._steps)

    def clear(self) -> None:
        self._steps.clear()

    def __len__(self) -> int:
        return len(self._steps)


@dataclass
class EngineStats:
    """Counters collected over the lifetime of an Engine."""

    drains_started: int = 0
    drains_completed: int = 0
    steps_dispatched: int = 0
    steps_skipped: int = 0
    stale_continuations: int = 0
    reused_continuations: int = 0
    handler_errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))


class Continuation:
    """Single-use callback a handler calls to complete its step.

    Calling it with an optional result mapping advances the drain. Only the
    first call counts; later calls are logged and ignored.
    """

    __slots__ = ("_engine", "epoch", "index", "called", "result", "_inline")

    def __init__(self, engine: "Engine", epoch: int, index: int) -> None:
        self._engine = engine
        self.epoch = epoch
        self.index = index
        self.called = False
        self.result: Payload = {}
        self._inline = True

    def __call__(self, result: Mapping[str, Any] | None = None) -> None:
        if self.called:
            self._engine._on_reused_continuation(self)
            return
        if result is not None and not isinstance(result, Mapping):
            raise TypeError(
                f"continuation result must be a mapping or None, got {type(result).__name__}"
            )
        self.called = True
        self.result = copy.deepcopy(dict(result)) if result is not None else {}
        if not self._inline:
            self._engine._resume(self)

    def detach(self) -> None:
        """Mark the dispatch as returned; later calls resume the drain."""
        self._inline = False


Handler = Callable[[Payload, Continuation], None | Awaitable[None]]


class Engine:
    """Sequential step-chain dispatcher."""

    def __init__(
        self,
        max_steps: int | None = DEFAULT_MAX_STEPS,
        handler_failure_mode: HandlerFailureMode = HandlerFailureMode.RAISE,
        failed_step_store: FailedStepStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.max_steps = max_steps
        self.handler_failure_mode = handler_failure_mode
        self.failed_step_store = (
            failed_step_store if failed_step_store is not None else InMemoryFailedStepStore()
        )
        self._log = logger or configure_engine_logger()
        self._registry = HandlerRegistry()
        self._store = ChainStore()
        self._state = DrainState.IDLE
        self._stats = EngineStats()
        self._steps_this_drain = 0
        self._idle_waiters: list[asyncio.Future[None]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

        self._registry.register(DELAY_EVENT, self._handle_delay)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a handler for an event name.

        Returns:
            A function that removes exactly this registration.
        """
        return self._registry.register(event, handler)

    register = on

    def register_handler(self, handler: StepHandler) -> Callable[[], None]:
        """Register a StepHandler for every event name in its `listens_to`.

        Returns:
            A function that removes all registrations made by this call.
        """
        self._validate_handler(handler)
        unregisters = [self._registry.register(event, handler) for event in handler.listens_to]

        def unregister() -> None:
            for remove in unregisters:
                remove()

        return unregister

    def _validate_handler(self, handler: StepHandler) -> None:
        if not isinstance(handler.listens_to, list):
            raise TypeError(
                f"{handler.name}.listens_to must be a list[str], "
                f"got {type(handler.listens_to).__name__}"
            )
        for item in handler.listens_to:
            if not isinstance(item, str):
                raise TypeError(
                    f"{handler.name}.listens_to must contain only strings, "
                    f"found {type(item).__name__}: {item!r}"
                )

    def has_handlers(self, event: str) -> bool:
        return event in self._registry

    # ------------------------------------------------------------------
    # Chain API
    # ------------------------------------------------------------------

    def enqueue(self, event: str, payload: Mapping[str, Any] | None = None) -> "Engine":
        """Append a step; start a drain if the engine is idle."""
        step = Step(event=event, payload=copy.deepcopy(dict(payload or {})))
        self._store.append(step)
        if self._state is DrainState.IDLE:
            self._start_drain()
        return self

    add = enqueue

    def delay(self, duration: float) -> "Engine":
        """Append a delay of `duration` milliseconds to the chain."""
        return self.enqueue(DELAY_EVENT, {"duration": duration})

    sleep = delay

    def batch(self, items: Iterable[BatchItem | Mapping[str, Any]]) -> "Engine":
        """Replace the chain with `items` and start draining it.

        Items are validated before the current chain is touched, so an
        invalid plan leaves the engine as it was.
        """
        steps = [self._coerce_batch_item(item).to_step() for item in items]
        was_draining = self._state is DrainState.DRAINING
        self._store.replace(steps)
        self._state = DrainState.IDLE
        if was_draining:
            self._log.debug(
                "Chain replaced during drain",
                extra={"epoch": self._store.epoch, "steps": len(steps)},
            )
        if steps:
            self._start_drain()
        else:
            self._wake_waiters()
        return self

    def clear(self) -> "Engine":
        """Empty the chain. Continuations already handed out become inert."""
        was_draining = self._state is DrainState.DRAINING
        self._store.clear()
        self._state = DrainState.IDLE
        if was_draining:
            self._log.debug("Chain cleared during drain", extra={"epoch": self._store.epoch})
        self._wake_waiters()
        return self

    @staticmethod
    def _coerce_batch_item(item: BatchItem | Mapping[str, Any]) -> BatchItem:
        if isinstance(item, BatchItem):
            return item
        return BatchItem.model_validate(copy.deepcopy(dict(item)))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> DrainState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is DrainState.IDLE

    @property
    def pending(self) -> int:
        """Number of steps currently held in the chain."""
        return len(self._store)

    def steps(self) -> list[Step]:
        return self._store.snapshot()

    def get_stats(self) -> EngineStats:
        """Return a copy of current statistics.

        Returns a snapshot that is safe to inspect without affecting internal state.
        """
        return EngineStats(
            drains_started=self._stats.drains_started,
            drains_completed=self._stats.drains_completed,
            steps_dispatched=self._stats.steps_dispatched,
            steps_skipped=self._stats.steps_skipped,
            stale_continuations=self._stats.stale_continuations,
            reused_continuations=self._stats.reused_continuations,
            handler_errors=defaultdict(int, self._stats.handler_errors),
        )

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until the engine is next IDLE.

        Raises:
            TimeoutError: If the engine is still draining after `timeout` seconds.
            Exception: The handler error, if a handler failed in RAISE mode.
        """
        if self._state is DrainState.IDLE:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        try:
            await asyncio.wait_for(waiter, timeout)
        finally:
            if waiter in self._idle_waiters:
                self._idle_waiters.remove(waiter)

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    def _start_drain(self) -> None:
        self._state = DrainState.DRAINING
        self._steps_this_drain = 0
        self._stats.drains_started += 1
        self._log.info(
            "Drain started",
            extra={"epoch": self._store.epoch, "steps": len(self._store)},
        )
        self._drain(0, {})

    def _drain(self, index: int, prev: Payload) -> None:
        epoch = self._store.epoch
        while True:
            if self._store.epoch != epoch:
                self._log.debug(
                    "Abandoning walk over replaced chain",
                    extra={"epoch": epoch, "step_index": index},
                )
                return

            step = self._store.get(index)
            if step is None:
                self._finish_drain()
                return

            self._steps_this_drain += 1
            if self.max_steps is not None and self._steps_this_drain > self.max_steps:
                self._abort_drain(ChainLimitError(self.max_steps))

            handlers = self._registry.handlers_for(step.event)
            if not handlers:
                self._stats.steps_skipped += 1
                self._log.debug(
                    f"No handler for {step.event}, skipping",
                    extra={"event": step.event, "step_index": index, "epoch": epoch},
                )
                index += 1
                continue

            continuation = Continuation(self, epoch, index)
            self._dispatch(step, index, prev, handlers, continuation)

            if not continuation.called:
                continuation.detach()
                return
            if self._store.epoch != epoch:
                continue
            index += 1
            prev = continuation.result

    def _dispatch(
        self,
        step: Step,
        index: int,
        prev: Payload,
        handlers: tuple[Handler, ...],
        continuation: Continuation,
    ) -> None:
        self._stats.steps_dispatched += 1
        self._log.debug(
            f"Dispatching {step.event} to {len(handlers)} handler(s)",
            extra={"event": step.event, "step_index": index, "epoch": continuation.epoch},
        )
        for handler in handlers:
            try:
                result = handler(step.dispatch_payload(prev), continuation)
                if inspect.isawaitable(result):
                    self._schedule(result, step, index, prev, handler, continuation)
            except Exception as e:
                self._on_handler_error(step, index, prev, handler, e, continuation)
                if self.handler_failure_mode is HandlerFailureMode.RAISE:
                    raise

    def _schedule(
        self,
        awaitable: Awaitable[Any],
        step: Step,
        index: int,
        prev: Payload,
        handler: Handler,
        continuation: Continuation,
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise
        task = loop.create_task(self._await_handler(awaitable))
        self._tasks.add(task)

        def done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            error = t.exception()
            if error is None:
                return
            self._on_handler_error(step, index, prev, handler, error, continuation)

        task.add_done_callback(done)

    @staticmethod
    async def _await_handler(awaitable: Awaitable[Any]) -> Any:
        return await awaitable

    def _on_handler_error(
        self,
        step: Step,
        index: int,
        prev: Payload,
        handler: Handler,
        error: BaseException,
        continuation: Continuation,
    ) -> None:
        name = _handler_name(handler)
        self._stats.handler_errors[name] += 1
        self._log.error(
            f"Handler {name} raised exception: {error}",
            extra={
                "event": step.event,
                "step_index": index,
                "epoch": continuation.epoch,
                "handler": name,
                "error": str(error),
            },
        )

        if self.handler_failure_mode is HandlerFailureMode.RAISE:
            self._fail_waiters(error)
            return

        if self.handler_failure_mode is HandlerFailureMode.STORE:
            self.failed_step_store.store(step, error)
            self._log.warning(
                f"Stored failed step: {step.event}",
                extra={"event": step.event, "step_index": index, "error": str(error)},
            )
        if not continuation.called:
            continuation(prev)

    def _resume(self, continuation: Continuation) -> None:
        if continuation.epoch != self._store.epoch or self._state is not DrainState.DRAINING:
            self._stats.stale_continuations += 1
            self._log.debug(
                "Ignoring continuation from a replaced chain",
                extra={"epoch": continuation.epoch, "step_index": continuation.index},
            )
            return
        self._drain(continuation.index + 1, continuation.result)

    def _on_reused_continuation(self, continuation: Continuation) -> None:
        self._stats.reused_continuations += 1
        self._log.warning(
            "Continuation called more than once; ignoring",
            extra={"epoch": continuation.epoch, "step_index": continuation.index},
        )

    def _finish_drain(self) -> None:
        self._store.clear()
        self._state = DrainState.IDLE
        self._stats.drains_completed += 1
        self._log.info("Drain complete", extra={"steps": self._steps_this_drain})
        self._wake_waiters()

    def _abort_drain(self, error: Exception) -> None:
        self._log.error(str(error), extra={"epoch": self._store.epoch, "error": str(error)})
        self._store.clear()
        self._state = DrainState.IDLE
        self._fail_waiters(error)
        raise error

    # ------------------------------------------------------------------
    # Delay primitive
    # ------------------------------------------------------------------

    def _handle_delay(self, payload: Payload, next: Continuation) -> None:
        duration = payload.get("duration") or 0
        seconds = max(float(duration), 0.0) / 1000
        loop = asyncio.get_running_loop()
        loop.call_later(seconds, next, payload.get("prev") or {})

    # ------------------------------------------------------------------
    # Waiters
    # ------------------------------------------------------------------

    def _wake_waiters(self) -> None:
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _fail_waiters(self, error: BaseException) -> None:
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)


def _handler_name(handler: Handler) -> str:
    if isinstance(handler, StepHandler):
        return handler.name
    return getattr(handler, "__qualname__", None) or type(handler).__name__
