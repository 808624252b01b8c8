"""Core components for the chainbridge step-chain engine.

This module exposes the primary types, constants, and utilities:

Types:
    Step: Immutable, validated chain step with an event name and payload.
    BatchItem: One entry of a serialized batch plan.
    StepHandler: Base class for class-based handlers.
    Engine: Sequential dispatcher with continuation-based advancement.
    Continuation: Single-use callback that completes a step.
    EngineStats: Counters collected by an Engine.
    DrainState: IDLE / DRAINING lifecycle of a drain.

Failure Handling:
    HandlerFailureMode: Enum for handler failure strategies (RAISE, LOG, STORE).
    ChainLimitError: Raised when a drain exceeds max_steps.
    FailedStepStore: Protocol for storing failed steps.
    InMemoryFailedStepStore: Simple in-memory implementation.

Constants:
    DELAY_EVENT: Reserved event name of the delay primitive.
    BATCH_DELAY_MARKER: Event name marking a delay in a batch plan.
"""

from chainbridge.core.chain import ChainStore, DrainState
from chainbridge.core.engine import (
    ChainLimitError,
    Continuation,
    Engine,
    EngineStats,
    FailedStepStore,
    HandlerFailureMode,
    InMemoryFailedStepStore,
)
from chainbridge.core.handler import StepHandler
from chainbridge.core.registry import HandlerRegistry
from chainbridge.core.step import (
    BATCH_DELAY_MARKER,
    DELAY_EVENT,
    BatchItem,
    Step,
)

__all__ = [
    "Step",
    "BatchItem",
    "StepHandler",
    "HandlerRegistry",
    "ChainStore",
    "DrainState",
    "Engine",
    "Continuation",
    "EngineStats",
    "HandlerFailureMode",
    "ChainLimitError",
    "FailedStepStore",
    "InMemoryFailedStepStore",
    "DELAY_EVENT",
    "BATCH_DELAY_MARKER",
]
