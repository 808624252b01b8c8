"""chainbridge - Sequential event-chain orchestration for Python."""

from chainbridge.context import ContextBus, ContextRecord
from chainbridge.core import (
    BATCH_DELAY_MARKER,
    DELAY_EVENT,
    BatchItem,
    ChainLimitError,
    Continuation,
    DrainState,
    Engine,
    EngineStats,
    FailedStepStore,
    HandlerFailureMode,
    InMemoryFailedStepStore,
    Step,
    StepHandler,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "Step",
    "BatchItem",
    "StepHandler",
    "Engine",
    "Continuation",
    "EngineStats",
    "DrainState",
    "DELAY_EVENT",
    "BATCH_DELAY_MARKER",
    # Failure handling
    "HandlerFailureMode",
    "ChainLimitError",
    "FailedStepStore",
    "InMemoryFailedStepStore",
    # Context
    "ContextBus",
    "ContextRecord",
    # Meta
    "__version__",
]
