"""Chain store and drain state for the engine.

The store is an append-only buffer during a drain. It is only ever emptied
as a whole: when a drain reaches the end, or by an explicit clear/replace.
Each clear/replace bumps the store's epoch so continuations issued against
the old contents can tell they are stale.
"""

from collections.abc import Iterable
from enum import Enum

from chainbridge.core.step import Step


class DrainState(Enum):
    """Lifecycle of the drain: IDLE -> DRAINING -> IDLE."""

    IDLE = "idle"
    DRAINING = "draining"


class ChainStore:
    """Ordered, growable sequence of steps owned by a single engine."""

    def __init__(self) -> None:
        self._steps: list[Step] = []
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    def append(self, step: Step) -> int:
        """Append a step and return the new length."""
        self._steps.append(step)
        return len(self._steps)

    def replace(self, steps: Iterable[Step]) -> int:
        """Atomically swap the contents for `steps` and return the new length."""
        self._steps = list(steps)
        self._epoch += 1
        return len(self._steps)

    def clear(self) -> None:
        self._steps = []
        self._epoch += 1

    def get(self, index: int) -> Step | None:
        """Read the step at `index` from the live store, or None past the end."""
        if 0 <= index < len(self._steps):
            return self._steps[index]
        return None

    def snapshot(self) -> list[Step]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)
