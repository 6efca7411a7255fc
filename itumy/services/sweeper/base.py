"""Sweep task base classes and result structures."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class SweepResult:
    """Result of a sweep task execution.

    Attributes:
        task_name: Name of the sweep task
        updated_count: Number of rows changed by the sweep
        errors: List of error messages
    """

    task_name: str = ""
    updated_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether the task completed without errors."""
        return len(self.errors) == 0

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)


class SweepTask(ABC):
    """Abstract base class for sweep tasks.

    - OutOfDateKeySweep: flag keys unused for too long
    - ExpiredSessionSweep: drop admin sessions past their lifetime
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the task name (for logging)."""
        ...

    @abstractmethod
    async def run(self) -> SweepResult:
        """Execute the sweep once and summarize what changed.

        Sweeps must be idempotent: running again with nothing newly
        qualifying changes nothing.
        """
        ...
