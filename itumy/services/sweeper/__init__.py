"""Background sweeper for time-driven state changes.

Two sweeps exist: ``OutOfDateKeySweep`` flags API keys left unused for too
long and ``ExpiredSessionSweep`` drops admin sessions past their lifetime.
"""

from itumy.services.sweeper.base import SweepResult, SweepTask
from itumy.services.sweeper.scheduler import SweepScheduler

__all__ = [
    "SweepResult",
    "SweepScheduler",
    "SweepTask",
]
