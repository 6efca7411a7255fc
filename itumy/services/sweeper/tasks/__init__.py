"""Sweep tasks."""

from itumy.services.sweeper.tasks.expired_sessions import ExpiredSessionSweep
from itumy.services.sweeper.tasks.out_of_date_keys import OutOfDateKeySweep

__all__ = [
    "ExpiredSessionSweep",
    "OutOfDateKeySweep",
]
