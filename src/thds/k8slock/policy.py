import typing as ty
from datetime import datetime, timedelta


class RetryPolicy(ty.NamedTuple):
    """How long `get_lock(True)` keeps trying a busy lock.

    interval=None means 'use the lock's configured retry interval'. With neither
    max_attempts nor deadline set, we wait forever.
    """

    interval: ty.Optional[timedelta] = None
    max_attempts: ty.Optional[int] = None
    deadline: ty.Optional[timedelta] = None

    def should_give_up(self, attempts: int, started: datetime, now: datetime) -> bool:
        if self.max_attempts is not None and attempts >= self.max_attempts:
            return True
        if self.deadline is not None and now - started >= self.deadline:
            return True
        return False


FOREVER = RetryPolicy()
