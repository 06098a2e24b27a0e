"""
Run locks guarding against overlapping mining runs.

Two kinds of lock share the run_locks table:
- ``schedule:<job>`` while a scheduled job is executing
- ``mining:<profile_id>`` while the engine works on a profile
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from icpminer.persistence.models import RunLock


def profile_lock_name(profile_id: str) -> str:
    return f"mining:{profile_id}"


def schedule_lock_name(job_name: str) -> str:
    return f"schedule:{job_name}"


class LockManager:
    """Acquires and releases RunLock rows with a time-to-live."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _get(self, lock_name: str) -> RunLock | None:
        stmt = select(RunLock).where(RunLock.lock_name == lock_name)
        return self._session.execute(stmt).scalar_one_or_none()

    def acquire(self, lock_name: str, holder_id: str, ttl_minutes: int = 60) -> bool:
        """Take the lock, or refresh it if we already hold it.

        An expired lock held by someone else is taken over.

        Returns:
            False if another holder owns an unexpired lock
        """
        now = datetime.utcnow()
        lock = self._get(lock_name)

        if lock is not None and lock.expires_at > now and lock.holder_id != holder_id:
            return False

        if lock is None:
            lock = RunLock(lock_name=lock_name)
            self._session.add(lock)

        lock.holder_id = holder_id
        lock.acquired_at = now
        lock.expires_at = now + timedelta(minutes=ttl_minutes)
        self._session.commit()
        return True

    def release(self, lock_name: str, holder_id: str) -> bool:
        """Release a lock we hold. Returns False if it is not ours."""
        lock = self._get(lock_name)
        if lock is None or lock.holder_id != holder_id:
            return False

        self._session.delete(lock)
        self._session.commit()
        return True

    def holder(self, lock_name: str) -> str | None:
        """Current holder of an unexpired lock."""
        lock = self._get(lock_name)
        if lock is None or lock.expires_at <= datetime.utcnow():
            return None
        return lock.holder_id

    def is_locked(self, lock_name: str) -> bool:
        return self.holder(lock_name) is not None

    def cleanup_expired(self) -> int:
        """Remove all expired locks. Returns count removed."""
        stmt = delete(RunLock).where(RunLock.expires_at <= datetime.utcnow())
        result = self._session.execute(stmt)
        self._session.commit()
        return int(result.rowcount or 0)
