"""Per-match atomic unit: process-local lock plus optimistic version retry."""
import logging
import threading
from contextlib import contextmanager
from flask import current_app
from sqlalchemy.orm.exc import StaleDataError
from pitchside.app import db
from pitchside.errors import MatchBusy

logger = logging.getLogger(__name__)


class MatchLockRegistry:
    """Hands out one lock per match id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def lock_for(self, match_id):
        with self._guard:
            lock = self._locks.get(match_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[match_id] = lock
            return lock

    def discard(self, match_id):
        """Forget the lock of a match that no longer exists."""
        with self._guard:
            self._locks.pop(match_id, None)

    def acquire(self, match_id, timeout):
        """Return the held lock, or None if it stayed busy for ``timeout``."""
        lock = self.lock_for(match_id)
        if not lock.acquire(timeout=timeout):
            logger.warning('Timed out after %.2fs waiting for match %s lock', timeout, match_id)
            return None
        return lock

    @contextmanager
    def hold(self, match_id, timeout):
        lock = self.acquire(match_id, timeout)
        if lock is None:
            raise MatchBusy()
        try:
            yield
        finally:
            lock.release()


match_locks = MatchLockRegistry()


def run_in_match_unit(match_id, work, timeout=None, retries=None):
    """Run ``work()`` under the match lock and commit its changes.

    ``work`` must re-read everything it needs from the database; it is called
    again from scratch when another writer bumped the match version first.
    A busy lock and a version conflict both count as a failed attempt.
    """
    if timeout is None:
        timeout = current_app.config.get('MATCH_LOCK_TIMEOUT_SECONDS', 5.0)
    if retries is None:
        retries = current_app.config.get('MATCH_LOCK_RETRIES', 3)

    attempts = max(1, int(retries) + 1)
    lock_busy = False
    for attempt in range(1, attempts + 1):
        lock = match_locks.acquire(match_id, timeout)
        if lock is None:
            lock_busy = True
            logger.info('Match %s lock busy (attempt %s/%s)', match_id, attempt, attempts)
            continue
        lock_busy = False
        try:
            result = work()
            db.session.commit()
            return result
        except StaleDataError:
            db.session.rollback()
            logger.info(
                'Version conflict on match %s (attempt %s/%s)',
                match_id, attempt, attempts,
            )
        except Exception:
            db.session.rollback()
            raise
        finally:
            lock.release()
    if lock_busy:
        raise MatchBusy()
    raise MatchBusy('Match was modified concurrently, please retry')
