"""Time-driven match lifecycle.

``resolve_status`` is pure: it only looks at the match's time windows, type
and opponent slot. ``refresh_status`` applies it to a model and reports
whether anything changed so callers write only on an actual transition.
"""
import logging
from sqlalchemy.orm.exc import StaleDataError
from pitchside.app import db
from pitchside.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


def _registration_status(now, reg_start, reg_end):
    # The window only applies when both ends are configured.
    if reg_start is None or reg_end is None:
        return 'registering'
    if reg_start <= now <= reg_end:
        return 'registering'
    if now > reg_end:
        return 'pending'
    return 'upcoming'


def resolve_status(match, now):
    """Return the lifecycle status ``match`` should have at ``now``."""
    start, end = match.start_time, match.end_time
    if start is None or end is None:
        return match.status

    if now > end:
        status = 'finished'
    elif start <= now <= end:
        status = 'ongoing'
    else:
        status = _registration_status(
            now, match.registration_start_time, match.registration_end_time,
        )

    # A friendly cannot be in progress without an opponent.
    if match.match_type == 'TEAM_FRIENDLY' and status == 'ongoing' and not match.away_team_id:
        status = 'registering'
    return status


def refresh_status(match, now=None):
    """Update ``match.status`` in memory; True when it changed."""
    now = now or utcnow_naive()
    new_status = resolve_status(match, now)
    if new_status == match.status:
        return False
    match.status = new_status
    return True


def refresh_and_persist(matches, now=None):
    """Refresh a batch of matches and commit once if any status moved.

    Runs outside the per-match lock; a concurrent writer simply wins and the
    status is recomputed on the next read.
    """
    now = now or utcnow_naive()
    changed = [match for match in matches if refresh_status(match, now)]
    if not changed:
        return changed
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        logger.info(
            'Status refresh lost a race for match(es) %s; will recompute on next read',
            [match.id for match in changed],
        )
        return []
    return changed
