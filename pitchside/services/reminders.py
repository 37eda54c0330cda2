"""Day-before reminders for rostered league and friendly players.

Meant to be run hourly (``flask send-reminders`` from cron). A match is picked
up once its kickoff is about ``REMINDER_WINDOW_HOURS`` away, give or take an
hour, and is flagged so it is never reminded twice.
"""
import logging
from datetime import timedelta
from flask import current_app
from pitchside.app import db
from pitchside.models import Match, TeamRegistration
from pitchside.services.directories import TeamDirectory
from pitchside.services.effects import Outcome, Notify, dispatch_effects
from pitchside.services.match_locks import run_in_match_unit
from pitchside.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


def _roster_ids(match_id, teams):
    ids = []
    approved = TeamRegistration.query.filter_by(
        match_id=match_id, status='approved',
    ).order_by(TeamRegistration.id.asc()).all()
    for registration in approved:
        roster = registration.player_ids or teams.members(registration.team_id)
        for user_id in roster:
            if user_id not in ids:
                ids.append(user_id)
    return approved, ids


def _remind(match_id, teams):
    match = db.session.get(Match, match_id)
    if not match or match.reminder_sent:
        return Outcome(0)
    approved, user_ids = _roster_ids(match.id, teams)
    if not approved:
        # Nothing approved yet; try again on the next run.
        return Outcome(0)

    outcome = Outcome(1)
    for user_id in user_ids:
        outcome.add(Notify(
            user_id, 'Match reminder',
            f'"{match.title}" kicks off in about 24 hours, please be on time.',
            'MATCH_REMINDER', match.id,
        ))
    match.reminder_sent = True
    match.touch()
    logger.info('Queued reminders for %s player(s) of match %s', len(user_ids), match.id)
    return outcome


def due_match_ids(now=None):
    now = now or utcnow_naive()
    hours = current_app.config.get('REMINDER_WINDOW_HOURS', 24)
    window_start = now + timedelta(hours=hours - 1)
    window_end = now + timedelta(hours=hours + 1)
    rows = db.session.query(Match.id).filter_by(reminder_sent=False).filter(
        Match.start_time.isnot(None),
        Match.start_time >= window_start,
        Match.start_time <= window_end,
    ).order_by(Match.start_time.asc()).all()
    return [row[0] for row in rows]


def send_match_reminders(now=None, notifier=None, teams=None):
    """Remind every due match; returns how many matches were flagged."""
    teams = teams or TeamDirectory()
    reminded = 0
    for match_id in due_match_ids(now):
        outcome = run_in_match_unit(match_id, lambda: _remind(match_id, teams))
        dispatch_effects(outcome.effects, notifier)
        reminded += outcome.result
    return reminded
