"""Denormalized match counters, always recomputed from the registration rows."""
import logging
from flask import current_app
from pitchside.app import db
from pitchside.models import (
    Match, Registration, TeamRegistration, ACTIVE_TEAM_REGISTRATION_STATUSES,
)

logger = logging.getLogger(__name__)


def count_registrations(match_id, side=None):
    query = Registration.query.filter_by(match_id=match_id)
    if side:
        query = query.filter_by(side=side)
    return query.count()


def count_active_team_registrations(match_id):
    return TeamRegistration.query.filter(
        TeamRegistration.match_id == match_id,
        TeamRegistration.status.in_(ACTIVE_TEAM_REGISTRATION_STATUSES),
    ).count()


def league_capacity(match):
    return match.max_teams or current_app.config.get('DEFAULT_LEAGUE_MAX_TEAMS', 16)


def teams_ratio(match):
    if match.match_type == 'LEAGUE':
        return f'{count_active_team_registrations(match.id)}/{league_capacity(match)}'
    if match.match_type == 'TEAM_FRIENDLY':
        return '2/2' if match.away_team_id else '1/2'
    return match.teams or '0/2'


def recount_match(match):
    """Rewrite ``current_players`` and ``teams`` from rows; True if they had drifted."""
    players = count_registrations(match.id)
    ratio = teams_ratio(match)
    drifted = players != match.current_players or ratio != match.teams
    match.current_players = players
    match.teams = ratio
    match.touch()
    return drifted


def repair_all_counters():
    drifted = []
    for match in Match.query.order_by(Match.id.asc()).all():
        before = (match.current_players, match.teams)
        if recount_match(match):
            drifted.append(match.id)
            logger.warning(
                'Match %s counters drifted: %s -> %s',
                match.id, before, (match.current_players, match.teams),
            )
    db.session.commit()
    return drifted
