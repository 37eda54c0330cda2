"""Entry point for every match read and write.

Reads refresh the time-driven status before returning. Writes run inside the
per-match unit (lock plus version check), reload the match, refresh its
status, delegate to a ledger, commit, and only then dispatch side effects.
"""
import logging
from flask import current_app
from pitchside.app import db
from pitchside.errors import NotFound, InvalidState, Forbidden
from pitchside.models import (
    Match, Registration, TeamRegistration, MATCH_TYPES, INDIVIDUAL_MATCH_TYPES,
)
from pitchside.services.counters import recount_match, repair_all_counters
from pitchside.services.directories import UserDirectory, TeamDirectory
from pitchside.services.effects import Outcome, dispatch_effects, match_update
from pitchside.services.match_locks import match_locks, run_in_match_unit
from pitchside.services.match_status import refresh_status, refresh_and_persist
from pitchside.services.registrations import RegistrationLedger, normalize_side
from pitchside.services.reminders import send_match_reminders
from pitchside.services.squad_balancer import SquadBalancer
from pitchside.services.stats_reconciler import StatsReconciler
from pitchside.services.team_registrations import TeamRegistrationLedger
from pitchside.time_utils import parse_iso_datetime

logger = logging.getLogger(__name__)

# request key -> column; camelCase and snake_case are both accepted
_TEXT_FIELDS = {
    'title': 'title',
    'description': 'description',
    'location': 'location',
    'rules': 'rules',
    'format': 'match_format',
    'jerseyColor': 'jersey_color',
    'jersey_color': 'jersey_color',
    'awayJerseyColor': 'away_jersey_color',
    'away_jersey_color': 'away_jersey_color',
    'score': 'score',
    'reportContent': 'report_content',
    'report_content': 'report_content',
}
_TIME_FIELDS = {
    'startTime': 'start_time',
    'start_time': 'start_time',
    'endTime': 'end_time',
    'end_time': 'end_time',
    'registrationStartTime': 'registration_start_time',
    'registration_start_time': 'registration_start_time',
    'registrationEndTime': 'registration_end_time',
    'registration_end_time': 'registration_end_time',
}
_INT_FIELDS = {
    'maxPlayers': 'max_players',
    'max_players': 'max_players',
    'maxTeams': 'max_teams',
    'max_teams': 'max_teams',
}
_TEXT_LIMITS = {
    'title': 200, 'location': 200, 'match_format': 10,
    'jersey_color': 40, 'away_jersey_color': 40, 'score': 40,
}


def _pick(data, *keys):
    for key in keys:
        if key in data:
            return True, data[key]
    return False, None


def apply_match_fields(match, data):
    """Copy whitelisted fields from a request payload onto ``match``."""
    for key, column in _TEXT_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        value = '' if value is None else str(value).strip()
        if column == 'title' and not value:
            raise InvalidState('Title is required')
        limit = _TEXT_LIMITS.get(column)
        if limit and len(value) > limit:
            raise InvalidState(f'{key} must be at most {limit} characters')
        if column in ('score', 'report_content') and not value:
            value = None
        setattr(match, column, value)

    for key, column in _TIME_FIELDS.items():
        if key not in data:
            continue
        raw = data[key]
        parsed = parse_iso_datetime(raw)
        if parsed is None and raw not in (None, ''):
            raise InvalidState(f'Invalid {key} timestamp')
        setattr(match, column, parsed)

    for key, column in _INT_FIELDS.items():
        if key not in data:
            continue
        try:
            value = int(data[key])
        except (TypeError, ValueError):
            raise InvalidState(f'{key} must be a whole number')
        if value < 0 or (column == 'max_teams' and value < 2):
            raise InvalidState(f'{key} is out of range')
        setattr(match, column, value)

    present, images = _pick(data, 'reportImages', 'report_images')
    if present:
        if not isinstance(images, list):
            raise InvalidState('reportImages must be a list')
        match.report_images = [str(url) for url in images if url]

    if match.start_time and match.end_time and match.end_time < match.start_time:
        raise InvalidState('End time must be after start time')
    if (
        match.registration_start_time and match.registration_end_time
        and match.registration_end_time < match.registration_start_time
    ):
        raise InvalidState('Registration end must be after registration start')


class MatchOrchestrator:
    def __init__(self, users=None, teams=None, notifier=None, publisher=None):
        self.users = users or UserDirectory()
        self.teams = teams or TeamDirectory()
        self.notifier = notifier
        self.publisher = publisher
        self.ledger = RegistrationLedger(self.users, self.teams)
        self.team_ledger = TeamRegistrationLedger(self.users, self.teams)
        self.balancer = SquadBalancer(self.users)
        self.reconciler = StatsReconciler(self.users)

    def _load(self, match_id):
        match = db.session.get(Match, match_id)
        if not match:
            raise NotFound('Match not found')
        return match

    def _require_user(self, user_id):
        user = self.users.find(user_id)
        if not user:
            raise NotFound('User not found')
        return user

    def _require_organizer(self, match, user_id, action):
        user = self._require_user(user_id)
        if not (user.is_admin or match.initiator_id == user.id):
            raise Forbidden(f'Only the organizer or an admin can {action} this match')
        return user

    def _run(self, match_id, operation):
        def work():
            match = self._load(match_id)
            refresh_status(match)
            return operation(match)

        outcome = run_in_match_unit(match_id, work)
        dispatch_effects(outcome.effects, self.notifier, self.publisher)
        return outcome.result

    # ── reads ────────────────────────────────────────────────────────

    def get_match(self, match_id):
        match = self._load(match_id)
        refresh_and_persist([match])
        return match

    def list_matches(self, match_type=None, status=None):
        query = Match.query
        if match_type:
            query = query.filter(Match.match_type == match_type)
        matches = query.order_by(Match.created_at.desc(), Match.id.desc()).all()
        refresh_and_persist(matches)
        if status:
            matches = [match for match in matches if match.status == status]
        return matches

    def my_registration(self, match_id, user_id):
        self._load(match_id)
        return self.team_ledger.my_registration(match_id, user_id)

    def list_registrations(self, user_id):
        return self.team_ledger.list_all(user_id)

    # ── individual and friendly roster ───────────────────────────────

    def register(self, match_id, user_id, side=None):
        return self._run(match_id, lambda match: self.ledger.register(match, user_id, side))

    def cancel(self, match_id, user_id):
        def operation(match):
            if match.status == 'finished':
                raise InvalidState('This match has finished and can no longer be cancelled')
            if match.match_type == 'LEAGUE':
                return self.team_ledger.withdraw(match, user_id)
            return self.ledger.cancel(match, user_id)
        return self._run(match_id, operation)

    def add_player(self, match_id, user_id, player_id, side):
        return self._run(
            match_id, lambda match: self.ledger.add_player(match, user_id, player_id, side),
        )

    def sync_team_players(self, match_id, user_id, side):
        return self._run(
            match_id, lambda match: self.ledger.sync_team_players(match, user_id, side),
        )

    def distribute_teams(self, match_id, user_id):
        def operation(match):
            self._require_organizer(match, user_id, 'balance squads for')
            return self.balancer.distribute(match)
        return self._run(match_id, operation)

    # ── league ───────────────────────────────────────────────────────

    def league_register(self, match_id, user_id, player_ids):
        return self._run(
            match_id, lambda match: self.team_ledger.submit(match, user_id, player_ids),
        )

    def auto_league_register(self, match_id, user_id):
        return self._run(
            match_id, lambda match: self.team_ledger.auto_submit(match, user_id),
        )

    def audit(self, registration_id, user_id, status, feedback=None):
        registration = db.session.get(TeamRegistration, registration_id)
        if not registration:
            raise NotFound('Registration not found')

        def operation(match):
            current = db.session.get(TeamRegistration, registration_id)
            if not current:
                raise NotFound('Registration not found')
            return self.team_ledger.audit(match, current, user_id, status, feedback)

        return self._run(registration.match_id, operation)

    # ── match records ────────────────────────────────────────────────

    def update_match(self, match_id, user_id, patch):
        if not isinstance(patch, dict):
            raise InvalidState('Invalid JSON payload')

        def operation(match):
            self._require_organizer(match, user_id, 'edit')
            previous_report = match.report_content
            apply_match_fields(match, patch)
            present, events = _pick(patch, 'events')
            outcome = self.reconciler.apply(
                match, user_id,
                raw_events=events if present else None,
                previous_report=previous_report,
            )
            refresh_status(match)
            recount_match(match)
            return outcome

        return self._run(match_id, operation)

    def create_match(self, user_id, data):
        if not isinstance(data, dict):
            raise InvalidState('Invalid JSON payload')
        user = self._require_user(user_id)
        match_type = str(data.get('type') or data.get('match_type') or 'PICKUP').strip().upper()
        if match_type not in MATCH_TYPES:
            raise InvalidState(f'type must be one of: {", ".join(MATCH_TYPES)}')
        if not str(data.get('title') or '').strip():
            raise InvalidState('Title is required')

        team = None
        if match_type == 'LEAGUE' and not user.is_admin:
            raise Forbidden('Only admins can create league matches')
        if match_type == 'TEAM_FRIENDLY':
            if not user.team_id:
                raise InvalidState('You have not joined a team')
            team = self.teams.find(user.team_id)
            if not team:
                raise NotFound('Team not found')
            if not self.teams.is_admin(team.id, user.id):
                raise Forbidden('Only team admins can start a friendly')

        match = Match(
            title='', match_type=match_type, status='registering',
            initiator_id=user.id, current_players=0,
            max_teams=(
                current_app.config.get('DEFAULT_LEAGUE_MAX_TEAMS', 16) if match_type == 'LEAGUE' else 2
            ),
        )
        apply_match_fields(match, data)
        if team:
            match.home_team_id = team.id

        try:
            db.session.add(match)
            db.session.flush()
            if match_type in INDIVIDUAL_MATCH_TYPES:
                side = normalize_side(data.get('side')) or 'NONE'
                self.ledger.register_members(match, [user.id], side)
            elif team:
                self.ledger.register_members(match, self.teams.members(team.id), 'HOME')
            refresh_status(match)
            recount_match(match)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info('User %s created %s match %s', user.id, match_type, match.id)
        dispatch_effects([match_update(match.id, 'match_created')], self.notifier, self.publisher)
        return match

    def delete_match(self, match_id, user_id):
        def operation(match):
            self._require_organizer(match, user_id, 'delete')
            for row in Registration.query.filter_by(match_id=match.id).all():
                db.session.delete(row)
            for row in TeamRegistration.query.filter_by(match_id=match.id).all():
                db.session.delete(row)
            db.session.flush()
            db.session.delete(match)
            return Outcome({'message': 'Match deleted'}).add(match_update(match_id, 'match_deleted'))
        result = self._run(match_id, operation)
        match_locks.discard(match_id)
        return result

    # ── maintenance ──────────────────────────────────────────────────

    def repair_counters(self):
        return repair_all_counters()

    def send_reminders(self, now=None):
        return send_match_reminders(now=now, notifier=self.notifier)
