"""League entry: one roster submission per team per match, audited by admins."""
import logging
from sqlalchemy.exc import IntegrityError
from pitchside.app import db
from pitchside.errors import NotFound, InvalidState, Forbidden, Conflict
from pitchside.models import TeamRegistration, TEAM_REGISTRATION_STATUSES
from pitchside.services.counters import recount_match
from pitchside.services.directories import UserDirectory, TeamDirectory
from pitchside.services.effects import Outcome, Notify, match_update
from pitchside.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


def normalize_player_ids(raw_ids):
    """Keep order, drop duplicates; None when the payload is not a list of ids."""
    if not isinstance(raw_ids, list):
        return None
    seen = set()
    normalized = []
    for raw in raw_ids:
        try:
            player_id = int(raw)
        except (TypeError, ValueError):
            return None
        if player_id <= 0:
            return None
        if player_id in seen:
            continue
        seen.add(player_id)
        normalized.append(player_id)
    return normalized


class TeamRegistrationLedger:
    def __init__(self, users=None, teams=None):
        self.users = users or UserDirectory()
        self.teams = teams or TeamDirectory()

    def _require_team_admin(self, user_id):
        user = self.users.find(user_id)
        if not user:
            raise NotFound('User not found')
        if not user.team_id:
            raise InvalidState('You have not joined a team')
        team = self.teams.find(user.team_id)
        if not team:
            raise NotFound('Team not found')
        if not self.teams.is_admin(team.id, user.id):
            raise Forbidden('Only team admins can manage league registration')
        return user, team

    def _require_open_league(self, match):
        if match.match_type != 'LEAGUE':
            raise InvalidState('Only league matches accept team registrations')
        if match.status != 'registering':
            raise InvalidState('Registration is not open for this match')

    def _upsert(self, match, team, player_ids):
        registration = TeamRegistration.query.filter_by(
            match_id=match.id, team_id=team.id,
        ).first()
        if registration:
            registration.player_ids = player_ids
            registration.status = 'confirmed'
            registration.updated_at = utcnow_naive()
        else:
            registration = TeamRegistration(
                match_id=match.id, team_id=team.id, status='confirmed',
            )
            registration.player_ids = player_ids
            db.session.add(registration)
        try:
            db.session.flush()
        except IntegrityError:
            raise Conflict('Your team has already submitted a registration')
        recount_match(match)
        return registration

    def submit(self, match, user_id, player_ids):
        self._require_open_league(match)
        _, team = self._require_team_admin(user_id)
        normalized = normalize_player_ids(player_ids)
        if normalized is None:
            raise InvalidState('playerIds must be a list of numeric player IDs')
        if not normalized:
            raise InvalidState('Select at least one player')

        registration = self._upsert(match, team, normalized)
        return Outcome(registration).add(match_update(match.id, 'league_registered'))

    def auto_submit(self, match, user_id):
        self._require_open_league(match)
        _, team = self._require_team_admin(user_id)
        members = self.teams.members(team.id)
        if not members:
            raise InvalidState('Your team has no members')

        registration = self._upsert(match, team, members)
        outcome = Outcome({
            'message': f'Team registration synced, {len(members)} player(s) submitted',
            'registration_id': registration.id,
        })
        return outcome.add(match_update(match.id, 'league_registered'))

    def withdraw(self, match, user_id):
        _, team = self._require_team_admin(user_id)
        registration = TeamRegistration.query.filter_by(
            match_id=match.id, team_id=team.id,
        ).first()
        if not registration:
            raise NotFound('Your team is not registered for this match')
        db.session.delete(registration)
        db.session.flush()
        recount_match(match)
        return Outcome({'message': 'Team registration cancelled'}).add(
            match_update(match.id, 'league_withdrawn')
        )

    def audit(self, match, registration, request_user_id, status, feedback=None):
        reviewer = self.users.find(request_user_id)
        if not reviewer or not reviewer.is_admin:
            raise Forbidden('Admin access required')
        status = str(status or '').strip().lower()
        if status not in TEAM_REGISTRATION_STATUSES:
            raise InvalidState(f'Status must be one of: {", ".join(TEAM_REGISTRATION_STATUSES)}')

        registration.status = status
        if feedback:
            registration.feedback = str(feedback).strip()[:2000]
        registration.updated_at = utcnow_naive()
        db.session.flush()
        recount_match(match)

        outcome = Outcome(registration)
        team = self.teams.find(registration.team_id)
        if team and team.captain_id:
            body = f'Your registration for "{match.title}" is now {status}'
            if registration.feedback:
                body = f'{body}: {registration.feedback}'
            outcome.add(Notify(team.captain_id, 'Registration reviewed', body, 'TEAM_AUDIT', match.id))
        return outcome.add(match_update(match.id, 'league_audited'))

    def my_registration(self, match_id, user_id):
        user = self.users.find(user_id)
        if not user or not user.team_id:
            return None
        return TeamRegistration.query.filter_by(match_id=match_id, team_id=user.team_id).first()

    def list_all(self, request_user_id):
        reviewer = self.users.find(request_user_id)
        if not reviewer or not reviewer.is_admin:
            raise Forbidden('Admin access required')
        return TeamRegistration.query.order_by(
            TeamRegistration.created_at.desc(), TeamRegistration.id.desc(),
        ).all()
