"""Individual sign-ups and the team-friendly challenge slot."""
import logging
from sqlalchemy.exc import IntegrityError
from pitchside.app import db
from pitchside.errors import NotFound, InvalidState, Forbidden, Conflict
from pitchside.models import Registration, SIDES
from pitchside.services.counters import count_registrations, recount_match
from pitchside.services.directories import UserDirectory, TeamDirectory
from pitchside.services.effects import Outcome, Notify, match_update

logger = logging.getLogger(__name__)


def normalize_side(raw_side, allow_none=True):
    """Return 'HOME'/'AWAY', or None for an unassigned request."""
    if raw_side is None or str(raw_side).strip() == '':
        if allow_none:
            return None
        raise InvalidState('Side must be HOME or AWAY')
    side = str(raw_side).strip().upper()
    if side not in SIDES:
        raise InvalidState('Side must be HOME, AWAY or NONE')
    if side == 'NONE':
        if allow_none:
            return None
        raise InvalidState('Side must be HOME or AWAY')
    return side


class RegistrationLedger:
    def __init__(self, users=None, teams=None):
        self.users = users or UserDirectory()
        self.teams = teams or TeamDirectory()

    # ── helpers ──────────────────────────────────────────────────────

    def _require_user(self, user_id):
        user = self.users.find(user_id)
        if not user:
            raise NotFound('User not found')
        return user

    def _adjust_matches_played(self, user_id, amount):
        try:
            self.users.adjust_stats(user_id, {'matches': amount})
        except Exception:
            logger.exception('Could not adjust matches played for user %s', user_id)

    def _lighter_side(self, match_id):
        home = count_registrations(match_id, 'HOME')
        away = count_registrations(match_id, 'AWAY')
        return 'HOME' if home <= away else 'AWAY'

    def _add_registration(self, match, user_id, side):
        registration = Registration(
            match_id=match.id, user_id=user_id, side=side, status='approved',
        )
        db.session.add(registration)
        try:
            db.session.flush()
        except IntegrityError:
            raise Conflict('Player is already registered for this match')
        return registration

    def _team_for_side(self, match, side):
        team_id = match.home_team_id if side == 'HOME' else match.away_team_id
        if not team_id:
            raise InvalidState(f'No team has taken the {side} side yet')
        return team_id

    def _require_side_admin(self, user_id, team_id):
        user = self._require_user(user_id)
        if user.team_id != team_id:
            raise Forbidden('You are not a member of that team')
        if not self.teams.is_admin(team_id, user.id):
            raise Forbidden('Only team admins can manage the match roster')
        return user

    def _team_admin_ids(self, team_id):
        team = self.teams.find(team_id)
        if not team:
            return []
        ids = [team.captain_id] if team.captain_id else []
        ids.extend(uid for uid in team.admin_ids if uid not in ids)
        return ids

    def register_members(self, match, member_ids, side):
        """Register every listed member not already on the match; returns the count added."""
        registered = {
            row.user_id for row in Registration.query.filter_by(match_id=match.id).all()
        }
        added = 0
        for member_id in member_ids:
            if member_id in registered:
                continue
            if not self.users.find(member_id):
                logger.warning('Skipping unknown team member %s for match %s', member_id, match.id)
                continue
            self._add_registration(match, member_id, side)
            self._adjust_matches_played(member_id, 1)
            registered.add(member_id)
            added += 1
        return added

    # ── operations ───────────────────────────────────────────────────

    def register(self, match, user_id, requested_side=None):
        if match.status != 'registering':
            raise InvalidState('Registration is not open for this match')
        user = self._require_user(user_id)

        if match.match_type == 'LEAGUE':
            raise InvalidState('League matches are entered through team registration')
        if match.match_type == 'TEAM_FRIENDLY':
            return self._accept_challenge(match, user)

        existing = Registration.query.filter_by(match_id=match.id, user_id=user.id).first()
        if existing:
            raise Conflict('You are already registered for this match')

        side = normalize_side(requested_side) or self._lighter_side(match.id)
        self._add_registration(match, user.id, side)
        recount_match(match)
        self._adjust_matches_played(user.id, 1)

        outcome = Outcome({'message': 'Registered', 'side': side})
        return outcome.add(match_update(match.id, 'registered'))

    def _accept_challenge(self, match, user):
        if not user.team_id:
            raise InvalidState('You have not joined a team')
        if user.team_id == match.home_team_id:
            raise Conflict('You cannot challenge your own team')
        if not self.teams.is_admin(user.team_id, user.id):
            raise Forbidden('Only team admins can accept a challenge')
        if match.away_team_id:
            raise Conflict('This match has already been challenged')

        match.away_team_id = user.team_id
        match.status = 'ongoing'
        existing = Registration.query.filter_by(match_id=match.id, user_id=user.id).first()
        if existing:
            existing.side = 'AWAY'
        else:
            self._add_registration(match, user.id, 'AWAY')
            self._adjust_matches_played(user.id, 1)
        recount_match(match)

        away_team = self.teams.find(user.team_id)
        outcome = Outcome({'message': 'Challenge accepted'})
        for admin_id in self._team_admin_ids(match.home_team_id):
            outcome.add(Notify(
                admin_id, 'Challenge accepted',
                f'{away_team.name if away_team else "A team"} accepted your friendly "{match.title}"',
                'MATCH_CHALLENGE', match.id,
            ))
        return outcome.add(match_update(match.id, 'challenge_accepted'))

    def cancel(self, match, user_id):
        """Individual cancel, or full challenge withdrawal by the away team's admin."""
        if match.status == 'finished':
            raise InvalidState('This match has finished and can no longer be cancelled')
        user = self._require_user(user_id)

        if (
            match.match_type == 'TEAM_FRIENDLY'
            and user.team_id
            and user.team_id == match.away_team_id
            and self.teams.is_admin(user.team_id, user.id)
        ):
            return self._withdraw_challenge(match, user)

        registration = Registration.query.filter_by(match_id=match.id, user_id=user.id).first()
        if not registration:
            raise NotFound('You are not registered for this match')
        db.session.delete(registration)
        recount_match(match)
        self._adjust_matches_played(user.id, -1)

        return Outcome({'message': 'Registration cancelled'}).add(
            match_update(match.id, 'registration_cancelled')
        )

    def _withdraw_challenge(self, match, user):
        away_rows = Registration.query.filter_by(match_id=match.id, side='AWAY').all()
        removed_ids = [row.user_id for row in away_rows]
        for row in away_rows:
            db.session.delete(row)

        match.away_team_id = None
        if match.status == 'ongoing':
            match.status = 'registering'
        recount_match(match)
        for removed_id in removed_ids:
            self._adjust_matches_played(removed_id, -1)

        outcome = Outcome({'message': 'Challenge withdrawn', 'removed_count': len(removed_ids)})
        for admin_id in self._team_admin_ids(match.home_team_id):
            outcome.add(Notify(
                admin_id, 'Challenge withdrawn',
                f'Your friendly "{match.title}" is looking for a new opponent',
                'MATCH_CHALLENGE', match.id,
            ))
        return outcome.add(match_update(match.id, 'challenge_withdrawn'))

    def add_player(self, match, user_id, player_id, side):
        if match.match_type != 'TEAM_FRIENDLY':
            raise InvalidState('Players can only be added to team friendlies')
        if match.status == 'finished':
            raise InvalidState('This match has finished')
        side = normalize_side(side, allow_none=False)
        team_id = self._team_for_side(match, side)
        self._require_side_admin(user_id, team_id)

        target = self.users.find(player_id)
        if not target:
            raise NotFound('Player not found')

        existing = Registration.query.filter_by(match_id=match.id, user_id=target.id).first()
        if existing:
            if existing.side == side:
                return Outcome({'message': 'Player is already on this side'})
            raise Conflict('Player is already registered on the other side')

        self._add_registration(match, target.id, side)
        recount_match(match)
        self._adjust_matches_played(target.id, 1)

        outcome = Outcome({'message': 'Player added'})
        if target.id != user_id:
            outcome.add(Notify(
                target.id, 'Added to match',
                f'You were added to the {side.lower()} squad for "{match.title}"',
                'MATCH_ROSTER', match.id,
            ))
        return outcome.add(match_update(match.id, 'player_added'))

    def sync_team_players(self, match, user_id, side):
        if match.match_type != 'TEAM_FRIENDLY':
            raise InvalidState('Team rosters can only be synced for team friendlies')
        if match.status == 'finished':
            raise InvalidState('This match has finished')
        side = normalize_side(side, allow_none=False)
        team_id = self._team_for_side(match, side)
        self._require_side_admin(user_id, team_id)

        members = self.teams.members(team_id)
        if not members:
            return Outcome({'message': 'The team has no members', 'added_count': 0})

        added = self.register_members(match, members, side)
        recount_match(match)
        outcome = Outcome({
            'message': f'Team roster synced, {added} player(s) added',
            'added_count': added,
        })
        if added:
            outcome.add(match_update(match.id, 'team_synced'))
        return outcome
