"""Split individually registered players into HOME and AWAY squads.

Players are bucketed by primary position and buckets are dealt out in a fixed
order, goalkeepers first, so each side gets a keeper before outfield players
are balanced. Inside a bucket the side with fewer players so far gets the
next one, HOME on a tie.
"""
import logging
from pitchside.app import db
from pitchside.errors import InvalidState
from pitchside.models import Registration, INDIVIDUAL_MATCH_TYPES
from pitchside.services.directories import UserDirectory
from pitchside.services.effects import Outcome, match_update

logger = logging.getLogger(__name__)

POSITION_BUCKETS = ('goalkeeper', 'defender', 'midfielder', 'forward', 'unclassified')

_POSITION_ALIASES = {
    'goalkeeper': 'goalkeeper', 'keeper': 'goalkeeper', 'gk': 'goalkeeper',
    'defender': 'defender', 'df': 'defender', 'def': 'defender',
    'cb': 'defender', 'lb': 'defender', 'rb': 'defender',
    'midfielder': 'midfielder', 'mf': 'midfielder', 'mid': 'midfielder',
    'cm': 'midfielder', 'dm': 'midfielder', 'am': 'midfielder',
    'forward': 'forward', 'fw': 'forward', 'striker': 'forward',
    'st': 'forward', 'winger': 'forward',
    '门将': 'goalkeeper', '后卫': 'defender', '中场': 'midfielder', '前锋': 'forward',
}


def classify_position(raw_position):
    key = str(raw_position or '').strip().lower()
    return _POSITION_ALIASES.get(key, 'unclassified')


def balance_sides(entries):
    """Assign sides to ``[(key, position), ...]`` in the order they are given.

    Returns ``[(key, side, bucket), ...]`` in processing order.
    """
    buckets = {name: [] for name in POSITION_BUCKETS}
    for key, position in entries:
        buckets[classify_position(position)].append(key)

    home_count = 0
    away_count = 0
    assignments = []
    for bucket in POSITION_BUCKETS:
        for key in buckets[bucket]:
            if home_count <= away_count:
                side = 'HOME'
                home_count += 1
            else:
                side = 'AWAY'
                away_count += 1
            assignments.append((key, side, bucket))
    return assignments


class SquadBalancer:
    def __init__(self, users=None):
        self.users = users or UserDirectory()

    def distribute(self, match):
        """Reassign every registration of ``match``; must run inside the match unit."""
        if match.match_type not in INDIVIDUAL_MATCH_TYPES:
            raise InvalidState('Squads can only be balanced for individual matches')

        registrations = Registration.query.filter_by(
            match_id=match.id,
        ).order_by(Registration.id.asc()).all()
        if not registrations:
            return Outcome({'message': 'No players to distribute'})

        for registration in registrations:
            registration.side = 'NONE'
        db.session.flush()

        entries = []
        by_id = {}
        for registration in registrations:
            user = self.users.find(registration.user_id)
            entries.append((registration.id, user.primary_position if user else None))
            by_id[registration.id] = registration

        for registration_id, side, _bucket in balance_sides(entries):
            by_id[registration_id].side = side
            db.session.flush()

        match.touch()
        logger.info('Distributed %s players for match %s', len(registrations), match.id)
        return Outcome({'message': 'Squads distributed'}).add(match_update(match.id, 'squads_distributed'))
