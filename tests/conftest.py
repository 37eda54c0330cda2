from datetime import timedelta
import pytest
from pitchside.app import create_app, db
from pitchside.time_utils import utcnow_naive


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Create a user row directly; user profiles are owned by another service."""
    from pitchside.models import User

    def _make(name='Player', is_admin=False, team_id=None, positions=None, **stats):
        user = User(name=name, is_admin=is_admin, team_id=team_id, **stats)
        user.positions = positions or []
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_team(app):
    from pitchside.models import Team

    def _make(name, captain, members=(), admins=()):
        team = Team(name=name, captain_id=captain.id)
        member_ids = [captain.id] + [m.id for m in members if m.id != captain.id]
        team.member_ids = member_ids
        team.admin_ids = [a.id for a in admins]
        db.session.add(team)
        db.session.flush()
        for member in [captain, *members]:
            member.team_id = team.id
        db.session.commit()
        return team
    return _make


@pytest.fixture
def make_match(app):
    """Create a match that is open for registration unless told otherwise."""
    from pitchside.models import Match

    def _make(match_type='PICKUP', title='Sunday Kickabout', **fields):
        now = utcnow_naive()
        fields.setdefault('status', 'registering')
        fields.setdefault('start_time', now + timedelta(days=2))
        fields.setdefault('end_time', now + timedelta(days=2, hours=2))
        fields.setdefault('current_players', 0)
        if match_type == 'LEAGUE':
            fields.setdefault('max_teams', 16)
            fields.setdefault('teams', f'0/{fields["max_teams"]}')
        elif match_type == 'TEAM_FRIENDLY':
            fields.setdefault('teams', '1/2')
        else:
            fields.setdefault('teams', '0/2')
        match = Match(title=title, match_type=match_type, **fields)
        db.session.add(match)
        db.session.commit()
        return match
    return _make


@pytest.fixture
def auth_for(app):
    """Return bearer headers for a user."""
    from pitchside.auth_utils import generate_token

    def _headers(user):
        token = generate_token(user.id)
        return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}
    return _headers


@pytest.fixture
def fresh(app):
    """Re-read a row after requests have committed through the API."""
    def _get(model, pk):
        db.session.expire_all()
        return db.session.get(model, pk)
    return _get
