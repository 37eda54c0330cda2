import json
from pitchside.app import db
from pitchside.time_utils import utcnow_naive, isoformat_or_none

MATCH_TYPES = ('PICKUP', 'NIGHT', 'TEAM_FRIENDLY', 'LEAGUE')
INDIVIDUAL_MATCH_TYPES = ('PICKUP', 'NIGHT')
MATCH_STATUSES = ('upcoming', 'registering', 'pending', 'ongoing', 'finished')
SIDES = ('HOME', 'AWAY', 'NONE')
TEAM_REGISTRATION_STATUSES = ('pending', 'confirmed', 'approved', 'rejected')
ACTIVE_TEAM_REGISTRATION_STATUSES = ('pending', 'confirmed', 'approved')


def _safe_json(raw_value, fallback=None):
    if fallback is None:
        fallback = {}
    if not raw_value:
        return fallback
    try:
        return json.loads(raw_value)
    except (TypeError, ValueError):
        return fallback


def _dump_list(values):
    return json.dumps(list(values or []))


class User(db.Model):
    """Player profile as seen by the match core; owned by the user service."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), default='')
    avatar_url = db.Column(db.String(500), default='')
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    # Plain column: team membership lives with the team service.
    team_id = db.Column(db.Integer, nullable=True, index=True)
    positions_json = db.Column(db.Text, default='[]')
    jersey_number = db.Column(db.Integer, nullable=True)
    matches_played = db.Column(db.Integer, default=0, nullable=False)
    goals = db.Column(db.Integer, default=0, nullable=False)
    assists = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    @property
    def positions(self):
        return _safe_json(self.positions_json, [])

    @positions.setter
    def positions(self, values):
        self.positions_json = _dump_list(values)

    @property
    def primary_position(self):
        positions = self.positions
        return positions[0] if positions else None

    def to_dict(self):
        return {
            'id': self.id, 'name': self.name, 'avatar_url': self.avatar_url,
            'is_admin': self.is_admin, 'team_id': self.team_id,
            'positions': self.positions, 'jersey_number': self.jersey_number,
            'stats': {
                'matches': self.matches_played,
                'goals': self.goals,
                'assists': self.assists,
            },
            'created_at': isoformat_or_none(self.created_at),
        }


class Team(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    logo_url = db.Column(db.String(500), default='')
    captain_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    admin_ids_json = db.Column(db.Text, default='[]')
    member_ids_json = db.Column(db.Text, default='[]')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    captain = db.relationship('User', foreign_keys=[captain_id])

    @property
    def admin_ids(self):
        return _safe_json(self.admin_ids_json, [])

    @admin_ids.setter
    def admin_ids(self, values):
        self.admin_ids_json = _dump_list(values)

    @property
    def member_ids(self):
        return _safe_json(self.member_ids_json, [])

    @member_ids.setter
    def member_ids(self, values):
        self.member_ids_json = _dump_list(values)

    def to_dict(self):
        return {
            'id': self.id, 'name': self.name, 'logo_url': self.logo_url,
            'captain_id': self.captain_id, 'admin_ids': self.admin_ids,
            'member_ids': self.member_ids,
        }


class Match(db.Model):
    """A scheduled match and its denormalized roster counters."""
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    match_type = db.Column(db.String(20), nullable=False, default='PICKUP')
    status = db.Column(db.String(20), nullable=False, default='registering')
    # upcoming = registration not open yet, registering = window open,
    # pending = window closed and waiting for kickoff, ongoing, finished
    initiator_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    home_team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    away_team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    start_time = db.Column(db.DateTime, nullable=True)
    end_time = db.Column(db.DateTime, nullable=True)
    registration_start_time = db.Column(db.DateTime, nullable=True)
    registration_end_time = db.Column(db.DateTime, nullable=True)
    location = db.Column(db.String(200), default='')
    description = db.Column(db.Text, default='')
    rules = db.Column(db.Text, default='')
    match_format = db.Column(db.String(10), default='')  # 5, 8, 11 a side
    jersey_color = db.Column(db.String(40), default='')
    away_jersey_color = db.Column(db.String(40), default='')
    max_players = db.Column(db.Integer, default=0)
    max_teams = db.Column(db.Integer, default=2)
    current_players = db.Column(db.Integer, default=0, nullable=False)
    teams = db.Column(db.String(20), nullable=True)  # "filled/capacity"
    score = db.Column(db.String(40), nullable=True)
    report_content = db.Column(db.Text, nullable=True)
    report_images_json = db.Column(db.Text, default='[]')
    events_json = db.Column(db.Text, default='[]')
    reminder_sent = db.Column(db.Boolean, default=False, nullable=False)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __mapper_args__ = {'version_id_col': version}
    __table_args__ = (
        db.Index('ix_match_type_status', 'match_type', 'status'),
        db.Index('ix_match_start_time', 'start_time'),
    )

    initiator = db.relationship('User', foreign_keys=[initiator_id])
    home_team = db.relationship('Team', foreign_keys=[home_team_id])
    away_team = db.relationship('Team', foreign_keys=[away_team_id])

    @property
    def events(self):
        return _safe_json(self.events_json, [])

    @events.setter
    def events(self, values):
        self.events_json = json.dumps(list(values or []))

    @property
    def report_images(self):
        return _safe_json(self.report_images_json, [])

    @report_images.setter
    def report_images(self, values):
        self.report_images_json = _dump_list(values)

    def touch(self):
        """Mark the row dirty so the optimistic version check runs on flush."""
        self.updated_at = utcnow_naive()

    def to_dict(self, include_roster=False):
        data = {
            'id': self.id, 'title': self.title, 'type': self.match_type,
            'status': self.status, 'initiator_id': self.initiator_id,
            'home_team_id': self.home_team_id, 'away_team_id': self.away_team_id,
            'start_time': isoformat_or_none(self.start_time),
            'end_time': isoformat_or_none(self.end_time),
            'registration_start_time': isoformat_or_none(self.registration_start_time),
            'registration_end_time': isoformat_or_none(self.registration_end_time),
            'location': self.location, 'description': self.description,
            'rules': self.rules, 'format': self.match_format,
            'jersey_color': self.jersey_color,
            'away_jersey_color': self.away_jersey_color,
            'max_players': self.max_players, 'max_teams': self.max_teams,
            'current_players': self.current_players, 'teams': self.teams,
            'score': self.score, 'report_content': self.report_content,
            'report_images': self.report_images, 'events': self.events,
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at),
        }
        if include_roster:
            registrations = Registration.query.filter_by(
                match_id=self.id
            ).order_by(Registration.id.asc()).all()
            team_regs = TeamRegistration.query.filter_by(
                match_id=self.id
            ).order_by(TeamRegistration.id.asc()).all()
            data['registrations'] = [r.to_dict() for r in registrations]
            data['team_registrations'] = [tr.to_dict() for tr in team_regs]
            data['home_team'] = self.home_team.to_dict() if self.home_team else None
            data['away_team'] = self.away_team.to_dict() if self.away_team else None
        return data


class Registration(db.Model):
    """Individual sign-up. Deleted on cancellation, never soft-deleted."""
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    side = db.Column(db.String(10), nullable=False, default='NONE')
    status = db.Column(db.String(20), nullable=False, default='approved')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('user_id', 'match_id', name='uq_registration_user_match'),
        db.Index('ix_registration_match_side', 'match_id', 'side'),
    )

    user = db.relationship('User', backref='registrations')

    def to_dict(self):
        return {
            'id': self.id, 'match_id': self.match_id, 'user_id': self.user_id,
            'side': self.side, 'status': self.status,
            'created_at': isoformat_or_none(self.created_at),
            'user': self.user.to_dict() if self.user else None,
        }


class TeamRegistration(db.Model):
    """League roster submission for one team, subject to admin audit."""
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    player_ids_json = db.Column(db.Text, default='[]')
    status = db.Column(db.String(20), nullable=False, default='pending')
    # pending, confirmed, approved, rejected
    feedback = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('team_id', 'match_id', name='uq_team_registration_team_match'),
        db.Index('ix_team_registration_match_status', 'match_id', 'status'),
    )

    team = db.relationship('Team', backref='match_registrations')
    match = db.relationship('Match', backref='team_registrations')

    @property
    def player_ids(self):
        return _safe_json(self.player_ids_json, [])

    @player_ids.setter
    def player_ids(self, values):
        self.player_ids_json = _dump_list(values)

    def to_dict(self):
        return {
            'id': self.id, 'match_id': self.match_id, 'team_id': self.team_id,
            'player_ids': self.player_ids, 'status': self.status,
            'feedback': self.feedback,
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at),
            'team': self.team.to_dict() if self.team else None,
        }


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    title = db.Column(db.String(200), default='')
    notif_type = db.Column(db.String(50), nullable=False)
    content = db.Column(db.Text, nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    user = db.relationship('User', backref='notifications')

    def to_dict(self):
        return {
            'id': self.id, 'title': self.title, 'notif_type': self.notif_type,
            'content': self.content, 'reference_id': self.reference_id,
            'read': self.read,
            'created_at': isoformat_or_none(self.created_at),
        }


class CommunityPost(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    images_json = db.Column(db.Text, default='[]')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    author = db.relationship('User', backref='community_posts')

    @property
    def images(self):
        return _safe_json(self.images_json, [])

    @images.setter
    def images(self, values):
        self.images_json = _dump_list(values)

    def to_dict(self):
        return {
            'id': self.id, 'author_id': self.author_id, 'content': self.content,
            'images': self.images,
            'created_at': isoformat_or_none(self.created_at),
        }
