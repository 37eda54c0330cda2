"""Default collaborator implementations backed by the local models.

The match core only talks to these four objects, so a deployment that keeps
users, teams, notifications or the community feed elsewhere can swap them.
"""
from pitchside.app import db, socketio
from pitchside.models import User, Team, Notification, CommunityPost
from pitchside.time_utils import utcnow_naive

_STAT_COLUMNS = {
    'matches': 'matches_played',
    'goals': 'goals',
    'assists': 'assists',
}


class UserDirectory:
    def find(self, user_id):
        if user_id is None:
            return None
        return db.session.get(User, user_id)

    def adjust_stats(self, user_id, delta):
        """Apply ``{'matches'|'goals'|'assists': amount}``; counters never drop below zero."""
        user = self.find(user_id)
        if not user:
            return None
        for key, amount in delta.items():
            column = _STAT_COLUMNS[key]
            current = getattr(user, column) or 0
            setattr(user, column, max(0, current + amount))
        return user


class TeamDirectory:
    def find(self, team_id):
        if team_id is None:
            return None
        return db.session.get(Team, team_id)

    def is_admin(self, team_id, user_id):
        team = self.find(team_id)
        if not team:
            return False
        return team.captain_id == user_id or user_id in team.admin_ids

    def members(self, team_id):
        team = self.find(team_id)
        return list(team.member_ids) if team else []


class Notifier:
    def send(self, user_id, title, body, kind, related_id=None):
        notification = Notification(
            user_id=user_id,
            title=title,
            notif_type=kind,
            content=body,
            reference_id=related_id,
        )
        db.session.add(notification)
        db.session.commit()
        socketio.emit('notification_update', {
            'user_id': user_id,
            'reason': kind,
            'updated_at': utcnow_naive().isoformat(),
        })
        return notification


class CommunityPublisher:
    def publish(self, author_id, content, images=None):
        post = CommunityPost(author_id=author_id, content=content)
        post.images = images or []
        db.session.add(post)
        db.session.commit()
        return post
