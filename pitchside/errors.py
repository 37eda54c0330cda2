"""Error taxonomy for match and roster operations.

Services raise these; the app-level error handler renders them as
``{'error': message}`` with the matching HTTP status.
"""


class MatchServiceError(Exception):
    status_code = 400

    def __init__(self, message, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self):
        payload = {'error': self.message}
        payload.update(self.extra)
        return payload


class NotFound(MatchServiceError):
    """Match, team, user or registration does not exist."""
    status_code = 404


class InvalidState(MatchServiceError):
    """The match is not in a state that allows the requested operation."""
    status_code = 400


class Forbidden(MatchServiceError):
    """Caller lacks the team-admin, initiator or platform-admin role required."""
    status_code = 403


class Conflict(MatchServiceError):
    """Already registered, slot already challenged, player on the other side."""
    status_code = 409


class MatchBusy(MatchServiceError):
    """The per-match lock could not be obtained in time. Safe to retry."""
    status_code = 503

    def __init__(self, message='Match is busy, please retry', **extra):
        extra.setdefault('retryable', True)
        super().__init__(message, **extra)
