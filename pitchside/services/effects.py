"""Side effects collected during a match unit and dispatched after commit.

Ledger code never notifies anyone directly. It appends effects to an
``Outcome``; the orchestrator commits the unit, then hands the effects to
``dispatch_effects``. A failing effect is logged and skipped.
"""
import logging
from collections import namedtuple
from flask import current_app
from pitchside.app import db, socketio
from pitchside.services.directories import Notifier, CommunityPublisher
from pitchside.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

Notify = namedtuple('Notify', 'user_id title body kind related_id')
Publish = namedtuple('Publish', 'author_id content images')
Broadcast = namedtuple('Broadcast', 'event payload')


class Outcome:
    """Result of a match operation plus the effects it wants attempted."""

    def __init__(self, result=None, effects=None):
        self.result = result
        self.effects = list(effects or [])

    def add(self, effect):
        self.effects.append(effect)
        return self

    def extend(self, effects):
        self.effects.extend(effects)
        return self


def match_update(match_id, reason):
    return Broadcast('match_update', {
        'match_id': match_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    })


def _apply(effect, notifier, publisher):
    if isinstance(effect, Notify):
        notifier.send(effect.user_id, effect.title, effect.body, effect.kind, effect.related_id)
    elif isinstance(effect, Publish):
        publisher.publish(effect.author_id, effect.content, effect.images)
    elif isinstance(effect, Broadcast):
        socketio.emit(effect.event, effect.payload)
    else:
        raise TypeError(f'Unknown effect {effect!r}')


def apply_effects(effects, notifier=None, publisher=None):
    """Attempt every effect in order; returns how many succeeded."""
    notifier = notifier or Notifier()
    publisher = publisher or CommunityPublisher()
    applied = 0
    for effect in effects:
        try:
            _apply(effect, notifier, publisher)
            applied += 1
        except Exception:
            db.session.rollback()
            logger.exception('Side effect %s failed', type(effect).__name__)
    return applied


def _run_in_background(app, effects, notifier, publisher):
    with app.app_context():
        apply_effects(effects, notifier, publisher)


def dispatch_effects(effects, notifier=None, publisher=None):
    if not effects:
        return
    app = current_app._get_current_object()
    if app.config.get('EFFECTS_ASYNC', True):
        socketio.start_background_task(
            _run_in_background, app, list(effects), notifier, publisher,
        )
    else:
        apply_effects(effects, notifier, publisher)
