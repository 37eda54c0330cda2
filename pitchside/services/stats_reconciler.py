"""Keep player goal/assist totals in step with a match's event list.

An events update is a full replace: every old event is taken back and every
new one applied. The two deltas for a player are folded into one write, so
re-sending an unchanged list leaves the totals exactly where they were.
"""
import logging
from collections import Counter
from pitchside.errors import InvalidState
from pitchside.models import Registration, TeamRegistration
from pitchside.services.directories import UserDirectory
from pitchside.services.effects import Outcome, Notify, Publish, match_update

logger = logging.getLogger(__name__)


def _optional_id(event, *keys):
    for key in keys:
        raw = event.get(key)
        if raw in (None, ''):
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise InvalidState(f'{keys[0]} must be a numeric player ID')
    return None


def normalize_events(raw_events):
    if not isinstance(raw_events, list):
        raise InvalidState('events must be a list')
    events = []
    for raw in raw_events:
        if not isinstance(raw, dict):
            raise InvalidState('Each event must be an object')
        side = str(raw.get('side') or '').strip().upper() or None
        if side not in (None, 'HOME', 'AWAY'):
            raise InvalidState('Event side must be HOME or AWAY')
        events.append({
            'time': raw.get('time'),
            'player_id': _optional_id(raw, 'playerId', 'player_id'),
            'assist_player_id': _optional_id(raw, 'assistPlayerId', 'assist_player_id'),
            'side': side,
        })
    return events


def tally(events):
    """Return (goals, assists) Counters keyed by player id."""
    goals = Counter()
    assists = Counter()
    for event in events or []:
        player_id = event.get('player_id') or event.get('playerId')
        assist_id = event.get('assist_player_id') or event.get('assistPlayerId')
        if player_id:
            goals[int(player_id)] += 1
        if assist_id:
            assists[int(assist_id)] += 1
    return goals, assists


def participant_ids(match_id):
    ids = []
    for row in Registration.query.filter_by(match_id=match_id).order_by(Registration.id.asc()):
        ids.append(row.user_id)
    for team_reg in TeamRegistration.query.filter_by(match_id=match_id).order_by(TeamRegistration.id.asc()):
        ids.extend(team_reg.player_ids)
    seen = set()
    unique = []
    for user_id in ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        unique.append(user_id)
    return unique


class StatsReconciler:
    def __init__(self, users=None):
        self.users = users or UserDirectory()

    def replace_events(self, match, raw_events):
        """Swap the match's events and move player totals accordingly; returns touched ids."""
        new_events = normalize_events(raw_events)
        old_goals, old_assists = tally(match.events)
        new_goals, new_assists = tally(new_events)

        match.events = new_events

        touched = []
        player_ids = set(old_goals) | set(old_assists) | set(new_goals) | set(new_assists)
        for player_id in sorted(player_ids):
            if (old_goals[player_id], old_assists[player_id]) == (new_goals[player_id], new_assists[player_id]):
                continue
            taken_back = {'goals': -old_goals[player_id], 'assists': -old_assists[player_id]}
            applied = {'goals': new_goals[player_id], 'assists': new_assists[player_id]}
            try:
                # Both steps land on the same row before the unit flushes.
                self.users.adjust_stats(player_id, taken_back)
                self.users.adjust_stats(player_id, applied)
                touched.append(player_id)
            except Exception:
                logger.exception('Could not reconcile stats for player %s on match %s', player_id, match.id)
        return touched

    def report_effects(self, match, editor_id, previous_report):
        """Community post and participant notices for a newly published report."""
        report = match.report_content
        if not report or report == previous_report:
            return []
        content = '\n'.join([
            f'[Match report] {match.title}',
            f'Score: {match.score or "not recorded"}',
            '',
            report,
        ])
        effects = [Publish(editor_id, content, match.report_images)]
        for user_id in participant_ids(match.id):
            if user_id == editor_id:
                continue
            effects.append(Notify(
                user_id, 'Match report',
                f'The report for "{match.title}" is out, take a look!',
                'MATCH_REPORT', match.id,
            ))
        return effects

    def apply(self, match, editor_id, raw_events=None, previous_report=None):
        outcome = Outcome(match)
        if raw_events is not None:
            self.replace_events(match, raw_events)
        outcome.extend(self.report_effects(match, editor_id, previous_report))
        return outcome.add(match_update(match.id, 'match_updated'))
