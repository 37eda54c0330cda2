"""Tests for match updates: event reconciliation and report publishing."""
from pitchside.app import db
from pitchside.models import Match, User, CommunityPost, Notification, TeamRegistration
from pitchside.services.stats_reconciler import tally, normalize_events


def _update(client, auth_for, user, match_id, payload):
    return client.put(f'/api/matches/{match_id}', json=payload, headers=auth_for(user))


def test_tally_counts_goals_and_assists():
    goals, assists = tally([
        {'player_id': 1, 'assist_player_id': 2},
        {'player_id': 1},
        {'playerId': 3, 'assistPlayerId': 1},
    ])
    assert goals == {1: 2, 3: 1}
    assert assists == {2: 1, 1: 1}


def test_normalize_events_accepts_camel_case():
    events = normalize_events([{'time': 12, 'playerId': '4', 'assistPlayerId': 5, 'side': 'home'}])
    assert events == [{'time': 12, 'player_id': 4, 'assist_player_id': 5, 'side': 'HOME'}]


def test_adding_an_event_keeps_existing_scorer_unchanged(client, make_user, make_match, auth_for, fresh):
    organizer = make_user('Organizer')
    u1 = make_user('U1', goals=5)
    u2 = make_user('U2')
    u1_id, u2_id = u1.id, u2.id
    match = make_match(initiator_id=organizer.id)
    match_id = match.id

    res = _update(client, auth_for, organizer, match_id, {'events': [{'time': 10, 'playerId': u1_id}]})
    assert res.status_code == 200
    assert fresh(User, u1_id).goals == 6

    res = _update(client, auth_for, organizer, match_id, {'events': [
        {'time': 10, 'playerId': u1_id},
        {'time': 40, 'playerId': u2_id},
    ]})
    assert res.status_code == 200
    assert fresh(User, u1_id).goals == 6
    assert fresh(User, u2_id).goals == 1


def test_reapplying_same_events_is_a_no_op(client, make_user, make_match, auth_for, fresh):
    organizer = make_user('Organizer')
    scorer = make_user('Scorer', goals=3, assists=1)
    helper = make_user('Helper', assists=2)
    scorer_id, helper_id = scorer.id, helper.id
    match = make_match(initiator_id=organizer.id)
    events = [
        {'time': 5, 'playerId': scorer_id, 'assistPlayerId': helper_id},
        {'time': 70, 'playerId': scorer_id},
    ]

    _update(client, auth_for, organizer, match.id, {'events': events})
    after_first = (fresh(User, scorer_id).goals, fresh(User, helper_id).assists)
    _update(client, auth_for, organizer, match.id, {'events': events})
    assert (fresh(User, scorer_id).goals, fresh(User, helper_id).assists) == after_first == (5, 3)


def test_removing_events_takes_stats_back_with_floor(client, make_user, make_match, auth_for, fresh):
    organizer = make_user('Organizer')
    scorer = make_user('Scorer')
    scorer_id = scorer.id
    match = make_match(initiator_id=organizer.id)
    match_id = match.id

    _update(client, auth_for, organizer, match_id, {'events': [
        {'time': 1, 'playerId': scorer_id}, {'time': 2, 'playerId': scorer_id},
    ]})
    stored = db.session.get(User, scorer_id)
    stored.goals = 1
    db.session.commit()

    _update(client, auth_for, organizer, match_id, {'events': []})
    assert fresh(User, scorer_id).goals == 0
    assert fresh(Match, match_id).events == []


def test_invalid_events_are_rejected(client, make_user, make_match, auth_for):
    organizer = make_user('Organizer')
    match = make_match(initiator_id=organizer.id)
    assert _update(client, auth_for, organizer, match.id, {'events': 'goal'}).status_code == 400
    assert _update(client, auth_for, organizer, match.id, {'events': [{'playerId': 'x'}]}).status_code == 400


def test_only_organizer_or_admin_may_update(client, make_user, make_match, auth_for):
    organizer = make_user('Organizer')
    stranger = make_user('Stranger')
    admin = make_user('Admin', is_admin=True)
    match = make_match(initiator_id=organizer.id)

    assert _update(client, auth_for, stranger, match.id, {'title': 'Mine now'}).status_code == 403
    res = _update(client, auth_for, admin, match.id, {'title': 'Renamed', 'score': '3-2'})
    assert res.status_code == 200
    assert res.get_json()['match']['title'] == 'Renamed'
    assert res.get_json()['match']['score'] == '3-2'


def test_update_ignores_fields_outside_whitelist(client, make_user, make_match, auth_for, fresh):
    organizer = make_user('Organizer')
    match = make_match(initiator_id=organizer.id)
    match_id = match.id
    res = _update(client, auth_for, organizer, match_id, {
        'current_players': 99, 'initiator_id': 12345, 'description': 'Bring water',
    })
    assert res.status_code == 200
    stored = fresh(Match, match_id)
    assert stored.current_players == 0
    assert stored.initiator_id == organizer.id
    assert stored.description == 'Bring water'


def test_publishing_a_report_posts_and_notifies_participants(client, make_user, make_team, make_match, auth_for):
    organizer = make_user('Organizer')
    player = make_user('Player')
    captain = make_user('Captain')
    roster_player = make_user('Roster Player')
    team = make_team('Lions', captain, members=[roster_player])
    match = make_match('LEAGUE', initiator_id=organizer.id, score=None)
    match_id = match.id
    ids = {'organizer': organizer.id, 'player': player.id, 'captain': captain.id, 'roster': roster_player.id}

    reg = TeamRegistration(match_id=match_id, team_id=team.id, status='approved')
    reg.player_ids = [ids['captain'], ids['roster'], ids['organizer']]
    db.session.add(reg)
    db.session.commit()

    res = _update(client, auth_for, organizer, match_id, {
        'reportContent': 'A tight game decided late.',
        'reportImages': ['https://img.example.com/1.jpg'],
    })
    assert res.status_code == 200

    post = CommunityPost.query.one()
    assert post.author_id == ids['organizer']
    assert post.content.startswith('[Match report] Sunday Kickabout\nScore: not recorded')
    assert post.content.endswith('A tight game decided late.')
    assert post.images == ['https://img.example.com/1.jpg']

    notified = {n.user_id for n in Notification.query.filter_by(notif_type='MATCH_REPORT')}
    assert notified == {ids['captain'], ids['roster']}

    # Same report again: nothing new is published.
    _update(client, auth_for, organizer, match_id, {'reportContent': 'A tight game decided late.'})
    assert CommunityPost.query.count() == 1
