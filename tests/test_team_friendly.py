"""Tests for the team-friendly challenge flow and roster editing."""
from pitchside.app import db
from pitchside.models import Match, Registration, Notification, User


def _friendly(make_user, make_team, make_match):
    home_captain = make_user('Home Captain')
    home_player = make_user('Home Player')
    home = make_team('Home FC', home_captain, members=[home_player])
    away_captain = make_user('Away Captain')
    away_player = make_user('Away Player')
    away = make_team('Away FC', away_captain, members=[away_player])
    match = make_match('TEAM_FRIENDLY', home_team_id=home.id, initiator_id=home_captain.id)
    return match, home, away, home_captain, away_captain, away_player


def test_accepting_a_challenge_fills_the_away_slot(client, make_user, make_team, make_match, auth_for, fresh):
    match, home, away, home_captain, away_captain, _ = _friendly(make_user, make_team, make_match)
    match_id, away_id, captain_id = match.id, away.id, away_captain.id

    res = client.post(f'/api/matches/{match_id}/register', headers=auth_for(away_captain))
    assert res.status_code == 200

    stored = fresh(Match, match_id)
    assert stored.away_team_id == away_id
    assert stored.status == 'ongoing'
    assert stored.teams == '2/2'
    assert stored.current_players == 1
    registration = Registration.query.filter_by(match_id=match_id).one()
    assert (registration.user_id, registration.side) == (captain_id, 'AWAY')
    assert fresh(User, captain_id).matches_played == 1

    notified = Notification.query.filter_by(user_id=home_captain.id, notif_type='MATCH_CHALLENGE').count()
    assert notified == 1


def test_cannot_challenge_own_team(client, make_user, make_team, make_match, auth_for):
    match, _, _, home_captain, _, _ = _friendly(make_user, make_team, make_match)
    res = client.post(f'/api/matches/{match.id}/register', headers=auth_for(home_captain))
    assert res.status_code == 409


def test_second_challenger_conflicts(client, make_user, make_team, make_match, auth_for):
    match, _, _, _, away_captain, _ = _friendly(make_user, make_team, make_match)
    third_captain = make_user('Third Captain')
    make_team('Third FC', third_captain)

    assert client.post(f'/api/matches/{match.id}/register', headers=auth_for(away_captain)).status_code == 200
    # Reopen registration so only the slot check can fail.
    stored = db.session.get(Match, match.id)
    stored.status = 'registering'
    db.session.commit()

    res = client.post(f'/api/matches/{match.id}/register', headers=auth_for(third_captain))
    assert res.status_code == 409
    assert 'already been challenged' in res.get_json()['error']


def test_non_admin_cannot_accept(client, make_user, make_team, make_match, auth_for):
    match, _, _, _, _, away_player = _friendly(make_user, make_team, make_match)
    res = client.post(f'/api/matches/{match.id}/register', headers=auth_for(away_player))
    assert res.status_code == 403


def test_teamless_user_cannot_accept(client, make_user, make_team, make_match, auth_for):
    match, *_ = _friendly(make_user, make_team, make_match)
    loner = make_user('Loner')
    res = client.post(f'/api/matches/{match.id}/register', headers=auth_for(loner))
    assert res.status_code == 400


def test_away_admin_withdrawal_reopens_the_slot(client, make_user, make_team, make_match, auth_for, fresh):
    match, _, _, _, away_captain, away_player = _friendly(make_user, make_team, make_match)
    match_id = match.id
    captain_headers = auth_for(away_captain)
    captain_id, player_id = away_captain.id, away_player.id

    client.post(f'/api/matches/{match_id}/register', headers=captain_headers)
    res = client.post(
        f'/api/matches/{match_id}/sync-team-players', json={'side': 'AWAY'}, headers=captain_headers,
    )
    assert res.get_json()['added_count'] == 1
    assert fresh(Match, match_id).current_players == 2

    res = client.post(f'/api/matches/{match_id}/cancel-registration', headers=captain_headers)
    assert res.status_code == 200
    assert res.get_json()['removed_count'] == 2

    stored = fresh(Match, match_id)
    assert stored.away_team_id is None
    assert stored.status == 'registering'
    assert stored.teams == '1/2'
    assert stored.current_players == 0
    assert fresh(User, captain_id).matches_played == 0
    assert fresh(User, player_id).matches_played == 0


def test_sync_team_players_registers_missing_members(client, make_user, make_team, make_match, auth_for, fresh):
    match, home, _, home_captain, _, _ = _friendly(make_user, make_team, make_match)
    match_id = match.id
    headers = auth_for(home_captain)

    res = client.post(f'/api/matches/{match_id}/sync-team-players', json={'side': 'HOME'}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()['added_count'] == 2

    res = client.post(f'/api/matches/{match_id}/sync-team-players', json={'side': 'HOME'}, headers=headers)
    assert res.get_json()['added_count'] == 0
    sides = {row.side for row in Registration.query.filter_by(match_id=match_id)}
    assert sides == {'HOME'}
    assert fresh(Match, match_id).current_players == 2


def test_sync_side_without_team_is_rejected(client, make_user, make_team, make_match, auth_for):
    match, _, _, home_captain, _, _ = _friendly(make_user, make_team, make_match)
    res = client.post(
        f'/api/matches/{match.id}/sync-team-players', json={'side': 'AWAY'}, headers=auth_for(home_captain),
    )
    assert res.status_code == 400


def test_add_player_rules(client, make_user, make_team, make_match, auth_for, fresh):
    match, home, _, home_captain, away_captain, _ = _friendly(make_user, make_team, make_match)
    match_id = match.id
    headers = auth_for(home_captain)
    guest = make_user('Guest')
    guest_id = guest.id

    res = client.post(
        f'/api/matches/{match_id}/add-player', json={'playerId': guest_id, 'side': 'HOME'}, headers=headers,
    )
    assert res.status_code == 200
    assert fresh(Match, match_id).current_players == 1
    assert Notification.query.filter_by(user_id=guest_id, notif_type='MATCH_ROSTER').count() == 1

    res = client.post(
        f'/api/matches/{match_id}/add-player', json={'playerId': guest_id, 'side': 'HOME'}, headers=headers,
    )
    assert res.status_code == 200
    assert Registration.query.filter_by(match_id=match_id).count() == 1

    res = client.post(
        f'/api/matches/{match_id}/add-player', json={'playerId': 9999, 'side': 'HOME'}, headers=headers,
    )
    assert res.status_code == 404

    res = client.post(
        f'/api/matches/{match_id}/add-player', json={'playerId': guest_id, 'side': 'HOME'},
        headers=auth_for(away_captain),
    )
    assert res.status_code == 403


def test_add_player_on_other_side_conflicts(client, make_user, make_team, make_match, auth_for):
    match, _, _, home_captain, away_captain, _ = _friendly(make_user, make_team, make_match)
    match_id = match.id
    client.post(f'/api/matches/{match_id}/register', headers=auth_for(away_captain))
    stored = db.session.get(Match, match_id)
    stored.status = 'registering'
    db.session.commit()

    res = client.post(
        f'/api/matches/{match_id}/add-player',
        json={'player_id': away_captain.id, 'side': 'HOME'},
        headers=auth_for(home_captain),
    )
    assert res.status_code == 409


def test_add_player_requires_team_friendly(client, make_user, make_match, auth_for):
    user = make_user(is_admin=True)
    match = make_match('PICKUP')
    res = client.post(
        f'/api/matches/{match.id}/add-player', json={'playerId': user.id, 'side': 'HOME'},
        headers=auth_for(user),
    )
    assert res.status_code == 400
