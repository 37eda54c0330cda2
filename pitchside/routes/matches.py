from flask import Blueprint, request, jsonify
from pitchside.auth_utils import login_required
from pitchside.models import MATCH_TYPES, MATCH_STATUSES
from pitchside.services.orchestrator import MatchOrchestrator

matches_bp = Blueprint('matches', __name__)
orchestrator = MatchOrchestrator()


def _json_body(required=True):
    data = request.get_json(silent=True)
    if data is None and not required:
        return {}
    if not isinstance(data, dict):
        return None
    return data


def _first(data, *keys):
    for key in keys:
        if key in data:
            return data[key]
    return None


@matches_bp.route('', methods=['GET'])
def list_matches():
    """List matches, newest first, with optional type/status filters."""
    match_type = str(request.args.get('type', '') or '').strip().upper()
    status = str(request.args.get('status', '') or '').strip().lower()
    if match_type and match_type not in MATCH_TYPES:
        return jsonify({'error': 'Unknown match type'}), 400
    if status and status not in MATCH_STATUSES:
        return jsonify({'error': 'Unknown match status'}), 400

    matches = orchestrator.list_matches(match_type=match_type or None, status=status or None)
    return jsonify({'matches': [match.to_dict() for match in matches]})


@matches_bp.route('/<int:match_id>', methods=['GET'])
def get_match(match_id):
    match = orchestrator.get_match(match_id)
    return jsonify({'match': match.to_dict(include_roster=True)})


@matches_bp.route('', methods=['POST'])
@login_required
def create_match():
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    match = orchestrator.create_match(request.current_user.id, data)
    return jsonify({'match': match.to_dict(include_roster=True)}), 201


@matches_bp.route('/<int:match_id>', methods=['PUT'])
@login_required
def update_match(match_id):
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    match = orchestrator.update_match(match_id, request.current_user.id, data)
    return jsonify({'match': match.to_dict(include_roster=True)})


@matches_bp.route('/<int:match_id>', methods=['DELETE'])
@login_required
def delete_match(match_id):
    result = orchestrator.delete_match(match_id, request.current_user.id)
    return jsonify(result)


@matches_bp.route('/<int:match_id>/register', methods=['POST'])
@login_required
def register(match_id):
    data = _json_body(required=False)
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    result = orchestrator.register(match_id, request.current_user.id, data.get('side'))
    return jsonify(result)


@matches_bp.route('/<int:match_id>/cancel-registration', methods=['POST'])
@login_required
def cancel_registration(match_id):
    result = orchestrator.cancel(match_id, request.current_user.id)
    return jsonify(result)


@matches_bp.route('/<int:match_id>/league-register', methods=['POST'])
@login_required
def league_register(match_id):
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    player_ids = _first(data, 'playerIds', 'player_ids')
    if not isinstance(player_ids, list):
        return jsonify({'error': 'playerIds must be a list'}), 400

    registration = orchestrator.league_register(match_id, request.current_user.id, player_ids)
    return jsonify({'registration': registration.to_dict()})


@matches_bp.route('/<int:match_id>/auto-league-register', methods=['POST'])
@login_required
def auto_league_register(match_id):
    result = orchestrator.auto_league_register(match_id, request.current_user.id)
    return jsonify(result)


@matches_bp.route('/<int:match_id>/my-registration', methods=['GET'])
@login_required
def my_registration(match_id):
    registration = orchestrator.my_registration(match_id, request.current_user.id)
    return jsonify({'registration': registration.to_dict() if registration else None})


@matches_bp.route('/<int:match_id>/distribute', methods=['POST'])
@login_required
def distribute(match_id):
    result = orchestrator.distribute_teams(match_id, request.current_user.id)
    return jsonify(result)


@matches_bp.route('/<int:match_id>/add-player', methods=['POST'])
@login_required
def add_player(match_id):
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    try:
        player_id = int(_first(data, 'playerId', 'player_id'))
    except (TypeError, ValueError):
        return jsonify({'error': 'playerId is required'}), 400

    result = orchestrator.add_player(match_id, request.current_user.id, player_id, data.get('side'))
    return jsonify(result)


@matches_bp.route('/<int:match_id>/sync-team-players', methods=['POST'])
@login_required
def sync_team_players(match_id):
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    result = orchestrator.sync_team_players(match_id, request.current_user.id, data.get('side'))
    return jsonify(result)
