from flask import Blueprint, request, jsonify
from pitchside.auth_utils import admin_required
from pitchside.routes.matches import orchestrator

registrations_bp = Blueprint('registrations', __name__)


@registrations_bp.route('', methods=['GET'])
@admin_required
def list_registrations():
    """Every league team registration, newest first."""
    registrations = orchestrator.list_registrations(request.current_user.id)
    return jsonify({'registrations': [reg.to_dict() for reg in registrations]})


@registrations_bp.route('/<int:registration_id>/audit', methods=['PUT'])
@admin_required
def audit_registration(registration_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if not data.get('status'):
        return jsonify({'error': 'status is required'}), 400

    registration = orchestrator.audit(
        registration_id, request.current_user.id, data['status'], data.get('feedback'),
    )
    return jsonify({'registration': registration.to_dict()})
