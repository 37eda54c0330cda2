import logging
from flask import Flask, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from pitchside.config import config
from pitchside.errors import MatchServiceError

db = SQLAlchemy()
socketio = SocketIO()

logger = logging.getLogger(__name__)


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _configure_logging(level_name):
    numeric_level = getattr(logging, str(level_name or 'INFO').upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def _register_error_handlers(app):
    @app.errorhandler(MatchServiceError)
    def _handle_match_service_error(exc):
        if exc.status_code >= 500:
            logger.warning('%s %s failed: %s', request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code


def _register_commands(app):
    @app.cli.command('repair-counters')
    def repair_counters_command():
        """Recompute player/team counters for every match from its registrations."""
        from pitchside.services.counters import repair_all_counters
        drifted = repair_all_counters()
        print(f'Repaired {len(drifted)} match(es): {", ".join(str(mid) for mid in drifted) or "none"}')

    @app.cli.command('send-reminders')
    def send_reminders_command():
        """Notify rostered players of matches starting in about a day."""
        from pitchside.services.reminders import send_match_reminders
        sent = send_match_reminders()
        print(f'Sent reminders for {sent} match(es)')


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    _configure_logging(app.config.get('LOG_LEVEL'))

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        secret_key = str(app.config.get('SECRET_KEY') or '').strip()
        if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
            raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
        if allowed_origins == '*':
            raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')

    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}})

    from pitchside.routes.matches import matches_bp
    from pitchside.routes.registrations import registrations_bp

    app.register_blueprint(matches_bp, url_prefix='/api/matches')
    app.register_blueprint(registrations_bp, url_prefix='/api/registrations')

    _register_error_handlers(app)
    _register_commands(app)

    with app.app_context():
        from pitchside import models  # noqa: F401
        db.create_all()

    logger.info('Pitchside app created with %s config', config_name)
    return app
