"""WSGI entrypoint used by Gunicorn."""
import os

from pitchside.app import create_app
from pitchside.services.counters import repair_all_counters


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

if _env_bool('REPAIR_COUNTERS_ON_START', False):
    with app.app_context():
        drifted = repair_all_counters()
        if drifted:
            print(f'Repaired counters for {len(drifted)} match(es)')
