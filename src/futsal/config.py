"""
Engine settings: defaults, optional YAML file, environment overrides.
"""
import logging
import os
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DATA_DIR = os.environ.get('FUTSAL_DATA_DIR', os.path.join(BASE_DIR, 'data'))

# Environment variable -> phase key in settings['qualifiers']
QUALIFIER_ENV_VARS = {
    'QUALIFIERS_R16': 'R16',
    'QUALIFIERS_QF': 'QF',
    'QUALIFIERS_SF': 'SF',
    'QUALIFIERS_FINAL': 'FINAL',
}


def get_default_settings() -> Dict:
    """Return default settings."""
    return {
        'qualifiers': {
            'R16': 16,
            'QF': 8,
            'SF': 4,
            'FINAL': 2,
        },
        'match_period_minutes': 20,
        'group_size': 4,
        'matches_per_day': 4,
        'tick_interval_seconds': 1.0,
    }


def _int_from_env(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f'Ignoring non-integer {name}={raw!r}')
        return None


def load_settings(path: Optional[str] = None) -> Dict:
    """Load settings from YAML (if present), merging with defaults and env."""
    settings = get_default_settings()
    if path and os.path.exists(path):
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                logger.warning(f'Failed to parse {path}: {e}')
                data = None
        if isinstance(data, dict):
            qualifiers = data.pop('qualifiers', None)
            settings.update(data)
            if isinstance(qualifiers, dict):
                settings['qualifiers'].update(qualifiers)

    for env_name, phase_key in QUALIFIER_ENV_VARS.items():
        value = _int_from_env(env_name)
        if value is not None:
            settings['qualifiers'][phase_key] = value

    period = _int_from_env('MATCH_PERIOD_MINUTES')
    if period is not None and period > 0:
        settings['match_period_minutes'] = period
    group_size = _int_from_env('GROUP_SIZE')
    if group_size is not None and group_size >= 2:
        settings['group_size'] = group_size
    return settings


def period_ms(settings: Dict) -> int:
    """Length of one half in milliseconds."""
    return int(settings.get('match_period_minutes', 20)) * 60 * 1000
