"""
Validation of incoming payloads before they become domain actions.
"""
import re
from typing import Dict, List, Optional

from futsal.models import Phase, Position

HEX_COLOR = re.compile(r'^#[0-9a-fA-F]{6}$')


class ValidationError(ValueError):
    """A payload was rejected; ``issues`` lists {'field', 'message'} dicts."""

    def __init__(self, issues: List[Dict]):
        self.issues = issues
        message = '; '.join(f"{i['field']}: {i['message']}" for i in issues)
        super().__init__(message or 'Invalid payload')


def _text(data: Dict, key: str, issues: List[Dict], required: bool = True) -> Optional[str]:
    value = data.get(key)
    if value is None:
        if required:
            issues.append({'field': key, 'message': 'is required'})
        return None
    if not isinstance(value, str):
        issues.append({'field': key, 'message': 'must be a string'})
        return None
    value = value.strip()
    if required and not value:
        issues.append({'field': key, 'message': 'must not be empty'})
        return None
    return value


def _integer(data: Dict, key: str, issues: List[Dict], default: Optional[int] = None,
             minimum: Optional[int] = None) -> Optional[int]:
    value = data.get(key, default)
    if value is None:
        issues.append({'field': key, 'message': 'is required'})
        return None
    if isinstance(value, bool):
        issues.append({'field': key, 'message': 'must be an integer'})
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        issues.append({'field': key, 'message': 'must be an integer'})
        return None
    if minimum is not None and number < minimum:
        issues.append({'field': key, 'message': f'must be at least {minimum}'})
        return None
    return number


def _raise_if(issues: List[Dict]):
    if issues:
        raise ValidationError(issues)


def validate_category(data: Optional[Dict]) -> Dict:
    data = data or {}
    issues = []
    name = _text(data, 'name', issues)
    _raise_if(issues)
    return {'name': name}


def validate_workspace(data: Optional[Dict]) -> Dict:
    return validate_category(data)


def validate_player(data: Optional[Dict]) -> Dict:
    """Check a player payload; returns cleaned fields."""
    data = data or {}
    issues = []
    name = _text(data, 'name', issues)
    jersey = _integer(data, 'jersey_number', issues, default=0, minimum=0)
    position = data.get('position', Position.NONE.value)
    try:
        position = Position(position)
    except ValueError:
        issues.append({'field': 'position', 'message': f'unknown position {position!r}'})
    paid = data.get('paid', False)
    if not isinstance(paid, bool):
        issues.append({'field': 'paid', 'message': 'must be a boolean'})
    _raise_if(issues)
    return {'name': name, 'jersey_number': jersey, 'position': position, 'paid': paid}


def validate_team(data: Optional[Dict]) -> Dict:
    """Check a team payload; returns cleaned fields."""
    data = data or {}
    issues = []
    name = _text(data, 'name', issues)
    color = _text(data, 'color', issues, required=False) or '#22c55e'
    if not HEX_COLOR.match(color):
        issues.append({'field': 'color', 'message': 'must be a hex color like #22c55e'})
    capacity = _integer(data, 'capacity', issues, default=8, minimum=1)
    _raise_if(issues)
    return {'name': name, 'color': color, 'capacity': capacity}


def validate_phase(value) -> Phase:
    try:
        return Phase(value)
    except ValueError:
        raise ValidationError([{'field': 'phase', 'message': f'unknown phase {value!r}'}])


def validate_match_teams(data: Optional[Dict]) -> Dict:
    data = data or {}
    issues = []
    left = _text(data, 'left_team_id', issues)
    right = _text(data, 'right_team_id', issues)
    if left and right and left == right:
        issues.append({'field': 'right_team_id', 'message': 'a team cannot play itself'})
    _raise_if(issues)
    return {'left_team_id': left, 'right_team_id': right}


def validate_stat_changes(data: Optional[Dict]) -> Dict:
    """
    Check a player stat update.

    Accepts absolute values (``goals``, ``yellow``, ``red``) and the relative
    ``goals_delta`` / ``yellow_delta`` used by the scoreboard buttons.
    """
    data = data or {}
    issues = []
    changes = {}
    for key in ('goals', 'yellow', 'goals_delta', 'yellow_delta'):
        if key in data:
            value = _integer(data, key, issues)
            if value is not None:
                changes[key] = value
    if 'red' in data:
        if isinstance(data['red'], bool):
            changes['red'] = data['red']
        else:
            issues.append({'field': 'red', 'message': 'must be a boolean'})
    if not changes and not issues:
        issues.append({'field': 'stats', 'message': 'no change given'})
    _raise_if(issues)
    return changes
