"""
Flask JSON API for the Futsal Dashboard.
"""
import hashlib
import os
import re
import threading
from datetime import timedelta
from functools import wraps

from flask import Flask, has_request_context, jsonify, request, session

from futsal.clock import format_clock
from futsal.config import DATA_DIR, load_settings
from futsal.models import get_phase_name
from futsal.persistence import RecordStoreError, WorkspaceAccessError, YamlRecordStore
from futsal.snapshot import SnapshotStore
from futsal.store import Store
from futsal.validation import (
    ValidationError,
    validate_category,
    validate_match_teams,
    validate_phase,
    validate_player,
    validate_stat_changes,
    validate_team,
    validate_workspace,
)

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode()
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(DATA_DIR, exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)

SETTINGS_FILE = os.path.join(DATA_DIR, 'settings.yaml')
RECORDS_FILE = os.path.join(DATA_DIR, 'records.yaml')
SNAPSHOTS_DIR = os.path.join(DATA_DIR, 'snapshots')

_stores = {}
_stores_lock = threading.Lock()
_record_store = None


def current_user():
    """User id from the session, falling back to the X-User-Id header."""
    if not has_request_context():
        return None
    return session.get('user') or request.headers.get('X-User-Id') or None


def _slugify(name: str) -> str:
    """Convert a user id into a filesystem-safe slug."""
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    return slug or 'user'


def _snapshot_path(user: str) -> str:
    digest = hashlib.sha1(user.encode()).hexdigest()[:8]
    return os.path.join(SNAPSHOTS_DIR, f'{_slugify(user)}-{digest}.yaml')


def _get_record_store() -> YamlRecordStore:
    global _record_store
    if _record_store is None:
        _record_store = YamlRecordStore(RECORDS_FILE)
    return _record_store


def _build_store(user: str) -> Store:
    store = Store(
        record_store=_get_record_store(),
        snapshot=SnapshotStore(_snapshot_path(user)),
        settings=load_settings(SETTINGS_FILE),
        identity=lambda: user,
    )
    store.hydrate_from_snapshot()
    store.refresh_workspaces()
    return store


def get_store() -> Store:
    """The calling user's store, created on first use."""
    user = current_user()
    with _stores_lock:
        store = _stores.get(user)
        if store is None:
            store = _build_store(user)
            if not app.config.get('TESTING'):
                store.start_ticker()
            _stores[user] = store
            app.logger.info(f'Store ready for {user}: DATA_DIR={DATA_DIR}')
    if not store.verify_access():
        raise WorkspaceAccessError('No longer a member of the active workspace')
    return store


def login_required(f):
    """Reject the request with 401 unless an identity is present."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_user() is None:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _not_found(what: str):
    return jsonify({'success': False, 'error': f'{what} not found'}), 404


def _match_json(match) -> dict:
    data = match.to_dict()
    data['clock'] = format_clock(match.remaining_ms)
    return data


@app.errorhandler(ValidationError)
def handle_validation_error(error):
    return jsonify({'success': False, 'error': str(error), 'issues': error.issues}), 400


@app.errorhandler(WorkspaceAccessError)
def handle_workspace_access_error(error):
    app.logger.warning(f'Workspace access denied for {current_user()}: {error}')
    return jsonify({'success': False, 'error': str(error)}), 403


@app.errorhandler(RecordStoreError)
def handle_record_store_error(error):
    app.logger.error(f'Record store failure: {error}')
    return jsonify({'success': False, 'error': str(error)}), 502


# Session

@app.route('/api/login', methods=['POST'])
def api_login():
    user = (_payload().get('user') or '').strip()
    if not user:
        raise ValidationError([{'field': 'user', 'message': 'is required'}])
    session['user'] = user
    session.permanent = True
    get_store().refresh_workspaces()
    return jsonify({'success': True, 'user': user})


@app.route('/api/logout', methods=['POST'])
def api_logout():
    session.pop('user', None)
    return jsonify({'success': True})


@app.route('/api/state')
@login_required
def api_state():
    return jsonify({'success': True, 'state': get_store().state.to_dict()})


# Workspaces

@app.route('/api/workspaces', methods=['GET'])
@login_required
def api_list_workspaces():
    workspaces = get_store().refresh_workspaces()
    return jsonify({'success': True, 'workspaces': [w.to_dict() for w in workspaces]})


@app.route('/api/workspaces', methods=['POST'])
@login_required
def api_create_workspace():
    fields = validate_workspace(_payload())
    workspace = get_store().create_workspace(fields['name'])
    return jsonify({'success': True, 'workspace': workspace.to_dict()}), 201


@app.route('/api/workspaces/<workspace_id>/activate', methods=['POST'])
@login_required
def api_activate_workspace(workspace_id):
    store = get_store()
    store.select_workspace(workspace_id)
    return jsonify({'success': True, 'state': store.state.to_dict()})


@app.route('/api/workspaces/<workspace_id>', methods=['PUT'])
@login_required
def api_rename_workspace(workspace_id):
    fields = validate_workspace(_payload())
    workspace = get_store().rename_workspace(workspace_id, fields['name'])
    app.logger.info(f'Workspace {workspace_id} renamed by {current_user()}')
    return jsonify({'success': True, 'workspace': workspace.to_dict() if workspace else None})


@app.route('/api/workspaces/<workspace_id>/join', methods=['POST'])
@login_required
def api_join_workspace(workspace_id):
    store = get_store()
    workspace = store.join_workspace(workspace_id)
    return jsonify({'success': True, 'workspace': workspace.to_dict(), 'state': store.state.to_dict()})


@app.route('/api/workspaces/<workspace_id>/members', methods=['GET'])
@login_required
def api_list_members(workspace_id):
    return jsonify({'success': True, 'members': get_store().list_members(workspace_id)})


@app.route('/api/workspaces/<workspace_id>/members/<member_id>', methods=['DELETE'])
@login_required
def api_remove_member(workspace_id, member_id):
    store = get_store()
    if not store.remove_member(workspace_id, member_id):
        return _not_found('Member')
    app.logger.info(f'{member_id} removed from workspace {workspace_id} by {current_user()}')
    return jsonify({'success': True, 'state': store.state.to_dict()})


@app.route('/api/load', methods=['POST'])
@login_required
def api_load():
    store = get_store()
    state = store.state
    loaded = store.load(state.active_workspace_id, state.active_category_id)
    return jsonify({'success': True, 'reloaded': loaded is not None, 'state': store.state.to_dict()})


# Categories

@app.route('/api/categories', methods=['GET'])
@login_required
def api_list_categories():
    state = get_store().state
    return jsonify({
        'success': True,
        'categories': [c.to_dict() for c in state.categories],
        'active_category_id': state.active_category_id,
    })


@app.route('/api/categories', methods=['POST'])
@login_required
def api_create_category():
    fields = validate_category(_payload())
    category = get_store().add_category(fields['name'])
    return jsonify({'success': True, 'category': category.to_dict()}), 201


@app.route('/api/categories/<category_id>', methods=['PUT'])
@login_required
def api_update_category(category_id):
    fields = validate_category(_payload())
    category = get_store().update_category(category_id, fields['name'])
    if category is None:
        return _not_found('Category')
    return jsonify({'success': True, 'category': category.to_dict()})


@app.route('/api/categories/<category_id>', methods=['DELETE'])
@login_required
def api_delete_category(category_id):
    get_store().delete_category(category_id)
    return jsonify({'success': True})


@app.route('/api/categories/<category_id>/activate', methods=['POST'])
@login_required
def api_activate_category(category_id):
    store = get_store()
    if not any(c.id == category_id for c in store.state.categories):
        return _not_found('Category')
    store.select_category(category_id)
    return jsonify({'success': True, 'active_category_id': category_id})


# Players

@app.route('/api/players', methods=['GET'])
@login_required
def api_list_players():
    state = get_store().state
    players = []
    for player in state.players_in(state.active_category_id):
        data = player.to_dict()
        data['team_id'] = state.team_of(player.id)
        players.append(data)
    return jsonify({'success': True, 'players': players})


@app.route('/api/players', methods=['POST'])
@login_required
def api_create_player():
    fields = validate_player(_payload())
    player = get_store().add_player(**fields)
    return jsonify({'success': True, 'player': player.to_dict()}), 201


@app.route('/api/players/<player_id>', methods=['PUT'])
@login_required
def api_update_player(player_id):
    fields = validate_player(_payload())
    player = get_store().update_player(player_id, **fields)
    if player is None:
        return _not_found('Player')
    return jsonify({'success': True, 'player': player.to_dict()})


@app.route('/api/players/<player_id>', methods=['DELETE'])
@login_required
def api_delete_player(player_id):
    get_store().delete_player(player_id)
    return jsonify({'success': True})


@app.route('/api/players/<player_id>/assign', methods=['POST'])
@login_required
def api_assign_player(player_id):
    team_id = _payload().get('team_id')
    assigned = get_store().assign_player(player_id, team_id)
    if not assigned:
        return jsonify({'success': False, 'error': 'Player could not be moved to that team'}), 409
    return jsonify({'success': True, 'team_id': team_id})


# Teams

@app.route('/api/teams', methods=['GET'])
@login_required
def api_list_teams():
    state = get_store().state
    teams = []
    for team in state.teams_in(state.active_category_id):
        data = team.to_dict()
        data['players'] = list(state.assignments.get(team.id, ()))
        data['group'] = state.groups.get(team.id)
        teams.append(data)
    return jsonify({'success': True, 'teams': teams})


@app.route('/api/teams', methods=['POST'])
@login_required
def api_create_team():
    fields = validate_team(_payload())
    team = get_store().add_team(**fields)
    return jsonify({'success': True, 'team': team.to_dict()}), 201


@app.route('/api/teams/<team_id>', methods=['PUT'])
@login_required
def api_update_team(team_id):
    fields = validate_team(_payload())
    team = get_store().update_team(team_id, **fields)
    if team is None:
        return _not_found('Team')
    return jsonify({'success': True, 'team': team.to_dict()})


@app.route('/api/teams/<team_id>', methods=['DELETE'])
@login_required
def api_delete_team(team_id):
    get_store().delete_team(team_id)
    return jsonify({'success': True})


@app.route('/api/draw', methods=['POST'])
@login_required
def api_draw():
    paid_only = bool(_payload().get('paid_only', False))
    result = get_store().draw(paid_only=paid_only)
    if result is None:
        return jsonify({'success': False, 'error': 'Add teams before drawing'}), 400
    return jsonify({'success': True, 'assignments': result})


# Phases and matches

@app.route('/api/phases/<phase>/generate', methods=['POST'])
@login_required
def api_generate_phase(phase):
    phase = validate_phase(phase.upper())
    store = get_store()
    matches = store.generate_phase(phase)
    app.logger.info(f'{get_phase_name(phase)}: {len(matches)} matches generated')
    return jsonify({'success': True, 'matches': [_match_json(m) for m in matches]})


@app.route('/api/phases/reset', methods=['POST'])
@login_required
def api_reset_phases():
    get_store().reset_phases()
    return jsonify({'success': True})


@app.route('/api/phases/<phase>/match-days')
@login_required
def api_match_days(phase):
    phase = validate_phase(phase.upper())
    days = get_store().match_days(phase)
    return jsonify({
        'success': True,
        'phase': get_phase_name(phase),
        'days': [[_match_json(m) for m in day] for day in days],
    })


@app.route('/api/matches', methods=['GET'])
@login_required
def api_list_matches():
    state = get_store().state
    phase = request.args.get('phase')
    phase = validate_phase(phase.upper()) if phase else None
    matches = state.matches_in(state.active_category_id, phase)
    return jsonify({'success': True, 'matches': [_match_json(m) for m in matches]})


@app.route('/api/matches', methods=['DELETE'])
@login_required
def api_clear_matches():
    get_store().clear_matches()
    return jsonify({'success': True})


@app.route('/api/matches/<match_id>', methods=['PUT'])
@login_required
def api_edit_match(match_id):
    fields = validate_match_teams(_payload())
    store = get_store()
    if store.state.find_match(match_id) is None:
        return _not_found('Match')
    if not store.edit_match_teams(match_id, fields['left_team_id'], fields['right_team_id']):
        return jsonify({'success': False, 'error': 'Those teams cannot play this match'}), 409
    return jsonify({'success': True, 'match': _match_json(store.state.find_match(match_id))})


@app.route('/api/matches/<match_id>', methods=['DELETE'])
@login_required
def api_delete_match(match_id):
    get_store().delete_match(match_id)
    return jsonify({'success': True})


@app.route('/api/matches/<match_id>/clock/<operation>', methods=['POST'])
@login_required
def api_match_clock(match_id, operation):
    store = get_store()
    operations = {
        'toggle': store.start_pause,
        'reset': store.reset_clock,
        'next-half': store.next_half,
    }
    if operation not in operations:
        return _not_found('Clock operation')
    match = operations[operation](match_id)
    if match is None:
        return _not_found('Match')
    return jsonify({'success': True, 'match': _match_json(match)})


@app.route('/api/matches/<match_id>/players/<player_id>/stats', methods=['POST'])
@login_required
def api_player_stats(match_id, player_id):
    changes = validate_stat_changes(_payload())
    stats = get_store().update_player_stat(match_id, player_id, **changes)
    if stats is None:
        return _not_found('Match')
    return jsonify({'success': True, 'stats': stats.to_dict()})


@app.route('/api/matches/<match_id>/players/<player_id>/destaque', methods=['POST'])
@login_required
def api_toggle_destaque(match_id, player_id):
    match = get_store().toggle_destaque(match_id, player_id)
    if match is None:
        return _not_found('Match')
    return jsonify({'success': True, 'match': _match_json(match)})


# Tables

@app.route('/api/standings')
@login_required
def api_standings():
    phase = request.args.get('phase')
    phase = validate_phase(phase.upper()) if phase else None
    return jsonify({'success': True, 'standings': get_store().standings(phase)})


@app.route('/api/top-scorers')
@login_required
def api_top_scorers():
    try:
        limit = int(request.args.get('limit', 20))
    except ValueError:
        raise ValidationError([{'field': 'limit', 'message': 'must be an integer'}])
    return jsonify({'success': True, 'scorers': get_store().top_scorers(limit)})


# Maintenance

@app.route('/api/reset', methods=['POST'])
@login_required
def api_reset_all():
    get_store().reset_all()
    app.logger.warning(f'All data reset by {current_user()}')
    return jsonify({'success': True})


@app.route('/api/demo', methods=['POST'])
@login_required
def api_load_demo():
    state = get_store().load_demo()
    return jsonify({'success': True, 'state': state.to_dict()})


if __name__ == '__main__':
    app.run(debug=True, port=5000)
