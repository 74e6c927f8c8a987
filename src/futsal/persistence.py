"""
Record store access.

The engine never talks to storage directly from the reducer. Instead:

- ``RecordStore`` is the table-oriented interface (select / insert / update /
  delete / upsert with exact-match filters) a backend must provide.
- ``InMemoryRecordStore`` and ``YamlRecordStore`` are the two backends
  shipped here.
- ``Persister`` turns accepted actions into record store calls.
- ``load_state`` rebuilds domain entities from rows.
"""
import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import yaml
from filelock import FileLock

from futsal.models import (
    Category,
    Match,
    Player,
    PlayerStats,
    State,
    Team,
    Workspace,
)

logger = logging.getLogger(__name__)

TABLES = (
    'categories',
    'players',
    'teams',
    'assignments',
    'matches',
    'match_events',
    'workspaces',
    'workspace_members',
)

MATCH_EVENTS_CONFLICT = ('match_id', 'player_id', 'category_id')

# Tables whose rows belong to a workspace, or to their owner while unassigned
DATA_TABLES = ('categories', 'players', 'teams', 'assignments', 'matches', 'match_events')


class RecordStoreError(RuntimeError):
    """A record store call failed."""


class WorkspaceAccessError(PermissionError):
    """The user is not a member of the workspace, or lacks the role for the change."""


class RecordStore(ABC):
    """Table-oriented record store; filters are column == value equalities."""

    @abstractmethod
    def select(self, table: str, filters: Optional[Dict] = None) -> List[Dict]:
        ...

    @abstractmethod
    def insert(self, table: str, rows: Sequence[Dict]) -> List[Dict]:
        ...

    @abstractmethod
    def update(self, table: str, values: Dict, filters: Dict) -> int:
        ...

    @abstractmethod
    def delete(self, table: str, filters: Optional[Dict] = None) -> int:
        ...

    @abstractmethod
    def upsert(self, table: str, rows: Sequence[Dict], on_conflict: Sequence[str]) -> List[Dict]:
        ...


def _matches(row: Dict, filters: Optional[Dict]) -> bool:
    if not filters:
        return True
    return all(row.get(key) == value for key, value in filters.items())


class InMemoryRecordStore(RecordStore):
    """Record store kept in a dict of lists, guarded by a lock."""

    def __init__(self, tables: Optional[Dict[str, List[Dict]]] = None):
        self._tables = {name: [] for name in TABLES}
        if tables:
            for name, rows in tables.items():
                self._tables[name] = [dict(r) for r in rows]
        self._lock = threading.RLock()

    @contextmanager
    def _transaction(self):
        with self._lock:
            yield self._tables

    def _table(self, tables: Dict, name: str) -> List[Dict]:
        if name not in tables:
            if name not in TABLES:
                raise RecordStoreError(f'Unknown table: {name}')
            tables[name] = []
        return tables[name]

    def select(self, table, filters=None):
        with self._transaction() as tables:
            return [dict(r) for r in self._table(tables, table) if _matches(r, filters)]

    def insert(self, table, rows):
        with self._transaction() as tables:
            target = self._table(tables, table)
            inserted = []
            for row in rows:
                row = dict(row)
                if table not in ('assignments', 'match_events', 'workspace_members'):
                    row.setdefault('id', str(uuid.uuid4()))
                    if any(r.get('id') == row['id'] for r in target):
                        raise RecordStoreError(f'Duplicate id {row["id"]} in {table}')
                target.append(row)
                inserted.append(dict(row))
            return inserted

    def update(self, table, values, filters):
        with self._transaction() as tables:
            count = 0
            for row in self._table(tables, table):
                if _matches(row, filters):
                    row.update(values)
                    count += 1
            return count

    def delete(self, table, filters=None):
        with self._transaction() as tables:
            rows = self._table(tables, table)
            kept = [r for r in rows if not _matches(r, filters)]
            tables[table] = kept
            return len(rows) - len(kept)

    def upsert(self, table, rows, on_conflict):
        with self._transaction() as tables:
            target = self._table(tables, table)
            result = []
            for row in rows:
                key = {col: row.get(col) for col in on_conflict}
                existing = next((r for r in target if _matches(r, key)), None)
                if existing is None:
                    existing = dict(row)
                    target.append(existing)
                else:
                    existing.update(row)
                result.append(dict(existing))
            return result


class YamlRecordStore(InMemoryRecordStore):
    """Record store persisted to one YAML file, locked across processes."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        self._file_lock = FileLock(f'{path}.lock', timeout=10)

    def _load(self) -> Dict[str, List[Dict]]:
        tables = {name: [] for name in TABLES}
        if not os.path.exists(self.path):
            return tables
        with open(self.path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise RecordStoreError(f'Failed to parse {self.path}: {e}') from e
        if isinstance(data, dict):
            for name, rows in data.items():
                tables[name] = list(rows or [])
        return tables

    def _save(self, tables: Dict[str, List[Dict]]):
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(tables, f, default_flow_style=False, sort_keys=True)

    @contextmanager
    def _transaction(self):
        with self._lock, self._file_lock:
            tables = self._load()
            yield tables
            self._save(tables)


@dataclass(frozen=True)
class Scope:
    """Who is writing and which workspace/category the rows belong to."""
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None
    category_id: Optional[str] = None

    def filters(self, category: bool = True, **extra) -> Dict:
        # Rows outside any workspace are private to the user who wrote them
        result = {'workspace_id': self.workspace_id}
        if self.workspace_id is None:
            result['owner_id'] = self.user_id
        if category and self.category_id is not None:
            result['category_id'] = self.category_id
        result.update(extra)
        return result


# Row mapping

def _iso(ms: Optional[int]) -> Optional[str]:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _ms(value) -> Optional[int]:
    if value is None or value == '':
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.fromisoformat(str(value))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(round(moment.timestamp() * 1000))


def category_row(category: Category, scope: Scope) -> Dict:
    return {'id': category.id, 'name': category.name,
            'workspace_id': scope.workspace_id, 'owner_id': scope.user_id}


def player_row(player: Player, scope: Scope) -> Dict:
    return {
        'id': player.id,
        'jersey_number': player.jersey_number,
        'name': player.name,
        'position': player.position.value,
        'paid': player.paid,
        'category_id': player.category_id,
        'workspace_id': scope.workspace_id,
        'owner_id': scope.user_id,
    }


def team_row(team: Team, scope: Scope) -> Dict:
    return {
        'id': team.id,
        'name': team.name,
        'color': team.color,
        'capacity': team.capacity,
        'category_id': team.category_id,
        'workspace_id': scope.workspace_id,
        'owner_id': scope.user_id,
    }


def match_row(match: Match, scope: Scope) -> Dict:
    return {
        'id': match.id,
        'left_team_id': match.left_team_id,
        'right_team_id': match.right_team_id,
        'phase': match.phase.value,
        'started_at': _iso(match.started_at),
        'half': match.half,
        'remaining_ms': match.remaining_ms,
        'category_id': match.category_id,
        'workspace_id': scope.workspace_id,
        'owner_id': scope.user_id,
    }


def match_event_row(match: Match, player_id: str, stats: PlayerStats, scope: Scope) -> Dict:
    row = {'match_id': match.id, 'player_id': player_id,
           'category_id': match.category_id, 'workspace_id': scope.workspace_id,
           'owner_id': scope.user_id}
    row.update(stats.to_dict())
    return row


def match_from_row(row: Dict, events: Dict[str, PlayerStats]) -> Match:
    data = dict(row)
    data['started_at'] = _ms(row.get('started_at'))
    return replace(Match.from_dict(data), events=events)


def _safe_select(store: RecordStore, table: str, filters: Dict) -> List[Dict]:
    try:
        return store.select(table, filters)
    except Exception:
        logger.exception(f'Failed to load {table}; using an empty list')
        return []


def load_state(store: RecordStore, scope: Scope, base: Optional[State] = None) -> State:
    """
    Rebuild a State from rows in ``scope``'s workspace.

    Rows of every category in the workspace are loaded; a table that fails to
    load contributes nothing. Session fields (workspaces, active ids) and the
    group labels are taken from ``base``.
    """
    base = base or State()
    ws_filter = scope.filters(category=False)
    category_rows = _safe_select(store, 'categories', ws_filter)
    player_rows = _safe_select(store, 'players', ws_filter)
    team_rows = _safe_select(store, 'teams', ws_filter)
    assignment_rows = _safe_select(store, 'assignments', ws_filter)
    match_rows = _safe_select(store, 'matches', ws_filter)
    event_rows = _safe_select(store, 'match_events', ws_filter)

    categories = tuple(Category.from_dict(r) for r in category_rows)
    teams = tuple(Team.from_dict(r) for r in team_rows)
    assignments = {t.id: [] for t in teams}
    for row in assignment_rows:
        assignments.setdefault(row['team_id'], []).append(row['player_id'])

    events_by_match = {}
    for row in event_rows:
        events_by_match.setdefault(row['match_id'], {})[row['player_id']] = PlayerStats.from_dict(row)
    matches = tuple(match_from_row(r, events_by_match.get(r['id'], {})) for r in match_rows)

    category_ids = {c.id for c in categories}
    active = scope.category_id if scope.category_id in category_ids else None
    if active is None and categories:
        active = categories[0].id
    team_ids = {t.id for t in teams}
    return State(
        categories=categories,
        active_category_id=active,
        players=tuple(Player.from_dict(r) for r in player_rows),
        teams=teams,
        assignments={tid: tuple(pids) for tid, pids in assignments.items()},
        groups={tid: g for tid, g in base.groups.items() if tid in team_ids},
        matches=matches,
        loading=False,
        workspaces=base.workspaces,
        active_workspace_id=scope.workspace_id if scope.workspace_id is not None else base.active_workspace_id,
    )


def list_workspaces(store: RecordStore, user_id: str) -> List[Workspace]:
    """Workspaces the user is a member of, with the user's role."""
    memberships = store.select('workspace_members', {'user_id': user_id})
    result = []
    for membership in memberships:
        rows = store.select('workspaces', {'id': membership['workspace_id']})
        if rows:
            result.append(Workspace(id=rows[0]['id'], name=rows[0].get('name', ''),
                                    role=membership.get('role') or 'member'))
    return result


def create_workspace(store: RecordStore, name: str, owner_id: str) -> Workspace:
    """
    Create a workspace and make ``owner_id`` its owner.

    Rows the owner wrote outside any workspace move into the new one.
    """
    row = store.insert('workspaces', [{'id': str(uuid.uuid4()), 'name': name, 'owner_id': owner_id}])[0]
    store.insert('workspace_members', [{'workspace_id': row['id'], 'user_id': owner_id, 'role': 'owner'}])
    personal = {'workspace_id': None, 'owner_id': owner_id}
    failures = run_concurrently([
        lambda table=table: store.update(table, {'workspace_id': row['id']}, personal)
        for table in DATA_TABLES
    ])
    for error in failures:
        logger.error(f'Moving personal rows into workspace {row["id"]} failed: {error!r}')
    if failures:
        raise RecordStoreError(f'{len(failures)} row move(s) failed') from failures[0]
    return Workspace(id=row['id'], name=row['name'], role='owner')


def workspace_role(store: RecordStore, workspace_id: str, user_id: Optional[str]) -> Optional[str]:
    """The user's role in the workspace, or None when not a member."""
    if user_id is None:
        return None
    rows = store.select('workspace_members', {'workspace_id': workspace_id, 'user_id': user_id})
    if not rows:
        return None
    return rows[0].get('role') or 'member'


def require_member(store: RecordStore, workspace_id: Optional[str], user_id: Optional[str],
                   role: Optional[str] = None) -> Optional[str]:
    """
    Raise WorkspaceAccessError unless ``user_id`` belongs to the workspace.

    ``role`` additionally demands that role (e.g. 'owner'). The personal
    scope (``workspace_id`` None) needs only an identity.
    """
    if workspace_id is None:
        if user_id is None:
            raise WorkspaceAccessError('An identity is required')
        return None
    current = workspace_role(store, workspace_id, user_id)
    if current is None:
        raise WorkspaceAccessError(f'{user_id} is not a member of workspace {workspace_id}')
    if role is not None and current != role:
        raise WorkspaceAccessError(f'Only the {role} of workspace {workspace_id} can do that')
    return current


def rename_workspace(store: RecordStore, workspace_id: str, name: str, user_id: str):
    require_member(store, workspace_id, user_id, role='owner')
    store.update('workspaces', {'name': name}, {'id': workspace_id})


def list_members(store: RecordStore, workspace_id: str, user_id: str) -> List[Dict]:
    """Members of the workspace as ``{user_id, role}``; callers must be members."""
    require_member(store, workspace_id, user_id)
    rows = store.select('workspace_members', {'workspace_id': workspace_id})
    return [{'user_id': r['user_id'], 'role': r.get('role') or 'member'} for r in rows]


def join_workspace(store: RecordStore, workspace_id: str, user_id: str) -> Workspace:
    """Add ``user_id`` as a member; joining twice keeps the existing role."""
    rows = store.select('workspaces', {'id': workspace_id})
    if not rows:
        raise WorkspaceAccessError(f'Workspace {workspace_id} does not exist')
    role = workspace_role(store, workspace_id, user_id)
    if role is None:
        role = 'member'
        store.insert('workspace_members', [{'workspace_id': workspace_id, 'user_id': user_id, 'role': role}])
    return Workspace(id=workspace_id, name=rows[0].get('name', ''), role=role)


def remove_member(store: RecordStore, workspace_id: str, member_id: str, user_id: str) -> int:
    """
    Remove ``member_id`` from the workspace.

    Any member may leave; removing someone else takes the owner role.
    """
    if member_id == user_id:
        require_member(store, workspace_id, user_id)
    else:
        require_member(store, workspace_id, user_id, role='owner')
    return store.delete('workspace_members', {'workspace_id': workspace_id, 'user_id': member_id})


def run_concurrently(calls: Sequence[Callable[[], object]]) -> List[BaseException]:
    """Run ``calls`` in parallel, wait for all of them, return the failures."""
    if not calls:
        return []
    failures = []
    with ThreadPoolExecutor(max_workers=len(calls)) as executor:
        futures = [executor.submit(call) for call in calls]
        for future in futures:
            error = future.exception()
            if error is not None:
                failures.append(error)
    return failures


class Persister:
    """Mirror accepted actions into a record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    def persist(self, action, before: State, after: State, scope: Scope):
        """Write the effect of ``action``; raises RecordStoreError on failure."""
        handler = getattr(self, f'_persist_{type(action).__name__}', None)
        if handler is None:
            return
        handler(action, before, after, scope)

    def _bulk(self, calls: Iterable[Callable[[], object]]):
        failures = run_concurrently(list(calls))
        for error in failures:
            logger.error(f'Bulk write failed: {error!r}')
        if failures:
            raise RecordStoreError(f'{len(failures)} bulk write(s) failed') from failures[0]

    def _persist_AddCategory(self, action, before, after, scope):
        self.store.insert('categories', [category_row(action.category, scope)])

    def _persist_UpdateCategory(self, action, before, after, scope):
        self.store.update('categories', {'name': action.category.name},
                          scope.filters(category=False, id=action.category.id))

    def _persist_DeleteCategory(self, action, before, after, scope):
        ws = scope.filters(category=False)
        by_category = dict(ws, category_id=action.id)
        calls = [
            lambda table=table: self.store.delete(table, by_category)
            for table in ('match_events', 'matches', 'assignments', 'players', 'teams')
        ]
        calls.append(lambda: self.store.delete('categories', dict(ws, id=action.id)))
        self._bulk(calls)

    def _persist_AddPlayer(self, action, before, after, scope):
        self.store.insert('players', [player_row(action.player, scope)])

    def _persist_UpdatePlayer(self, action, before, after, scope):
        row = player_row(action.player, scope)
        values = {k: row[k] for k in ('jersey_number', 'name', 'position', 'paid')}
        self.store.update('players', values, scope.filters(category=False, id=action.player.id))

    def _persist_DeletePlayer(self, action, before, after, scope):
        ws = scope.filters(category=False)
        self._bulk([
            lambda: self.store.delete('assignments', dict(ws, player_id=action.id)),
            lambda: self.store.delete('players', dict(ws, id=action.id)),
        ])

    def _persist_AddTeam(self, action, before, after, scope):
        self.store.insert('teams', [team_row(action.team, scope)])

    def _persist_UpdateTeam(self, action, before, after, scope):
        team = action.team
        self.store.update('teams', {'name': team.name, 'color': team.color, 'capacity': team.capacity},
                          scope.filters(category=False, id=team.id))

    def _persist_DeleteTeam(self, action, before, after, scope):
        ws = scope.filters(category=False)
        self._bulk([
            lambda: self.store.delete('assignments', dict(ws, team_id=action.id)),
            lambda: self.store.delete('teams', dict(ws, id=action.id)),
        ])

    def _assignment_rows(self, state: State, team_ids, scope: Scope) -> List[Dict]:
        rows = []
        for team in state.teams:
            if team.id not in team_ids:
                continue
            for player_id in state.assignments.get(team.id, ()):
                rows.append({'team_id': team.id, 'player_id': player_id,
                             'category_id': team.category_id,
                             'workspace_id': scope.workspace_id,
                             'owner_id': scope.user_id})
        return rows

    def _persist_SetAssignments(self, action, before, after, scope):
        team_ids = {t.id for t in after.teams_in(scope.category_id)}
        self.store.delete('assignments', scope.filters())
        rows = self._assignment_rows(after, team_ids, scope)
        if rows:
            self.store.insert('assignments', rows)

    def _persist_AssignPlayer(self, action, before, after, scope):
        if before.assignments == after.assignments:
            return
        self.store.delete('assignments', scope.filters(category=False, player_id=action.player_id))
        team_id = after.team_of(action.player_id)
        if team_id is not None:
            team = after.find_team(team_id)
            self.store.insert('assignments', [{
                'team_id': team_id,
                'player_id': action.player_id,
                'category_id': team.category_id if team else scope.category_id,
                'workspace_id': scope.workspace_id,
                'owner_id': scope.user_id,
            }])

    def _persist_AddMatches(self, action, before, after, scope):
        if action.matches:
            self.store.insert('matches', [match_row(m, scope) for m in action.matches])

    def _persist_DeleteMatch(self, action, before, after, scope):
        ws = scope.filters(category=False)
        self._bulk([
            lambda: self.store.delete('match_events', dict(ws, match_id=action.id)),
            lambda: self.store.delete('matches', dict(ws, id=action.id)),
        ])

    def _persist_EditMatchTeams(self, action, before, after, scope):
        match = after.find_match(action.id)
        if match is None:
            return
        ws = scope.filters(category=False)
        row = match_row(match, scope)
        values = {k: row[k] for k in ('left_team_id', 'right_team_id', 'half', 'started_at', 'remaining_ms')}
        self._bulk([
            lambda: self.store.delete('match_events', dict(ws, match_id=action.id)),
            lambda: self.store.update('matches', values, dict(ws, id=action.id)),
        ])

    def _persist_ClearMatches(self, action, before, after, scope):
        self._bulk([
            lambda: self.store.delete('match_events', scope.filters()),
            lambda: self.store.delete('matches', scope.filters()),
        ])

    def _persist_ResetPhases(self, action, before, after, scope):
        self._bulk([
            lambda table=table: self.store.delete(table, scope.filters())
            for table in ('match_events', 'assignments', 'matches')
        ])

    def _persist_ResetAll(self, action, before, after, scope):
        ws = scope.filters(category=False)
        self._bulk([
            lambda table=table: self.store.delete(table, ws)
            for table in ('match_events', 'assignments', 'matches', 'players', 'teams', 'categories')
        ])

    # Explicit match writes; plain UpdateMatch is not persisted because
    # clock ticks would flood the store.

    def save_match_clock(self, match: Match, scope: Scope):
        row = match_row(match, scope)
        values = {k: row[k] for k in ('half', 'started_at', 'remaining_ms')}
        self.store.update('matches', values, scope.filters(category=False, id=match.id))

    def save_player_stats(self, match: Match, player_ids: Sequence[str], scope: Scope):
        rows = [match_event_row(match, pid, match.stats_for(pid), scope) for pid in player_ids]
        if rows:
            self.store.upsert('match_events', rows, on_conflict=MATCH_EVENTS_CONFLICT)

