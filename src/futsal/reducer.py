"""
Pure state transitions.

apply(state, action) never performs I/O; persistence is handled by the
store after a transition has been accepted.
"""
from dataclasses import replace
from typing import Callable, Dict, Iterable, Optional

from futsal import actions
from futsal.models import EMPTY_STATE, State


def apply(state: State, action) -> State:
    """Return the state produced by applying ``action`` to ``state``."""
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unknown action: {action!r}")
    return handler(state, action)


def _replace_by_id(items: Iterable, updated) -> tuple:
    return tuple(updated if item.id == updated.id else item for item in items)


def _without_ids(items: Iterable, ids) -> tuple:
    return tuple(item for item in items if item.id not in ids)


def _purge_players(assignments: Dict, player_ids) -> Dict:
    return {
        tid: tuple(pid for pid in pids if pid not in player_ids)
        for tid, pids in assignments.items()
    }


def _in_scope(category_id: Optional[str], scope: Optional[str]) -> bool:
    return scope is None or category_id == scope


# Hydration / categories

def _hydrate(state, action):
    return action.state


def _add_category(state, action):
    active = state.active_category_id or action.category.id
    return replace(
        state,
        categories=state.categories + (action.category,),
        active_category_id=active,
    )


def _update_category(state, action):
    return replace(state, categories=_replace_by_id(state.categories, action.category))


def _delete_category(state, action):
    category_id = action.id
    removed_teams = {t.id for t in state.teams if t.category_id == category_id}
    removed_players = {p.id for p in state.players if p.category_id == category_id}
    categories = tuple(c for c in state.categories if c.id != category_id)
    assignments = _purge_players(
        {tid: pids for tid, pids in state.assignments.items() if tid not in removed_teams},
        removed_players,
    )
    active = state.active_category_id
    if active == category_id:
        active = categories[0].id if categories else None
    return replace(
        state,
        categories=categories,
        active_category_id=active,
        players=_without_ids(state.players, removed_players),
        teams=_without_ids(state.teams, removed_teams),
        assignments=assignments,
        groups={tid: g for tid, g in state.groups.items() if tid not in removed_teams},
        matches=tuple(m for m in state.matches if m.category_id != category_id),
    )


def _set_active_category(state, action):
    return replace(state, active_category_id=action.id)


# Players

def _add_player(state, action):
    return replace(state, players=state.players + (action.player,))


def _update_player(state, action):
    return replace(state, players=_replace_by_id(state.players, action.player))


def _delete_player(state, action):
    return replace(
        state,
        players=_without_ids(state.players, {action.id}),
        assignments=_purge_players(state.assignments, {action.id}),
    )


# Teams and assignments

def _add_team(state, action):
    team = action.team
    return replace(
        state,
        teams=state.teams + (team,),
        assignments={**state.assignments, team.id: ()},
    )


def _update_team(state, action):
    return replace(state, teams=_replace_by_id(state.teams, action.team))


def _delete_team(state, action):
    return replace(
        state,
        teams=_without_ids(state.teams, {action.id}),
        assignments={tid: pids for tid, pids in state.assignments.items() if tid != action.id},
        groups={tid: g for tid, g in state.groups.items() if tid != action.id},
    )


def _set_assignments(state, action):
    return replace(
        state,
        assignments={tid: tuple(pids) for tid, pids in action.assignments.items()},
    )


def _assign_player(state, action):
    player_id = action.player_id
    if state.find_player(player_id) is None:
        return state
    if action.team_id is None:
        return replace(state, assignments=_purge_players(state.assignments, {player_id}))

    team = state.find_team(action.team_id)
    if team is None:
        return state
    current = [pid for pid in state.assignments.get(team.id, ()) if pid != player_id]
    if len(current) >= team.capacity:
        return state
    assignments = _purge_players(state.assignments, {player_id})
    assignments[team.id] = tuple(current) + (player_id,)
    return replace(state, assignments=assignments)


# Matches

def _add_matches(state, action):
    return replace(state, matches=state.matches + tuple(action.matches))


def _update_match(state, action):
    return replace(state, matches=_replace_by_id(state.matches, action.match))


def _delete_match(state, action):
    return replace(state, matches=_without_ids(state.matches, {action.id}))


def _edit_match_teams(state, action):
    match = state.find_match(action.id)
    if match is None:
        return state
    edited = replace(
        match,
        left_team_id=action.left_team_id,
        right_team_id=action.right_team_id,
        half=1,
        started_at=None,
        remaining_ms=action.period_ms,
        events={},
    )
    return replace(state, matches=_replace_by_id(state.matches, edited))


def _clear_matches(state, action):
    scope = state.active_category_id
    return replace(
        state,
        matches=tuple(m for m in state.matches if not _in_scope(m.category_id, scope)),
    )


def _set_groups(state, action):
    return replace(state, groups=dict(action.groups))


def _reset_phases(state, action):
    scope = state.active_category_id
    scoped_teams = {t.id for t in state.teams if _in_scope(t.category_id, scope)}
    assignments = {
        tid: (() if tid in scoped_teams else pids)
        for tid, pids in state.assignments.items()
    }
    return replace(
        state,
        assignments=assignments,
        groups={tid: g for tid, g in state.groups.items() if tid not in scoped_teams},
        matches=tuple(m for m in state.matches if not _in_scope(m.category_id, scope)),
    )


# Session-level flags

def _set_loading(state, action):
    return replace(state, loading=action.loading)


def _set_workspaces(state, action):
    workspaces = tuple(action.workspaces)
    active = state.active_workspace_id
    if active not in {w.id for w in workspaces}:
        active = workspaces[0].id if workspaces else None
    return replace(state, workspaces=workspaces, active_workspace_id=active)


def _set_active_workspace(state, action):
    return replace(state, active_workspace_id=action.id)


def _reset_all(state, action):
    return EMPTY_STATE


_HANDLERS: Dict[type, Callable[[State, object], State]] = {
    actions.Hydrate: _hydrate,
    actions.AddCategory: _add_category,
    actions.UpdateCategory: _update_category,
    actions.DeleteCategory: _delete_category,
    actions.SetActiveCategory: _set_active_category,
    actions.AddPlayer: _add_player,
    actions.UpdatePlayer: _update_player,
    actions.DeletePlayer: _delete_player,
    actions.AddTeam: _add_team,
    actions.UpdateTeam: _update_team,
    actions.DeleteTeam: _delete_team,
    actions.SetAssignments: _set_assignments,
    actions.AssignPlayer: _assign_player,
    actions.AddMatches: _add_matches,
    actions.UpdateMatch: _update_match,
    actions.DeleteMatch: _delete_match,
    actions.EditMatchTeams: _edit_match_teams,
    actions.ClearMatches: _clear_matches,
    actions.SetGroups: _set_groups,
    actions.ResetPhases: _reset_phases,
    actions.SetLoading: _set_loading,
    actions.SetWorkspaces: _set_workspaces,
    actions.SetActiveWorkspace: _set_active_workspace,
    actions.ResetAll: _reset_all,
}
