"""
State container and orchestration.

``Store`` owns the current State. Every change goes through ``dispatch``,
which applies the pure reducer, notifies subscribers and then hands the
action to the persister on a background executor. A failed write is
logged and never rolls back the local state.
"""
import logging
import random
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from futsal import actions, clock
from futsal.config import get_default_settings, period_ms
from futsal.demo import build_demo_state
from futsal.draw import draw_teams
from futsal.models import EMPTY_STATE, Category, Match, Phase, Player, PlayerStats, State, Team
from futsal.persistence import (
    Persister,
    RecordStore,
    Scope,
    WorkspaceAccessError,
    create_workspace,
    join_workspace,
    list_members,
    list_workspaces,
    load_state,
    remove_member,
    rename_workspace,
    require_member,
)
from futsal.reducer import apply
from futsal.schedule import generate_elimination, generate_group_stage, pack_match_days
from futsal.snapshot import SnapshotStore
from futsal.standings import compute_standings, top_scorers

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, record_store: Optional[RecordStore] = None,
                 snapshot: Optional[SnapshotStore] = None,
                 settings: Optional[Dict] = None,
                 identity: Optional[Callable[[], Optional[str]]] = None,
                 rng: Optional[random.Random] = None,
                 now: Callable[[], int] = clock.now_ms):
        self.settings = settings or get_default_settings()
        self.record_store = record_store
        self.persister = Persister(record_store) if record_store is not None else None
        self.snapshot = snapshot
        self.identity = identity or (lambda: None)
        self.rng = rng or random.Random()
        self.now = now

        self._state = EMPTY_STATE
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[State], None]] = []
        self._executor = None
        if self.persister is not None:
            # One writer keeps record store writes in dispatch order
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='persist')
        self._pending = set()
        self._pending_lock = threading.Lock()
        self._load_seq = 0
        self._inflight_key = None
        self._ticker = None

        if self.snapshot is not None:
            self.subscribe(self.snapshot.save)

    @property
    def state(self) -> State:
        return self._state

    @property
    def period_ms(self) -> int:
        return period_ms(self.settings)

    # Core loop

    def subscribe(self, callback: Callable[[State], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def scope(self, state: Optional[State] = None) -> Scope:
        state = state or self._state
        return Scope(
            user_id=self.identity(),
            workspace_id=state.active_workspace_id,
            category_id=state.active_category_id,
        )

    def dispatch(self, action, persist: bool = True) -> State:
        """Apply ``action`` and schedule its persistence."""
        with self._lock:
            before = self._state
            after = apply(before, action)
            self._state = after
            for callback in list(self._subscribers):
                try:
                    callback(after)
                except Exception:
                    logger.exception(f'Subscriber failed after {type(action).__name__}')
            if persist and self.persister is not None:
                self._submit(self.persister.persist, action, before, after, self.scope(before))
        return after

    def _submit(self, fn, *args):
        if self._executor is None:
            return None
        future = self._executor.submit(self._guarded, fn, *args)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future):
        with self._pending_lock:
            self._pending.discard(future)

    @staticmethod
    def _guarded(fn, *args):
        try:
            fn(*args)
        except Exception:
            logger.exception(f'Persistence failed in {getattr(fn, "__name__", fn)}; local state kept')

    def flush(self, timeout: Optional[float] = None):
        """Wait for queued persistence calls."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self):
        self.stop_ticker()
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # Loading

    def hydrate_from_snapshot(self, seed_demo: bool = False) -> State:
        """Load the local snapshot; optionally seed demo data when it has none."""
        local = self.snapshot.load() if self.snapshot is not None else EMPTY_STATE
        if seed_demo and self.record_store is None and (not local.players or not local.teams):
            local = build_demo_state(self.rng)
        return self.dispatch(actions.Hydrate(local), persist=False)

    def load(self, workspace_id: Optional[str] = None,
             category_id: Optional[str] = None) -> Optional[State]:
        """
        Reload the workspace from the record store.

        Returns the hydrated State, or None when the load was a duplicate of
        the one already in flight or was overtaken by a newer load.
        """
        if self.record_store is None:
            return None
        self.flush()
        key = (self.identity(), workspace_id, category_id)
        with self._lock:
            if self._inflight_key == key:
                logger.debug(f'Load for {key} already in flight')
                return None
            self._load_seq += 1
            seq = self._load_seq
            self._inflight_key = key
            base = self._state
        self.dispatch(actions.SetLoading(True), persist=False)

        try:
            require_member(self.record_store, workspace_id, key[0])
            loaded = load_state(
                self.record_store,
                Scope(user_id=key[0], workspace_id=workspace_id, category_id=category_id),
                base,
            )
        except Exception:
            with self._lock:
                if seq == self._load_seq:
                    self._inflight_key = None
                    self.dispatch(actions.SetLoading(False), persist=False)
            raise

        with self._lock:
            if seq != self._load_seq:
                logger.debug(f'Discarding stale load #{seq} for {key}')
                return None
            self._inflight_key = None
            loaded = replace(loaded, workspaces=self._state.workspaces)
            return self.dispatch(actions.Hydrate(loaded), persist=False)

    # Workspaces

    def refresh_workspaces(self) -> List:
        """Re-read the user's memberships; reloads when the active workspace changes."""
        user_id = self.identity()
        if self.record_store is None or user_id is None:
            return []
        try:
            workspaces = list_workspaces(self.record_store, user_id)
        except Exception:
            logger.exception('Failed to list workspaces')
            return list(self._state.workspaces)
        previous = self._state.active_workspace_id
        state = self.dispatch(actions.SetWorkspaces(tuple(workspaces)), persist=False)
        if state.active_workspace_id != previous:
            self.load(state.active_workspace_id, None)
        return workspaces

    def create_workspace(self, name: str):
        user_id = self.identity()
        if self.record_store is None or user_id is None:
            return None
        # Queued personal writes must land before their rows move
        self.flush()
        workspace = create_workspace(self.record_store, name, user_id)
        self.dispatch(actions.SetWorkspaces(self._state.workspaces + (workspace,)), persist=False)
        self.select_workspace(workspace.id)
        return workspace

    def select_workspace(self, workspace_id: Optional[str]) -> Optional[State]:
        if self.record_store is not None:
            require_member(self.record_store, workspace_id, self.identity())
        self.dispatch(actions.SetActiveWorkspace(workspace_id), persist=False)
        return self.load(workspace_id, None)

    def verify_access(self) -> bool:
        """
        Confirm the user still belongs to the active workspace.

        When the membership is gone the store falls back to the next
        workspace (or the personal scope) and returns False.
        """
        workspace_id = self._state.active_workspace_id
        if self.record_store is None or workspace_id is None:
            return True
        try:
            require_member(self.record_store, workspace_id, self.identity())
        except WorkspaceAccessError:
            logger.warning(f'{self.identity()} is no longer a member of workspace {workspace_id}')
            self.refresh_workspaces()
            return False
        return True

    def rename_workspace(self, workspace_id: str, name: str):
        rename_workspace(self.record_store, workspace_id, name, self.identity())
        renamed = tuple(replace(w, name=name) if w.id == workspace_id else w
                        for w in self._state.workspaces)
        self.dispatch(actions.SetWorkspaces(renamed), persist=False)
        return next((w for w in renamed if w.id == workspace_id), None)

    def list_members(self, workspace_id: str) -> List[Dict]:
        return list_members(self.record_store, workspace_id, self.identity())

    def join_workspace(self, workspace_id: str):
        workspace = join_workspace(self.record_store, workspace_id, self.identity())
        self.refresh_workspaces()
        self.select_workspace(workspace_id)
        return workspace

    def remove_member(self, workspace_id: str, member_id: str) -> bool:
        """Remove a member; leaving moves the user to their next workspace."""
        removed = remove_member(self.record_store, workspace_id, member_id, self.identity())
        if member_id == self.identity():
            self.refresh_workspaces()
        return removed > 0

    # Categories

    def add_category(self, name: str) -> Category:
        category = Category(id=str(uuid.uuid4()), name=name)
        self.dispatch(actions.AddCategory(category))
        return category

    def update_category(self, category_id: str, name: str) -> Optional[Category]:
        with self._lock:
            current = next((c for c in self._state.categories if c.id == category_id), None)
            if current is None:
                return None
            updated = replace(current, name=name)
            self.dispatch(actions.UpdateCategory(updated))
            return updated

    def delete_category(self, category_id: str):
        self.dispatch(actions.DeleteCategory(category_id))

    def select_category(self, category_id: Optional[str]):
        self.dispatch(actions.SetActiveCategory(category_id), persist=False)

    # Players and teams

    def add_player(self, name: str, jersey_number: int = 0, position=None,
                   paid: bool = False) -> Player:
        fields = {'name': name, 'jersey_number': jersey_number, 'paid': paid}
        if position is not None:
            fields['position'] = position
        player = Player(id=str(uuid.uuid4()), category_id=self._state.active_category_id, **fields)
        self.dispatch(actions.AddPlayer(player))
        return player

    def update_player(self, player_id: str, **changes) -> Optional[Player]:
        with self._lock:
            current = self._state.find_player(player_id)
            if current is None:
                return None
            updated = replace(current, **changes)
            self.dispatch(actions.UpdatePlayer(updated))
            return updated

    def delete_player(self, player_id: str):
        self.dispatch(actions.DeletePlayer(player_id))

    def add_team(self, name: str, color: str = '#22c55e', capacity: int = 8) -> Team:
        team = Team(id=str(uuid.uuid4()), name=name, color=color, capacity=capacity,
                    category_id=self._state.active_category_id)
        self.dispatch(actions.AddTeam(team))
        return team

    def update_team(self, team_id: str, **changes) -> Optional[Team]:
        with self._lock:
            current = self._state.find_team(team_id)
            if current is None:
                return None
            updated = replace(current, **changes)
            self.dispatch(actions.UpdateTeam(updated))
            return updated

    def delete_team(self, team_id: str):
        self.dispatch(actions.DeleteTeam(team_id))

    def assign_player(self, player_id: str, team_id: Optional[str]) -> bool:
        """Move a player by hand; False when the move was refused."""
        with self._lock:
            after = self.dispatch(actions.AssignPlayer(player_id, team_id))
            return after.find_player(player_id) is not None and after.team_of(player_id) == team_id

    # Draw and phases

    def draw(self, paid_only: bool = False) -> Optional[Dict]:
        """Draw squads for the active category; other categories keep theirs."""
        with self._lock:
            state = self._state
            category_id = state.active_category_id
            teams = state.teams_in(category_id)
            if not teams:
                return None
            result = draw_teams(state.players_in(category_id), teams, paid_only, self.rng)
            merged = {tid: pids for tid, pids in state.assignments.items() if tid not in result}
            merged.update({tid: tuple(pids) for tid, pids in result.items()})
            self.dispatch(actions.SetAssignments(merged))
            return result

    def generate_phase(self, phase: Phase) -> List[Match]:
        """Replace the active category's matches for ``phase`` with a fresh draw."""
        with self._lock:
            category_id = self._state.active_category_id
            teams = self._state.teams_in(category_id)
            if len(teams) < 2:
                return []
            for match in self._state.matches_in(category_id, phase):
                self.dispatch(actions.DeleteMatch(match.id))

            state = self._state
            if phase == Phase.GROUP:
                created, labels = generate_group_stage(
                    [t.id for t in teams], category_id, self.settings, self.rng,
                    existing=state.matches_in(category_id, Phase.GROUP),
                )
                team_ids = {t.id for t in teams}
                groups = {tid: g for tid, g in state.groups.items() if tid not in team_ids}
                groups.update(labels)
                self.dispatch(actions.SetGroups(groups))
            else:
                created = generate_elimination(
                    phase, state.matches, state.assignments, state.teams,
                    category_id, self.settings,
                )
            if created:
                self.dispatch(actions.AddMatches(tuple(created)))
            return created

    def reset_phases(self):
        self.dispatch(actions.ResetPhases())

    def clear_matches(self):
        self.dispatch(actions.ClearMatches())

    def delete_match(self, match_id: str):
        self.dispatch(actions.DeleteMatch(match_id))

    def allowed_opponents(self, match_id: str) -> List[Team]:
        """Teams a match may be edited to; group games stay inside their group."""
        state = self._state
        match = state.find_match(match_id)
        if match is None:
            return []
        teams = state.teams_in(match.category_id)
        if match.phase != Phase.GROUP:
            return teams
        label = state.groups.get(match.left_team_id) or state.groups.get(match.right_team_id)
        if not label:
            return teams
        return [t for t in teams if state.groups.get(t.id) == label]

    def edit_match_teams(self, match_id: str, left_team_id: str, right_team_id: str) -> bool:
        with self._lock:
            allowed = {t.id for t in self.allowed_opponents(match_id)}
            if left_team_id == right_team_id or left_team_id not in allowed or right_team_id not in allowed:
                return False
            self.dispatch(actions.EditMatchTeams(match_id, left_team_id, right_team_id, self.period_ms))
            return True

    # Match clock

    def _update_clock(self, match_id: str, transition) -> Optional[Match]:
        with self._lock:
            match = self._state.find_match(match_id)
            if match is None:
                return None
            updated = transition(match)
            self.dispatch(actions.UpdateMatch(updated), persist=False)
            if self.persister is not None:
                self._submit(self.persister.save_match_clock, updated, self.scope())
            return updated

    def start_pause(self, match_id: str) -> Optional[Match]:
        return self._update_clock(match_id, lambda m: clock.start_pause(m, self.now()))

    def reset_clock(self, match_id: str) -> Optional[Match]:
        return self._update_clock(match_id, lambda m: clock.reset(m, self.period_ms))

    def next_half(self, match_id: str) -> Optional[Match]:
        return self._update_clock(match_id, lambda m: clock.next_half(m, self.period_ms))

    def tick_running_clocks(self, now: Optional[int] = None) -> int:
        """Advance every running clock; returns how many were ticked."""
        with self._lock:
            now = self.now() if now is None else now
            running = [m for m in self._state.matches if m.is_running]
            for match in running:
                updated = clock.tick(match, now)
                self.dispatch(actions.UpdateMatch(updated), persist=False)
                if not updated.is_running and self.persister is not None:
                    self._submit(self.persister.save_match_clock, updated, self.scope())
            return len(running)

    def start_ticker(self) -> clock.ClockTicker:
        if self._ticker is None:
            interval = float(self.settings.get('tick_interval_seconds', 1.0))
            self._ticker = clock.ClockTicker(self.tick_running_clocks, interval)
        return self._ticker.start()

    def stop_ticker(self):
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    # Scorekeeping

    def update_player_stat(self, match_id: str, player_id: str, goals: Optional[int] = None,
                           yellow: Optional[int] = None, red: Optional[bool] = None,
                           goals_delta: int = 0, yellow_delta: int = 0) -> Optional[PlayerStats]:
        with self._lock:
            match = self._state.find_match(match_id)
            if match is None:
                return None
            previous = match.stats_for(player_id)
            new_goals = previous.goals if goals is None else goals
            new_yellow = previous.yellow if yellow is None else yellow
            stats = replace(
                previous,
                goals=max(0, new_goals + goals_delta),
                yellow=min(2, max(0, new_yellow + yellow_delta)),
                red=previous.red if red is None else red,
            )
            updated = replace(match, events={**match.events, player_id: stats})
            self.dispatch(actions.UpdateMatch(updated), persist=False)
            if self.persister is not None:
                self._submit(self.persister.save_player_stats, updated, [player_id], self.scope())
            return stats

    def toggle_destaque(self, match_id: str, player_id: str) -> Optional[Match]:
        """Flip a player's standout flag, clearing it for everyone else."""
        with self._lock:
            match = self._state.find_match(match_id)
            if match is None:
                return None
            current = match.stats_for(player_id)
            events = {pid: replace(stats, destaque=False) for pid, stats in match.events.items()}
            events[player_id] = replace(current, destaque=not current.destaque)
            updated = replace(match, events=events)
            self.dispatch(actions.UpdateMatch(updated), persist=False)
            if self.persister is not None:
                self._submit(self.persister.save_player_stats, updated, list(events), self.scope())
            return updated

    # Queries

    def standings(self, phase: Optional[Phase] = None) -> List[Dict]:
        state = self._state
        return compute_standings(state.matches, state.assignments, state.teams,
                                 state.active_category_id, phase)

    def top_scorers(self, limit: int = 20) -> List[Dict]:
        state = self._state
        return top_scorers(state.matches, state.players, state.assignments, state.teams,
                           state.active_category_id, limit)

    def match_days(self, phase: Phase) -> List[List[Match]]:
        state = self._state
        per_day = int(self.settings.get('matches_per_day', 4))
        return pack_match_days(state.matches_in(state.active_category_id, phase), per_day)

    def reset_all(self):
        self.dispatch(actions.ResetAll())

    def load_demo(self, players_count: int = 64) -> State:
        return self.dispatch(actions.Hydrate(build_demo_state(self.rng, players_count)), persist=False)
