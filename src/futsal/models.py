"""
Domain entities and the state snapshot for the tournament engine.

Entities only reference each other by id, so the whole snapshot can be
turned into plain dicts (for YAML/JSON) and rebuilt without loss.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


DEFAULT_PERIOD_MS = 20 * 60 * 1000


class Position(str, Enum):
    NONE = "NONE"
    GK = "GK"
    FIXED = "FIXED"
    MID = "MID"
    RIGHT_WING = "RIGHT_WING"
    LEFT_WING = "LEFT_WING"
    FORWARD = "FORWARD"


# Order in which the draw hands out positions; NONE never gets a slot.
CANONICAL_POSITIONS = (
    Position.GK,
    Position.FIXED,
    Position.MID,
    Position.RIGHT_WING,
    Position.LEFT_WING,
    Position.FORWARD,
)


class Phase(str, Enum):
    GROUP = "GROUP"
    R16 = "R16"
    QF = "QF"
    SF = "SF"
    FINAL = "FINAL"


ELIMINATION_PHASES = (Phase.R16, Phase.QF, Phase.SF, Phase.FINAL)


def get_phase_name(phase: Phase) -> str:
    """Get a display name for a phase."""
    if phase == Phase.GROUP:
        return "Group Stage"
    elif phase == Phase.R16:
        return "Round of 16"
    elif phase == Phase.QF:
        return "Quarterfinal"
    elif phase == Phase.SF:
        return "Semifinal"
    return "Final"


@dataclass(frozen=True)
class Category:
    id: str
    name: str

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name}

    @classmethod
    def from_dict(cls, data: Dict) -> "Category":
        return cls(id=data['id'], name=data.get('name', ''))


@dataclass(frozen=True)
class Player:
    id: str
    jersey_number: int
    name: str
    position: Position = Position.NONE
    paid: bool = False
    category_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'jersey_number': self.jersey_number,
            'name': self.name,
            'position': self.position.value,
            'paid': self.paid,
            'category_id': self.category_id,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Player":
        return cls(
            id=data['id'],
            jersey_number=int(data.get('jersey_number') or 0),
            name=data.get('name', ''),
            position=Position(data.get('position') or Position.NONE.value),
            paid=bool(data.get('paid', False)),
            category_id=data.get('category_id'),
        )


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    color: str = "#22c55e"
    capacity: int = 8
    category_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'capacity': self.capacity,
            'category_id': self.category_id,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Team":
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            color=data.get('color') or "#22c55e",
            capacity=max(1, int(data.get('capacity') or 1)),
            category_id=data.get('category_id'),
        )


@dataclass(frozen=True)
class PlayerStats:
    goals: int = 0
    yellow: int = 0
    red: bool = False
    destaque: bool = False

    def to_dict(self) -> Dict:
        return {
            'goals': self.goals,
            'yellow': self.yellow,
            'red': self.red,
            'destaque': self.destaque,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "PlayerStats":
        return cls(
            goals=max(0, int(data.get('goals') or 0)),
            yellow=min(2, max(0, int(data.get('yellow') or 0))),
            red=bool(data.get('red', False)),
            destaque=bool(data.get('destaque', False)),
        )


@dataclass(frozen=True)
class Match:
    id: str
    left_team_id: str
    right_team_id: str
    phase: Phase = Phase.GROUP
    half: int = 1
    started_at: Optional[int] = None
    remaining_ms: int = DEFAULT_PERIOD_MS
    events: Dict[str, PlayerStats] = field(default_factory=dict)
    category_id: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.started_at is not None

    def stats_for(self, player_id: str) -> PlayerStats:
        return self.events.get(player_id, PlayerStats())

    def pairing_key(self) -> Tuple[str, str]:
        """Unordered identity of the two sides."""
        return tuple(sorted((self.left_team_id, self.right_team_id)))

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'left_team_id': self.left_team_id,
            'right_team_id': self.right_team_id,
            'phase': self.phase.value,
            'half': self.half,
            'started_at': self.started_at,
            'remaining_ms': self.remaining_ms,
            'events': {pid: stats.to_dict() for pid, stats in self.events.items()},
            'category_id': self.category_id,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Match":
        started_at = data.get('started_at')
        remaining = data.get('remaining_ms')
        return cls(
            id=data['id'],
            left_team_id=data['left_team_id'],
            right_team_id=data['right_team_id'],
            phase=Phase(data.get('phase') or Phase.GROUP.value),
            half=2 if data.get('half') == 2 else 1,
            started_at=int(started_at) if started_at is not None else None,
            remaining_ms=DEFAULT_PERIOD_MS if remaining is None else max(0, int(remaining)),
            events={
                pid: PlayerStats.from_dict(stats)
                for pid, stats in (data.get('events') or {}).items()
            },
            category_id=data.get('category_id'),
        )


@dataclass(frozen=True)
class Workspace:
    id: str
    name: str
    role: str = "member"

    def to_dict(self) -> Dict:
        return {'id': self.id, 'name': self.name, 'role': self.role}

    @classmethod
    def from_dict(cls, data: Dict) -> "Workspace":
        return cls(id=data['id'], name=data.get('name', ''), role=data.get('role') or "member")


@dataclass(frozen=True)
class State:
    """One revision of the whole domain model.

    Collections are tuples and the maps are never mutated in place; every
    transition builds a new State.
    """
    categories: Tuple[Category, ...] = ()
    active_category_id: Optional[str] = None
    players: Tuple[Player, ...] = ()
    teams: Tuple[Team, ...] = ()
    assignments: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    groups: Dict[str, str] = field(default_factory=dict)
    matches: Tuple[Match, ...] = ()
    loading: bool = False
    workspaces: Tuple[Workspace, ...] = ()
    active_workspace_id: Optional[str] = None

    def players_in(self, category_id: Optional[str]) -> List[Player]:
        return [p for p in self.players if category_id is None or p.category_id == category_id]

    def teams_in(self, category_id: Optional[str]) -> List[Team]:
        return [t for t in self.teams if category_id is None or t.category_id == category_id]

    def matches_in(self, category_id: Optional[str], phase: Optional[Phase] = None) -> List[Match]:
        return [
            m for m in self.matches
            if (category_id is None or m.category_id == category_id)
            and (phase is None or m.phase == phase)
        ]

    def find_match(self, match_id: str) -> Optional[Match]:
        return next((m for m in self.matches if m.id == match_id), None)

    def find_team(self, team_id: str) -> Optional[Team]:
        return next((t for t in self.teams if t.id == team_id), None)

    def find_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def team_of(self, player_id: str) -> Optional[str]:
        for team_id, player_ids in self.assignments.items():
            if player_id in player_ids:
                return team_id
        return None

    def to_dict(self) -> Dict:
        return {
            'categories': [c.to_dict() for c in self.categories],
            'active_category_id': self.active_category_id,
            'players': [p.to_dict() for p in self.players],
            'teams': [t.to_dict() for t in self.teams],
            'assignments': {tid: list(pids) for tid, pids in self.assignments.items()},
            'groups': dict(self.groups),
            'matches': [m.to_dict() for m in self.matches],
            'loading': self.loading,
            'workspaces': [w.to_dict() for w in self.workspaces],
            'active_workspace_id': self.active_workspace_id,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "State":
        if not data:
            return cls()
        return cls(
            categories=tuple(Category.from_dict(c) for c in data.get('categories') or []),
            active_category_id=data.get('active_category_id'),
            players=tuple(Player.from_dict(p) for p in data.get('players') or []),
            teams=tuple(Team.from_dict(t) for t in data.get('teams') or []),
            assignments={
                tid: tuple(pids or ())
                for tid, pids in (data.get('assignments') or {}).items()
            },
            groups=dict(data.get('groups') or {}),
            matches=tuple(Match.from_dict(m) for m in data.get('matches') or []),
            loading=bool(data.get('loading', False)),
            workspaces=tuple(Workspace.from_dict(w) for w in data.get('workspaces') or []),
            active_workspace_id=data.get('active_workspace_id'),
        )


EMPTY_STATE = State()

