"""
Actions accepted by the reducer.

Each action kind is its own frozen dataclass; the reducer dispatches on the
class, so the set of actions is closed.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from futsal.models import (
    DEFAULT_PERIOD_MS,
    Category,
    Match,
    Player,
    State,
    Team,
    Workspace,
)


@dataclass(frozen=True)
class Hydrate:
    state: State


@dataclass(frozen=True)
class AddCategory:
    category: Category


@dataclass(frozen=True)
class UpdateCategory:
    category: Category


@dataclass(frozen=True)
class DeleteCategory:
    id: str


@dataclass(frozen=True)
class SetActiveCategory:
    id: Optional[str]


@dataclass(frozen=True)
class AddPlayer:
    player: Player


@dataclass(frozen=True)
class UpdatePlayer:
    player: Player


@dataclass(frozen=True)
class DeletePlayer:
    id: str


@dataclass(frozen=True)
class AddTeam:
    team: Team


@dataclass(frozen=True)
class UpdateTeam:
    team: Team


@dataclass(frozen=True)
class DeleteTeam:
    id: str


@dataclass(frozen=True)
class SetAssignments:
    assignments: Dict[str, Tuple[str, ...]]


@dataclass(frozen=True)
class AssignPlayer:
    """Move a player to a team, or out of every team when team_id is None."""
    player_id: str
    team_id: Optional[str]


@dataclass(frozen=True)
class AddMatches:
    matches: Tuple[Match, ...]


@dataclass(frozen=True)
class UpdateMatch:
    match: Match


@dataclass(frozen=True)
class DeleteMatch:
    id: str


@dataclass(frozen=True)
class EditMatchTeams:
    id: str
    left_team_id: str
    right_team_id: str
    period_ms: int = DEFAULT_PERIOD_MS


@dataclass(frozen=True)
class ClearMatches:
    pass


@dataclass(frozen=True)
class SetGroups:
    groups: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ResetPhases:
    pass


@dataclass(frozen=True)
class SetLoading:
    loading: bool


@dataclass(frozen=True)
class SetWorkspaces:
    workspaces: Tuple[Workspace, ...]


@dataclass(frozen=True)
class SetActiveWorkspace:
    id: Optional[str]


@dataclass(frozen=True)
class ResetAll:
    pass
