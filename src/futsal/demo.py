"""
Demo data for trying the dashboard without a record store.
"""
import random
import uuid
from typing import Optional

from futsal.models import CANONICAL_POSITIONS, Category, Player, Position, State, Team

DEMO_TEAMS = [
    ('Lions', '#ef4444'),
    ('Panthers', '#f59e0b'),
    ('Falcons', '#10b981'),
    ('Sharks', '#3b82f6'),
    ('Wolves', '#8b5cf6'),
    ('Eagles', '#ec4899'),
    ('Rhinos', '#14b8a6'),
    ('Tigers', '#f97316'),
]


def build_demo_state(rng: Optional[random.Random] = None, players_count: int = 64) -> State:
    """One category with 8 teams and ``players_count`` players, one in eight a goalkeeper."""
    rng = rng or random.Random()
    category = Category(id=str(uuid.uuid4()), name='Demo')
    teams = tuple(
        Team(id=str(uuid.uuid4()), name=name, color=color, capacity=8, category_id=category.id)
        for name, color in DEMO_TEAMS
    )
    outfield = [pos for pos in CANONICAL_POSITIONS if pos != Position.GK]
    players = []
    for i in range(players_count):
        position = Position.GK if i % 8 == 0 else outfield[i % len(outfield)]
        players.append(Player(
            id=str(uuid.uuid4()),
            jersey_number=i + 1,
            name=f'Player {i + 1}',
            position=position,
            paid=rng.random() < 0.6,
            category_id=category.id,
        ))
    return State(
        categories=(category,),
        active_category_id=category.id,
        players=tuple(players),
        teams=teams,
        assignments={team.id: () for team in teams},
    )
