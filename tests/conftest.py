"""
Shared pytest fixtures for the futsal engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - skip the threaded/timing tests
"""
import pytest
import random
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from futsal.models import Category, Match, Phase, Player, PlayerStats, Position, State, Team


@pytest.fixture
def rng():
    """Seeded random source for repeatable draws and fixtures."""
    return random.Random(1234)


@pytest.fixture
def category():
    return Category(id='cat-1', name='Adults')


@pytest.fixture
def eight_teams(category):
    """Eight teams in one category, default capacity."""
    return [
        Team(id=f'team-{i}', name=f'Team {chr(ord("A") + i)}', category_id=category.id)
        for i in range(8)
    ]


@pytest.fixture
def forty_eight_players(category):
    """48 players, 8 goalkeepers, the rest spread over the outfield positions."""
    outfield = [Position.FIXED, Position.MID, Position.RIGHT_WING, Position.LEFT_WING, Position.FORWARD]
    players = []
    for i in range(48):
        position = Position.GK if i < 8 else outfield[i % len(outfield)]
        players.append(Player(id=f'p-{i}', jersey_number=i + 1, name=f'Player {i:02d}',
                              position=position, paid=i % 2 == 0, category_id=category.id))
    return players


@pytest.fixture
def league_state(category):
    """
    Four teams with two players each and three played group matches.

    Lions beat Tigers 2-0, Wolves and Bears draw 1-1, Lions and Wolves draw 0-0.
    """
    teams = (
        Team(id='lions', name='Lions', color='#ef4444', category_id=category.id),
        Team(id='tigers', name='Tigers', color='#f97316', category_id=category.id),
        Team(id='wolves', name='Wolves', color='#8b5cf6', category_id=category.id),
        Team(id='bears', name='Bears', color='#3b82f6', category_id=category.id),
    )
    players = tuple(
        Player(id=f'{team.id}-{n}', jersey_number=n, name=f'{team.name} {n}', category_id=category.id)
        for team in teams for n in (1, 2)
    )
    assignments = {team.id: (f'{team.id}-1', f'{team.id}-2') for team in teams}
    matches = (
        Match(id='m1', left_team_id='lions', right_team_id='tigers', category_id=category.id,
              events={'lions-1': PlayerStats(goals=2), 'tigers-2': PlayerStats(yellow=1)}),
        Match(id='m2', left_team_id='wolves', right_team_id='bears', category_id=category.id,
              events={'wolves-2': PlayerStats(goals=1), 'bears-1': PlayerStats(goals=1)}),
        Match(id='m3', left_team_id='lions', right_team_id='wolves', category_id=category.id),
    )
    return State(
        categories=(category,),
        active_category_id=category.id,
        players=players,
        teams=teams,
        assignments=assignments,
        groups={'lions': 'A', 'tigers': 'A', 'wolves': 'A', 'bears': 'A'},
        matches=matches,
    )
