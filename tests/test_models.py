"""
Unit tests for the domain entities and the state snapshot.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from futsal.models import (
    DEFAULT_PERIOD_MS,
    EMPTY_STATE,
    Match,
    Phase,
    Player,
    PlayerStats,
    Position,
    State,
    Team,
    get_phase_name,
)


class TestPlayer:
    """Tests for the Player model."""

    def test_defaults(self):
        """A new player has no position and has not paid."""
        player = Player(id='p1', jersey_number=10, name='Ana')
        assert player.position == Position.NONE
        assert player.paid is False
        assert player.category_id is None

    def test_from_dict_missing_position(self):
        player = Player.from_dict({'id': 'p1', 'name': 'Ana', 'position': None})
        assert player.position == Position.NONE
        assert player.jersey_number == 0

    def test_unknown_position_rejected(self):
        with pytest.raises(ValueError):
            Player.from_dict({'id': 'p1', 'name': 'Ana', 'position': 'STRIKER'})


class TestTeam:
    """Tests for the Team model."""

    def test_defaults(self):
        team = Team(id='t1', name='Lions')
        assert team.color == '#22c55e'
        assert team.capacity == 8

    def test_capacity_at_least_one(self):
        """A stored zero capacity is read back as 1."""
        team = Team.from_dict({'id': 't1', 'name': 'Lions', 'capacity': 0})
        assert team.capacity == 1


class TestPlayerStats:
    """Tests for per-match player stats."""

    def test_from_dict_clamps(self):
        stats = PlayerStats.from_dict({'goals': -3, 'yellow': 5, 'red': 1})
        assert stats.goals == 0
        assert stats.yellow == 2
        assert stats.red is True
        assert stats.destaque is False


class TestMatch:
    """Tests for the Match model."""

    def test_new_match_clock_defaults(self):
        match = Match(id='m1', left_team_id='a', right_team_id='b')
        assert match.half == 1
        assert match.started_at is None
        assert match.remaining_ms == DEFAULT_PERIOD_MS
        assert match.events == {}
        assert not match.is_running

    def test_stats_for_unknown_player(self):
        match = Match(id='m1', left_team_id='a', right_team_id='b')
        assert match.stats_for('nobody') == PlayerStats()

    def test_pairing_key_is_unordered(self):
        one = Match(id='m1', left_team_id='a', right_team_id='b')
        two = Match(id='m2', left_team_id='b', right_team_id='a')
        assert one.pairing_key() == two.pairing_key()

    def test_from_dict_normalizes_half_and_remaining(self):
        match = Match.from_dict({'id': 'm1', 'left_team_id': 'a', 'right_team_id': 'b',
                                 'half': 3, 'remaining_ms': -10})
        assert match.half == 1
        assert match.remaining_ms == 0


class TestPhaseNames:
    """Tests for phase display names."""

    def test_names(self):
        assert get_phase_name(Phase.GROUP) == 'Group Stage'
        assert get_phase_name(Phase.QF) == 'Quarterfinal'
        assert get_phase_name(Phase.FINAL) == 'Final'


class TestState:
    """Tests for the state snapshot."""

    def test_round_trip(self, league_state):
        """Serializing and deserializing reproduces an identical snapshot."""
        restored = State.from_dict(league_state.to_dict())
        assert restored == league_state

    def test_round_trip_is_idempotent(self, league_state):
        once = State.from_dict(league_state.to_dict())
        twice = State.from_dict(once.to_dict())
        assert once == twice

    def test_from_none_is_empty(self):
        assert State.from_dict(None) == EMPTY_STATE

    def test_queries(self, league_state):
        assert league_state.team_of('wolves-2') == 'wolves'
        assert league_state.team_of('nobody') is None
        assert league_state.find_team('bears').name == 'Bears'
        assert len(league_state.matches_in('cat-1', Phase.GROUP)) == 3
        assert league_state.matches_in('cat-1', Phase.FINAL) == []
        assert len(league_state.players_in('cat-1')) == 8
        assert league_state.players_in('other') == []
