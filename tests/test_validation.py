"""
Tests for payload validation.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from futsal.models import Phase, Position
from futsal.validation import (
    ValidationError,
    validate_category,
    validate_match_teams,
    validate_phase,
    validate_player,
    validate_stat_changes,
    validate_team,
)


class TestValidateCategory:
    def test_name_trimmed(self):
        assert validate_category({'name': '  Adults '}) == {'name': 'Adults'}

    @pytest.mark.parametrize('payload', [None, {}, {'name': ''}, {'name': '   '}, {'name': 3}])
    def test_name_required(self, payload):
        with pytest.raises(ValidationError) as exc:
            validate_category(payload)
        assert exc.value.issues[0]['field'] == 'name'


class TestValidatePlayer:
    """Player payloads."""

    def test_defaults(self):
        fields = validate_player({'name': 'Ana'})
        assert fields == {'name': 'Ana', 'jersey_number': 0, 'position': Position.NONE, 'paid': False}

    def test_full_payload(self):
        fields = validate_player({'name': 'Rui', 'jersey_number': '9', 'position': 'FORWARD', 'paid': True})
        assert fields['jersey_number'] == 9
        assert fields['position'] == Position.FORWARD
        assert fields['paid'] is True

    def test_collects_every_issue(self):
        with pytest.raises(ValidationError) as exc:
            validate_player({'jersey_number': -1, 'position': 'STRIKER', 'paid': 'yes'})
        fields = {issue['field'] for issue in exc.value.issues}
        assert fields == {'name', 'jersey_number', 'position', 'paid'}

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_player({})


class TestValidateTeam:
    """Team payloads."""

    def test_defaults(self):
        assert validate_team({'name': 'Lions'}) == {'name': 'Lions', 'color': '#22c55e', 'capacity': 8}

    def test_bad_color_and_capacity(self):
        with pytest.raises(ValidationError) as exc:
            validate_team({'name': 'Lions', 'color': 'red', 'capacity': 0})
        assert {i['field'] for i in exc.value.issues} == {'color', 'capacity'}


class TestValidateMatchAndStats:
    """Match edits, phases and stat changes."""

    def test_phase(self):
        assert validate_phase('QF') == Phase.QF
        with pytest.raises(ValidationError):
            validate_phase('QUARTER')

    def test_team_cannot_play_itself(self):
        with pytest.raises(ValidationError):
            validate_match_teams({'left_team_id': 'a', 'right_team_id': 'a'})

    def test_match_teams(self):
        assert validate_match_teams({'left_team_id': 'a', 'right_team_id': 'b'}) == {
            'left_team_id': 'a', 'right_team_id': 'b'}

    def test_stat_changes(self):
        assert validate_stat_changes({'goals_delta': 1, 'red': True}) == {'goals_delta': 1, 'red': True}

    def test_stat_changes_empty(self):
        with pytest.raises(ValidationError) as exc:
            validate_stat_changes({})
        assert exc.value.issues == [{'field': 'stats', 'message': 'no change given'}]

    def test_stat_changes_bad_types(self):
        with pytest.raises(ValidationError):
            validate_stat_changes({'goals': 'two', 'red': 'no'})
