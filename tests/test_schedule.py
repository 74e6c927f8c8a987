"""
Tests for group stage and elimination match generation.
"""
import pytest
import random
import sys
import os
from itertools import combinations

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from futsal.config import get_default_settings
from futsal.models import DEFAULT_PERIOD_MS, Match, Phase, PlayerStats, Team
from futsal.schedule import (
    generate_elimination,
    generate_group_stage,
    new_match,
    pack_match_days,
    qualifiers_for_phase,
    round_robin_rounds,
    seed_elimination_pairs,
    snake_pods,
    split_into_groups,
)


class TestRoundRobin:
    """Circle method scheduling."""

    @pytest.mark.parametrize('n', [2, 4, 6, 8, 10])
    def test_even_count(self, n):
        """N teams play N-1 rounds, everyone meets once, nobody twice per round."""
        teams = [f't{i}' for i in range(n)]
        rounds = round_robin_rounds(teams, random.Random(n))
        assert len(rounds) == n - 1

        pairs = [tuple(sorted(game)) for games in rounds for game in games]
        assert sorted(pairs) == sorted(tuple(sorted(p)) for p in combinations(teams, 2))
        for games in rounds:
            seen = [team for game in games for team in game]
            assert len(seen) == len(set(seen))

    def test_odd_count_uses_bye(self):
        teams = ['a', 'b', 'c', 'd', 'e']
        rounds = round_robin_rounds(teams, random.Random(1))
        assert len(rounds) == 5
        assert all(len(games) == 2 for games in rounds)
        pairs = {tuple(sorted(game)) for games in rounds for game in games}
        assert len(pairs) == 10

    def test_single_team(self):
        assert round_robin_rounds(['solo']) == []


class TestGroups:
    """Pool splitting and the group stage."""

    def test_four_teams_one_pool(self):
        groups = split_into_groups(['a', 'b', 'c', 'd'], random.Random(1))
        assert list(groups) == ['A']

    @pytest.mark.parametrize('n', [5, 6, 7, 8])
    def test_five_to_eight_teams_two_pools(self, n):
        groups = split_into_groups([f't{i}' for i in range(n)], random.Random(n))
        assert list(groups) == ['A', 'B']
        sizes = sorted(len(pool) for pool in groups.values())
        assert sizes[-1] - sizes[0] <= 1
        assert sizes[-1] <= 4

    def test_group_stage_eight_teams(self, rng):
        team_ids = [f't{i}' for i in range(8)]
        matches, labels = generate_group_stage(team_ids, 'cat-1', get_default_settings(), rng)
        assert len(matches) == 12
        assert set(labels) == set(team_ids)
        for match in matches:
            assert labels[match.left_team_id] == labels[match.right_team_id]
            assert match.phase == Phase.GROUP
            assert match.category_id == 'cat-1'
            assert match.remaining_ms == DEFAULT_PERIOD_MS
            assert match.half == 1 and match.started_at is None and match.events == {}

    def test_existing_pairings_skipped(self, rng):
        existing = [Match(id='old', left_team_id='b', right_team_id='a')]
        matches, _ = generate_group_stage(['a', 'b', 'c'], None, get_default_settings(), rng, existing)
        pairs = {m.pairing_key() for m in matches}
        assert ('a', 'b') not in pairs
        assert len(matches) == 2

    def test_period_from_settings(self, rng):
        settings = dict(get_default_settings(), match_period_minutes=10)
        matches, _ = generate_group_stage(['a', 'b'], None, settings, rng)
        assert matches[0].remaining_ms == 10 * 60 * 1000


class TestSeeding:
    """Snake pods and elimination pairs."""

    def test_literal_eight_team_example(self):
        seeds = list('ABCDEFGH')
        assert snake_pods(seeds) == [['A', 'D', 'E', 'H'], ['B', 'C', 'F', 'G']]
        assert seed_elimination_pairs(seeds) == [('A', 'H'), ('D', 'E'), ('B', 'G'), ('C', 'F')]

    def test_four_teams_one_pod(self):
        assert seed_elimination_pairs(['1', '2', '3', '4']) == [('1', '4'), ('2', '3')]

    def test_sequential_fallback(self):
        assert seed_elimination_pairs(['a', 'b', 'c', 'd', 'e', 'f']) == [('a', 'b'), ('c', 'd'), ('e', 'f')]
        assert seed_elimination_pairs(['a', 'b']) == [('a', 'b')]

    def test_odd_count_leaves_last_out(self):
        assert seed_elimination_pairs(['a', 'b', 'c']) == [('a', 'b')]


class TestQualifiers:
    """Qualifier counts per phase."""

    def test_defaults_capped_by_team_count(self):
        settings = get_default_settings()
        assert qualifiers_for_phase(Phase.R16, 12, settings) == 12
        assert qualifiers_for_phase(Phase.QF, 20, settings) == 8
        assert qualifiers_for_phase(Phase.SF, 3, settings) == 3
        assert qualifiers_for_phase(Phase.FINAL, 8, settings) == 2

    def test_coerced_to_multiple_of_four(self):
        settings = get_default_settings()
        settings['qualifiers']['QF'] = 7
        assert qualifiers_for_phase(Phase.QF, 20, settings) == 4
        assert qualifiers_for_phase(Phase.R16, 10, settings) == 8

    def test_invalid_configured_value_uses_default(self):
        settings = get_default_settings()
        settings['qualifiers']['SF'] = 'many'
        assert qualifiers_for_phase(Phase.SF, 10, settings) == 4


class TestGenerateElimination:
    """Seeding an elimination round from the group table."""

    def _league(self):
        teams = [Team(id=name.lower(), name=name, category_id='cat-1')
                 for name in ('Alpha', 'Bravo', 'Charlie', 'Delta')]
        assignments = {t.id: (f'{t.id}-p',) for t in teams}
        matches = [
            Match(id='g1', left_team_id='alpha', right_team_id='bravo', category_id='cat-1',
                  events={'alpha-p': PlayerStats(goals=3)}),
            Match(id='g2', left_team_id='charlie', right_team_id='delta', category_id='cat-1',
                  events={'charlie-p': PlayerStats(goals=1)}),
        ]
        return teams, assignments, matches

    def test_semifinal_pairs_one_vs_four(self):
        teams, assignments, matches = self._league()
        result = generate_elimination(Phase.SF, matches, assignments, teams, 'cat-1', get_default_settings())
        # Table: Alpha (3 pts, +3), Charlie (3 pts, +1), Delta, Bravo
        assert [(m.left_team_id, m.right_team_id) for m in result] == [('alpha', 'bravo'), ('charlie', 'delta')]
        assert all(m.phase == Phase.SF for m in result)

    def test_only_group_results_count(self):
        teams, assignments, matches = self._league()
        matches.append(Match(id='sf', left_team_id='bravo', right_team_id='delta', phase=Phase.SF,
                             category_id='cat-1', events={'bravo-p': PlayerStats(goals=9)}))
        result = generate_elimination(Phase.FINAL, matches, assignments, teams, 'cat-1', get_default_settings())
        assert [(m.left_team_id, m.right_team_id) for m in result] == [('alpha', 'charlie')]

    def test_group_phase_rejected(self):
        with pytest.raises(ValueError):
            generate_elimination(Phase.GROUP, [], {}, [], None)


class TestMatchDays:
    """Packing matches into days."""

    def test_no_team_twice_per_day(self, rng):
        matches, _ = generate_group_stage([f't{i}' for i in range(8)], None, get_default_settings(), rng)
        days = pack_match_days(matches, per_day=4)
        assert sum(len(day) for day in days) == len(matches)
        for day in days:
            assert len(day) <= 4
            teams = [t for m in day for t in (m.left_team_id, m.right_team_id)]
            assert len(teams) == len(set(teams))

    def test_conflict_opens_new_day(self):
        games = [new_match('a', 'b', Phase.GROUP), new_match('a', 'c', Phase.GROUP)]
        days = pack_match_days(games)
        assert [len(day) for day in days] == [1, 1]
