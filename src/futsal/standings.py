"""
League table and top scorer aggregation.
"""
from typing import Dict, List, Optional, Sequence

from futsal.models import Match, Phase, Player, Team

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1


def goals_for(team_id: str, match: Match, assignments: Dict) -> int:
    """Goals scored in ``match`` by players currently assigned to ``team_id``."""
    total = 0
    for player_id in assignments.get(team_id, ()):
        stats = match.events.get(player_id)
        if stats:
            total += stats.goals
    return total


def compute_standings(matches: Sequence[Match], assignments: Dict, teams: Sequence[Team],
                      category_id: Optional[str] = None,
                      phase: Optional[Phase] = None) -> List[Dict]:
    """
    Calculate the standings table.

    Returns: [{'team_id', 'name', 'color', 'played', 'won', 'drawn', 'lost',
               'goals_for', 'goals_against', 'goal_difference', 'points'}, ...]

    Ranking: points -> goal difference -> goals for -> name -> team id
    """
    table = {}
    for team in teams:
        if category_id is not None and team.category_id != category_id:
            continue
        table[team.id] = {
            'team_id': team.id,
            'name': team.name,
            'color': team.color,
            'played': 0,
            'won': 0,
            'drawn': 0,
            'lost': 0,
            'goals_for': 0,
            'goals_against': 0,
            'goal_difference': 0,
            'points': 0,
        }

    for match in matches:
        if category_id is not None and match.category_id != category_id:
            continue
        if phase is not None and match.phase != phase:
            continue
        left = table.get(match.left_team_id)
        right = table.get(match.right_team_id)
        if left is None or right is None:
            continue

        left_goals = goals_for(match.left_team_id, match, assignments)
        right_goals = goals_for(match.right_team_id, match, assignments)
        left['played'] += 1
        right['played'] += 1
        left['goals_for'] += left_goals
        left['goals_against'] += right_goals
        right['goals_for'] += right_goals
        right['goals_against'] += left_goals

        if left_goals > right_goals:
            left['won'] += 1
            left['points'] += POINTS_FOR_WIN
            right['lost'] += 1
        elif right_goals > left_goals:
            right['won'] += 1
            right['points'] += POINTS_FOR_WIN
            left['lost'] += 1
        else:
            left['drawn'] += 1
            right['drawn'] += 1
            left['points'] += POINTS_FOR_DRAW
            right['points'] += POINTS_FOR_DRAW

    for row in table.values():
        row['goal_difference'] = row['goals_for'] - row['goals_against']

    return sorted(
        table.values(),
        key=lambda r: (-r['points'], -r['goal_difference'], -r['goals_for'], r['name'], r['team_id'])
    )


def top_scorers(matches: Sequence[Match], players: Sequence[Player], assignments: Dict,
                teams: Sequence[Team], category_id: Optional[str] = None,
                limit: int = 20) -> List[Dict]:
    """Goal totals per player, highest first, ties broken by player name."""
    players_by_id = {p.id: p for p in players}
    teams_by_id = {t.id: t for t in teams}
    team_of = {}
    for team_id, player_ids in assignments.items():
        for player_id in player_ids:
            team_of[player_id] = team_id

    totals = {}
    for match in matches:
        if category_id is not None and match.category_id != category_id:
            continue
        for player_id, stats in match.events.items():
            player = players_by_id.get(player_id)
            if player is None:
                continue
            row = totals.get(player_id)
            if row is None:
                team = teams_by_id.get(team_of.get(player_id))
                row = {
                    'player_id': player_id,
                    'name': player.name,
                    'team_name': team.name if team else '-',
                    'team_color': team.color if team else '#999999',
                    'goals': 0,
                }
                totals[player_id] = row
            row['goals'] += stats.goals

    ranked = sorted(totals.values(), key=lambda r: (-r['goals'], r['name']))
    return ranked[:limit]
