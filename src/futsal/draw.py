"""
Random squad draw.

Players are dealt to teams one position at a time so that every team gets a
goalkeeper, a fixed, a midfielder and so on before anyone doubles up. Left
over outfield players fill the remaining slots, and a final pass evens out
team sizes.
"""
import logging
import random
from typing import Dict, List, Optional, Sequence

from futsal.models import CANONICAL_POSITIONS, Player, Position, Team

logger = logging.getLogger(__name__)

RESERVE_SLOTS = 2


def target_size(team: Team) -> int:
    """Number of players a team should end the draw with."""
    return min(team.capacity, len(CANONICAL_POSITIONS) + RESERVE_SLOTS)


def _shuffled(items: Sequence, rng: random.Random) -> List:
    result = list(items)
    rng.shuffle(result)
    return result


def draw_teams(players: Sequence[Player], teams: Sequence[Team],
               paid_only: bool = False,
               rng: Optional[random.Random] = None) -> Dict[str, List[str]]:
    """
    Distribute players across teams.

    Args:
        players: the category's player pool
        teams: the category's teams, in display order
        paid_only: only draw players marked as paid
        rng: random source; pass a seeded ``random.Random`` for repeatable draws

    Returns:
        {team_id: [player_id, ...]} with a bucket for every team. Each player
        id appears at most once.
    """
    if not teams:
        return {}
    rng = rng or random.Random()
    pool = [p for p in players if p.paid] if paid_only else list(players)

    result = {team.id: [] for team in teams}
    targets = {team.id: target_size(team) for team in teams}
    used = set()

    by_position = {pos: [] for pos in CANONICAL_POSITIONS}
    for player in pool:
        if player.position in by_position:
            by_position[player.position].append(player)
    for pos in CANONICAL_POSITIONS:
        by_position[pos] = _shuffled(by_position[pos], rng)

    # One player of each position per team, rotating the starting team
    num_teams = len(teams)
    for pos_index, pos in enumerate(CANONICAL_POSITIONS):
        candidates = by_position[pos]
        i = 0
        for j in range(num_teams):
            team = teams[(j + pos_index) % num_teams]
            if len(result[team.id]) >= targets[team.id]:
                continue
            while i < len(candidates) and candidates[i].id in used:
                i += 1
            if i >= len(candidates):
                break
            result[team.id].append(candidates[i].id)
            used.add(candidates[i].id)
            i += 1

    # Reserves: outfield players only, round robin over teams with room
    reserves = _shuffled(
        [p for p in pool if p.position != Position.GK and p.id not in used], rng
    )
    ti = 0
    for player in reserves:
        for _ in range(num_teams):
            team = teams[ti % num_teams]
            ti += 1
            if len(result[team.id]) < targets[team.id]:
                result[team.id].append(player.id)
                used.add(player.id)
                break

    goalkeepers = {p.id for p in pool if p.position == Position.GK}
    moves = balance_assignments(result, targets, goalkeepers, teams)
    logger.info(f"Drew {len(used)} players into {num_teams} teams ({moves} balancing moves)")
    return result


def balance_assignments(result: Dict[str, List[str]], targets: Dict[str, int],
                        goalkeepers, teams: Sequence[Team]) -> int:
    """
    Even out team sizes in place by moving outfield players.

    Each move takes the last non-goalkeeper from the fullest team that has
    one and gives it to the emptiest team still under its target, as long as
    the two differ by at least 2. Every move lowers the sum of squared team
    sizes by at least 2, so the loop ends after at most half that sum.

    Returns the number of moves made.
    """
    order = {team.id: index for index, team in enumerate(teams)}
    max_moves = sum(len(ids) ** 2 for ids in result.values()) // 2 + 1
    moves = 0
    while moves < max_moves:
        receivers = [tid for tid in result if len(result[tid]) < targets[tid]]
        if not receivers:
            break
        emptiest = min(receivers, key=lambda tid: (len(result[tid]), order[tid]))
        donors = [
            tid for tid in result
            if len(result[tid]) - len(result[emptiest]) > 1
            and any(pid not in goalkeepers for pid in result[tid])
        ]
        if not donors:
            break
        fullest = max(donors, key=lambda tid: (len(result[tid]), -order[tid]))
        movable = [pid for pid in result[fullest] if pid not in goalkeepers]
        player_id = movable[-1]
        result[fullest].remove(player_id)
        result[emptiest].append(player_id)
        moves += 1
    return moves
