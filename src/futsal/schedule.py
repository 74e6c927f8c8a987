"""
Match generation for the group stage and the elimination rounds.
"""
import logging
import math
import random
import uuid
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from futsal.config import get_default_settings, period_ms
from futsal.models import DEFAULT_PERIOD_MS, Match, Phase, Team
from futsal.standings import compute_standings

logger = logging.getLogger(__name__)

BYE = '_BYE_'
GROUP_LABELS = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ'

DEFAULT_QUALIFIERS = {
    Phase.R16: 16,
    Phase.QF: 8,
    Phase.SF: 4,
    Phase.FINAL: 2,
}


def new_match(left_team_id: str, right_team_id: str, phase: Phase,
              category_id: Optional[str] = None,
              period: int = DEFAULT_PERIOD_MS) -> Match:
    """Create a match with a stopped clock at the start of the first half."""
    return Match(
        id=str(uuid.uuid4()),
        left_team_id=left_team_id,
        right_team_id=right_team_id,
        phase=phase,
        half=1,
        started_at=None,
        remaining_ms=period,
        events={},
        category_id=category_id,
    )


def round_robin_rounds(team_ids: Sequence[str],
                       rng: Optional[random.Random] = None) -> List[List[Tuple[str, str]]]:
    """
    Schedule a single round robin with the circle method.

    For n slots (a bye is added when the count is odd) there are n-1
    rounds; in each round slot i plays slot n-1-i, then every slot but the
    first rotates one place. Games involving the bye are dropped and the
    order of games within a round is shuffled.
    """
    rng = rng or random.Random()
    slots = list(team_ids)
    rng.shuffle(slots)
    if len(slots) < 2:
        return []
    if len(slots) % 2 != 0:
        slots.append(BYE)

    n = len(slots)
    rounds = []
    for _ in range(n - 1):
        games = []
        for i in range(n // 2):
            a = slots[i]
            b = slots[n - 1 - i]
            if a != BYE and b != BYE:
                games.append((a, b))
        rng.shuffle(games)
        rounds.append(games)
        slots = [slots[0], slots[-1]] + slots[1:-1]
    return rounds


def split_into_groups(team_ids: Sequence[str], rng: Optional[random.Random] = None,
                      group_size: int = 4) -> Dict[str, List[str]]:
    """
    Deal teams into pools of at most ``group_size``.

    Returns {label: [team_id, ...]} with labels "A", "B", ...; pool sizes
    differ by at most one.
    """
    rng = rng or random.Random()
    ids = list(team_ids)
    if not ids:
        return {}
    rng.shuffle(ids)
    num_groups = min(len(GROUP_LABELS), max(1, math.ceil(len(ids) / group_size)))
    groups = {GROUP_LABELS[i]: [] for i in range(num_groups)}
    for index, team_id in enumerate(ids):
        groups[GROUP_LABELS[index % num_groups]].append(team_id)
    return groups


def generate_group_stage(team_ids: Sequence[str], category_id: Optional[str] = None,
                         settings: Optional[Dict] = None,
                         rng: Optional[random.Random] = None,
                         existing: Iterable[Match] = ()) -> Tuple[List[Match], Dict[str, str]]:
    """
    Build the group stage: pools, labels and one round robin per pool.

    Pairings already present in ``existing`` (compared unordered) are
    skipped, as are duplicates within this pass.

    Returns (matches, {team_id: group_label}).
    """
    settings = settings or get_default_settings()
    rng = rng or random.Random()
    groups = split_into_groups(team_ids, rng, int(settings.get('group_size', 4)))
    labels = {}
    seen = {m.pairing_key() for m in existing if m.phase == Phase.GROUP}
    matches = []
    for label, pool in groups.items():
        for team_id in pool:
            labels[team_id] = label
        for games in round_robin_rounds(pool, rng):
            for left, right in games:
                key = tuple(sorted((left, right)))
                if key in seen:
                    logger.debug(f'Skipping existing pairing {left} vs {right}')
                    continue
                seen.add(key)
                matches.append(new_match(left, right, Phase.GROUP, category_id, period_ms(settings)))
    logger.info(f'Generated {len(matches)} group matches in {len(groups)} group(s)')
    return matches, labels


def qualifiers_for_phase(phase: Phase, total_teams: int, settings: Optional[Dict] = None) -> int:
    """
    Number of teams that enter an elimination phase.

    The configured count (or the default 16/8/4/2) is capped at the number
    of teams. Round of 16 and quarterfinals need pods of 4, so counts of 4
    or more are rounded down to a multiple of 4.
    """
    settings = settings or get_default_settings()
    configured = settings.get('qualifiers', {}).get(phase.value)
    try:
        count = int(configured)
    except (TypeError, ValueError):
        count = 0
    if count <= 1:
        count = DEFAULT_QUALIFIERS[phase]
    base = min(count, total_teams)

    if phase in (Phase.R16, Phase.QF):
        if base < 4:
            return base
        coerced = base - (base % 4)
        return max(4, min(coerced, total_teams))
    return base


def snake_pods(seeds: Sequence[str]) -> List[List[str]]:
    """
    Spread seeds over pods of 4 in snake order.

    Row 1 fills pods ascending, row 2 descending, row 3 ascending and
    row 4 descending, so pod 1 holds the best and the worst seed.
    """
    pods_count = len(seeds) // 4
    pods = [[] for _ in range(pods_count)]
    for row in range(4):
        for g in range(pods_count):
            pod = g if row % 2 == 0 else pods_count - 1 - g
            pods[pod].append(seeds[row * pods_count + g])
    return pods


def seed_elimination_pairs(seeds: Sequence[str]) -> List[Tuple[str, str]]:
    """
    Pair ranked teams for an elimination round.

    With a multiple of 4 teams, each pod plays 1 vs 4 and 2 vs 3.
    Otherwise teams are paired in order: 1 vs 2, 3 vs 4, ...

    For 8 teams [A..H]: pods [A, D, E, H] and [B, C, F, G]
    -> (A, H), (D, E), (B, G), (C, F)
    """
    pairs = []
    if len(seeds) >= 4 and len(seeds) % 4 == 0:
        for pod in snake_pods(seeds):
            pairs.append((pod[0], pod[3]))
            pairs.append((pod[1], pod[2]))
    else:
        for i in range(0, len(seeds) - 1, 2):
            pairs.append((seeds[i], seeds[i + 1]))
    return pairs


def generate_elimination(phase: Phase, matches: Sequence[Match], assignments: Dict,
                         teams: Sequence[Team], category_id: Optional[str] = None,
                         settings: Optional[Dict] = None) -> List[Match]:
    """Seed an elimination phase from the group stage table."""
    if phase == Phase.GROUP:
        raise ValueError('generate_elimination needs an elimination phase')
    settings = settings or get_default_settings()
    scoped_teams = [t for t in teams if category_id is None or t.category_id == category_id]
    table = compute_standings(matches, assignments, scoped_teams, category_id, Phase.GROUP)
    qualifiers = qualifiers_for_phase(phase, len(scoped_teams), settings)
    seeds = [row['team_id'] for row in table[:qualifiers]]
    pairs = seed_elimination_pairs(seeds)
    logger.info(f'Seeded {phase.value} with {len(seeds)} teams ({len(pairs)} matches)')
    return [
        new_match(left, right, phase, category_id, period_ms(settings))
        for left, right in pairs
    ]


def pack_match_days(matches: Sequence[Match], per_day: int = 4) -> List[List[Match]]:
    """
    Greedily pack matches into match days.

    A match goes into the first day that has room and where neither team
    already plays; otherwise it opens a new day.
    """
    days = []
    for match in matches:
        for day in days:
            if len(day) >= per_day:
                continue
            busy = set()
            for other in day:
                busy.add(other.left_team_id)
                busy.add(other.right_team_id)
            if match.left_team_id not in busy and match.right_team_id not in busy:
                day.append(match)
                break
        else:
            days.append([match])
    return days
