# Command-line walkthrough: demo roster, draw, group stage and tables

import argparse
import random

from futsal.clock import format_clock
from futsal.config import load_settings
from futsal.models import Phase, get_phase_name
from futsal.store import Store


def print_squads(store):
    state = store.state
    players = {p.id: p for p in state.players}
    for team in state.teams_in(state.active_category_id):
        squad = [players[pid] for pid in state.assignments.get(team.id, ()) if pid in players]
        label = state.groups.get(team.id)
        header = f"{team.name} (Group {label})" if label else team.name
        print(f"\n{header} - {len(squad)} players")
        for player in squad:
            print(f"  #{player.jersey_number:<3} {player.name:<12} {player.position.value}")


def print_match_days(store, phase):
    teams = {t.id: t.name for t in store.state.teams}
    days = store.match_days(phase)
    print(f"\n--- {get_phase_name(phase)}: {len(days)} match days ---")
    for number, day in enumerate(days, start=1):
        print(f"\nDay {number}")
        for match in day:
            print(f"  {teams.get(match.left_team_id, '?')} vs {teams.get(match.right_team_id, '?')}"
                  f"  [{format_clock(match.remaining_ms)}]")


def print_standings(store):
    print("\n--- Standings ---")
    print(f"{'Team':<12} {'P':>3} {'W':>3} {'D':>3} {'L':>3} {'GF':>4} {'GA':>4} {'GD':>4} {'Pts':>4}")
    for row in store.standings(Phase.GROUP):
        print(f"{row['name']:<12} {row['played']:>3} {row['won']:>3} {row['drawn']:>3} {row['lost']:>3} "
              f"{row['goals_for']:>4} {row['goals_against']:>4} {row['goal_difference']:>4} {row['points']:>4}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Draw squads and build a group stage from demo data.')
    parser.add_argument('--seed', type=int, default=None, help='random seed for a reproducible draw')
    parser.add_argument('--players', type=int, default=64, help='number of demo players')
    parser.add_argument('--paid-only', action='store_true', help='only draw players who have paid')
    parser.add_argument('--settings', default=None, help='path to a settings YAML file')
    args = parser.parse_args(argv)

    rng = random.Random(args.seed)
    store = Store(settings=load_settings(args.settings), rng=rng)
    store.load_demo(args.players)

    if store.draw(paid_only=args.paid_only) is None:
        print("No teams to draw into.")
        return 1
    matches = store.generate_phase(Phase.GROUP)
    if not matches:
        print("Not enough teams for a group stage.")
        return 1

    print_squads(store)
    print_match_days(store, Phase.GROUP)
    print_standings(store)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
