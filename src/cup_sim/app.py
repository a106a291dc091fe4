from __future__ import annotations

import argparse
import logging
import random
from pathlib import Path
from typing import Iterable

from .bracket import Bracket, bracket_position
from .models import PLAYED, ROUND_LABELS, ROUNDS, SIMULATED, Match, Team
from .names import NameGenerator
from .ratings import build_team
from .tournament import TournamentSimulator

logger = logging.getLogger(__name__)

DEFAULT_NATIONS: tuple[tuple[str, str], ...] = (
    ("Morocco", "Walid Regragui"),
    ("Senegal", "Aliou Cisse"),
    ("Nigeria", "Jose Peseiro"),
    ("Egypt", "Rui Vitoria"),
    ("Ivory Coast", "Emerse Fae"),
    ("Cameroon", "Rigobert Song"),
    ("South Africa", "Hugo Broos"),
    ("Ghana", "Chris Hughton"),
)


def build_default_teams(seed: int = 7) -> list[Team]:
    name_gen = NameGenerator(seed=seed)
    teams: list[Team] = []
    for country, manager in DEFAULT_NATIONS:
        teams.append(build_team(country, manager, name_gen, random.Random(f"squad:{country}:{seed}")))
    return teams


def _country(sim: TournamentSimulator, team_id: str | None) -> str:
    team = sim.get_team(team_id)
    return team.country if team else "TBD"


def format_match(sim: TournamentSimulator, match: Match) -> str:
    left = _country(sim, match.team1_id)
    right = _country(sim, match.team2_id)
    result = match.result
    if result is None:
        return f"{match.bracket_position or '':<6} {left:>14}  vs  {right:<14}"
    line = f"{match.bracket_position or '':<6} {left:>14} {result.team1_score:>2} - {result.team2_score:<2} {right:<14}"
    shootout = result.penalty_shootout
    if result.went_to_penalties and shootout is not None:
        line += f" ({shootout.team1_score}-{shootout.team2_score} pens)"
    elif result.went_to_extra_time:
        line += " (aet)"
    return line


def format_bracket(sim: TournamentSimulator, bracket: Bracket | None = None) -> str:
    bracket = bracket or sim.bracket
    lines = [f"{sim.name} - stage: {bracket.stage}"]
    for round_name in ROUNDS:
        lines.append(ROUND_LABELS[round_name])
        for idx, slot in enumerate(bracket.slots(round_name)):
            match = sim.matches.get(slot.match_id or "")
            if match is not None:
                lines.append("  " + format_match(sim, match))
            else:
                lines.append(
                    f"  {bracket_position(round_name, idx):<6} {_country(sim, slot.team1_id):>14}  vs  "
                    f"{_country(sim, slot.team2_id):<14}"
                )
    return "\n".join(lines)


def format_top_scorers(rows: Iterable[dict[str, object]], title: str = "Top Scorers") -> str:
    lines = [title, "Player                     Team            Pos  G Apps"]
    for row in rows:
        lines.append(
            f"{row['playerName']!s:<26} {row['country']!s:<15} {row['position']!s:<3} {row['goals']!s:>2} {row['appearances']!s:>4}"
        )
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a simulated eight-nation knockout cup.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible tournament")
    parser.add_argument("--mode", choices=[SIMULATED, PLAYED], default=SIMULATED, help="Play matches with or without commentary")
    parser.add_argument("--data-dir", type=Path, default=Path("."), help="Where state and history files are written")
    parser.add_argument("--verbose", action="store_true", help="Log simulation details")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    sim = TournamentSimulator(
        seed=args.seed,
        state_path=args.data_dir / "tournament_state.json",
        history_path=args.data_dir / "tournament_history.json",
    )
    if sim.last_load_error:
        logger.warning(sim.last_load_error)
    if sim.teams:
        # A previous run is archived before the new field registers.
        sim.reset()
    for team in build_default_teams(seed=args.seed if args.seed is not None else 7):
        sim.add_team(team)

    champion = sim.run_to_completion(mode=args.mode)
    print(format_bracket(sim))
    print()
    print(format_top_scorers(sim.top_scorers(10)))
    print()
    print(f"Champion: {champion.country} ({champion.manager_name})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
