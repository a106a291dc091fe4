"""Player ratings, team strength and lineup legality."""
from __future__ import annotations

import random
from dataclasses import dataclass, field

from .config import (
    BENCH_WEIGHT,
    COUNTRY_TIERS,
    DEFAULT_COUNTRY_TIER,
    POSITIONS,
    RATING_MAX,
    RATING_MIN,
    SQUAD_DISTRIBUTION,
    SQUAD_SIZE,
    STARTER_WEIGHT,
    STARTING_ELEVEN_SIZE,
    TIER_RATING_BANDS,
    VERSATILE_PLAYER_CHANCE,
)
from .errors import CompositionInvalid, InvalidInput
from .models import Player, Team
from .names import NameGenerator

# Outfield shape used when picking a default eleven: 4-3-3.
DEFAULT_FORMATION: dict[str, int] = {"DF": 4, "MD": 3, "AT": 3}


@dataclass(slots=True)
class CompositionReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {"isValid": self.is_valid, "errors": list(self.errors)}


def _clamp_rating(value: int) -> int:
    return max(RATING_MIN, min(RATING_MAX, int(value)))


def country_tier(country: str | None) -> int:
    if not country:
        return DEFAULT_COUNTRY_TIER
    return COUNTRY_TIERS.get(country, DEFAULT_COUNTRY_TIER)


def generate_player_ratings(
    position: str,
    country: str | None = None,
    rng: random.Random | None = None,
) -> dict[str, int]:
    if position not in POSITIONS:
        raise InvalidInput(f"Unknown position '{position}'; expected one of {', '.join(POSITIONS)}.")
    rng = rng or random.Random()
    nat_low, nat_high, off_low, off_high = TIER_RATING_BANDS[country_tier(country)]

    ratings: dict[str, int] = {}
    for pos in POSITIONS:
        if pos == position:
            ratings[pos] = _clamp_rating(rng.randint(nat_low, nat_high))
        else:
            ratings[pos] = _clamp_rating(rng.randint(off_low, off_high))

    if rng.random() < VERSATILE_PLAYER_CHANCE:
        # Goalkeeping does not transfer to outfield players and vice versa.
        candidates = [pos for pos in POSITIONS if pos != position and "GK" not in (pos, position)]
        if candidates:
            ratings[rng.choice(candidates)] = _clamp_rating(rng.randint(nat_low - 6, nat_high))
    return ratings


def calculate_team_rating(players: list[Player], starting_eleven_ids: list[str] | None = None) -> float:
    """Weighted mean of natural-position ratings.

    Starters weigh ``STARTER_WEIGHT`` and the bench ``BENCH_WEIGHT``. Without a
    starting eleven every squad member counts fully.
    """
    if not players:
        return 0.0
    starters = set(starting_eleven_ids or [])
    total = 0.0
    weight_sum = 0.0
    for player in players:
        if not starters or player.player_id in starters:
            weight = STARTER_WEIGHT
        else:
            weight = BENCH_WEIGHT
        total += player.natural_rating * weight
        weight_sum += weight
    if weight_sum <= 0:
        return 0.0
    return total / weight_sum


def validate_team_composition(players: list[Player], starting_eleven_ids: list[str]) -> CompositionReport:
    errors: list[str] = []

    if len(players) != SQUAD_SIZE:
        errors.append(f"Squad must have exactly {SQUAD_SIZE} players (found {len(players)})")
    squad_ids = [p.player_id for p in players]
    if len(set(squad_ids)) != len(squad_ids):
        errors.append("Squad contains duplicate player ids")
    unknown_positions = sorted({p.position for p in players if p.position not in POSITIONS})
    if unknown_positions:
        errors.append(f"Unknown player positions in squad: {', '.join(unknown_positions)}")
    if not any(p.position == "GK" for p in players):
        errors.append("Squad must contain at least one goalkeeper")

    captains = [p for p in players if p.is_captain]
    if len(captains) != 1:
        errors.append(f"Squad must have exactly one captain (found {len(captains)})")

    if len(starting_eleven_ids) != STARTING_ELEVEN_SIZE:
        errors.append(
            f"Starting lineup must have exactly {STARTING_ELEVEN_SIZE} players (found {len(starting_eleven_ids)})"
        )
    if len(set(starting_eleven_ids)) != len(starting_eleven_ids):
        errors.append("Starting lineup contains duplicate player ids")

    by_id = {p.player_id: p for p in players}
    missing = [pid for pid in starting_eleven_ids if pid not in by_id]
    if missing:
        errors.append(f"Invalid player ids in starting lineup: {', '.join(missing)}")

    keepers = {pid for pid in starting_eleven_ids if pid in by_id and by_id[pid].position == "GK"}
    if len(keepers) != 1:
        errors.append(f"Starting lineup must have exactly one goalkeeper (found {len(keepers)})")

    return CompositionReport(is_valid=not errors, errors=errors)


def ensure_valid_composition(players: list[Player], starting_eleven_ids: list[str]) -> None:
    report = validate_team_composition(players, starting_eleven_ids)
    if not report.is_valid:
        raise CompositionInvalid(report.errors)


def default_starting_eleven(players: list[Player]) -> list[str]:
    if not any(p.position == "GK" for p in players):
        raise InvalidInput("Cannot pick a starting eleven without a goalkeeper.")
    ranked = sorted(players, key=lambda p: p.natural_rating, reverse=True)
    keeper = next(p for p in ranked if p.position == "GK")
    chosen: list[Player] = [keeper]
    for position, count in DEFAULT_FORMATION.items():
        chosen.extend([p for p in ranked if p.position == position][:count])

    outfield_left = [p for p in ranked if p.position != "GK" and p not in chosen]
    while len(chosen) < STARTING_ELEVEN_SIZE and outfield_left:
        chosen.append(outfield_left.pop(0))
    if len(chosen) < STARTING_ELEVEN_SIZE:
        raise InvalidInput(f"Squad has only {len(chosen)} players eligible for the starting eleven.")
    return [p.player_id for p in chosen]


def generate_squad(
    country: str,
    name_gen: NameGenerator,
    rng: random.Random | None = None,
) -> list[Player]:
    rng = rng or random.Random(f"squad:{country}")
    players: list[Player] = []
    for position, count in SQUAD_DISTRIBUTION.items():
        for _ in range(count):
            players.append(
                Player(
                    name=name_gen.next_name(),
                    position=position,
                    ratings=generate_player_ratings(position, country, rng),
                )
            )
    # Captaincy goes to the best outfield player.
    captain = max((p for p in players if p.position != "GK"), key=lambda p: p.natural_rating)
    captain.is_captain = True
    return players


def build_team(
    country: str,
    manager_name: str,
    name_gen: NameGenerator,
    rng: random.Random | None = None,
) -> Team:
    players = generate_squad(country, name_gen, rng)
    team = Team(country=country, manager_name=manager_name)
    team.replace_squad(players, default_starting_eleven(players))
    return team


def refresh_squad_ratings(team: Team, rng: random.Random | None = None) -> None:
    rng = rng or random.Random()
    for player in team.players:
        player.ratings = generate_player_ratings(player.position, team.country, rng)
