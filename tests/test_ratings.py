import random

import pytest

from cup_sim.app import build_default_teams
from cup_sim.config import RATING_MAX, RATING_MIN, SQUAD_DISTRIBUTION
from cup_sim.errors import CompositionInvalid, InvalidInput
from cup_sim.models import Player, Team
from cup_sim.names import FIRST_NAMES, LAST_NAMES, NameGenerator
from cup_sim.ratings import (
    calculate_team_rating,
    default_starting_eleven,
    generate_player_ratings,
    generate_squad,
    validate_team_composition,
)


def test_default_field_has_eight_legal_squads() -> None:
    teams = build_default_teams()
    assert len(teams) == 8
    for team in teams:
        assert len(team.players) == 23
        counts: dict[str, int] = {}
        for player in team.players:
            counts[player.position] = counts.get(player.position, 0) + 1
        assert counts == SQUAD_DISTRIBUTION
        assert sum(1 for p in team.players if p.is_captain) == 1
        report = validate_team_composition(team.players, team.starting_eleven_ids)
        assert report.is_valid
        assert report.errors == []


def test_player_names_are_tournament_unique() -> None:
    teams = build_default_teams()
    names = [player.name for team in teams for player in team.players]
    assert len(names) == len(set(names))


def test_ratings_stay_in_range_and_favor_natural_position() -> None:
    rng = random.Random(3)
    favored = 0
    total = 0
    for position in ("GK", "DF", "MD", "AT"):
        for _ in range(150):
            ratings = generate_player_ratings(position, "Senegal", rng)
            assert set(ratings) == {"GK", "DF", "MD", "AT"}
            assert all(RATING_MIN <= value <= RATING_MAX for value in ratings.values())
            total += 1
            if ratings[position] >= max(ratings.values()):
                favored += 1
    assert favored / total > 0.85


def test_stronger_tier_rates_higher_on_average() -> None:
    rng = random.Random(9)
    strong = [generate_player_ratings("AT", "Morocco", rng)["AT"] for _ in range(300)]
    weak = [generate_player_ratings("AT", "Atlantis", rng)["AT"] for _ in range(300)]
    assert sum(strong) / len(strong) > sum(weak) / len(weak)


def test_unknown_position_is_rejected() -> None:
    with pytest.raises(InvalidInput):
        generate_player_ratings("ST")
    with pytest.raises(ValueError):
        generate_player_ratings("")


def _squad(seed: int = 1) -> list[Player]:
    return generate_squad("Ghana", NameGenerator(seed=seed), random.Random(seed))


def test_two_goalkeepers_in_lineup_is_reported() -> None:
    players = _squad()
    eleven = default_starting_eleven(players)
    spare_keeper = next(p for p in players if p.position == "GK" and p.player_id not in eleven)
    outfield_starter = next(pid for pid in eleven if next(p for p in players if p.player_id == pid).position != "GK")
    eleven = [spare_keeper.player_id if pid == outfield_starter else pid for pid in eleven]

    report = validate_team_composition(players, eleven)
    assert report.is_valid is False
    assert any("goalkeeper" in error.lower() for error in report.errors)


def test_every_violation_is_listed() -> None:
    players = _squad()
    for player in players:
        player.is_captain = False
    eleven = default_starting_eleven(players)[:10] + ["missing-id"]

    report = validate_team_composition(players, eleven)
    assert not report.is_valid
    joined = " | ".join(report.errors)
    assert "captain" in joined
    assert "missing-id" in joined
    assert len(report.errors) >= 2


def test_lineup_size_and_double_captain() -> None:
    players = _squad(4)
    players[5].is_captain = True
    players[6].is_captain = True
    eleven = default_starting_eleven(players)[:9]

    report = validate_team_composition(players, eleven)
    assert any("exactly 11" in error for error in report.errors)
    assert any("captain" in error for error in report.errors)


def test_duplicate_squad_ids_are_reported() -> None:
    players = _squad(6)
    eleven = default_starting_eleven(players)
    bench = [p for p in players if p.player_id not in eleven]
    bench[1].player_id = bench[0].player_id

    report = validate_team_composition(players, eleven)
    assert not report.is_valid
    assert "Squad contains duplicate player ids" in report.errors


def test_setting_illegal_lineup_raises_with_errors() -> None:
    team = build_default_teams()[0]
    before = list(team.starting_eleven_ids)
    with pytest.raises(CompositionInvalid) as exc:
        team.set_starting_eleven(before[:10])
    assert exc.value.errors
    assert team.starting_eleven_ids == before


def test_default_eleven_has_one_keeper() -> None:
    players = _squad(2)
    eleven = default_starting_eleven(players)
    by_id = {p.player_id: p for p in players}
    assert len(eleven) == 11
    assert len(set(eleven)) == 11
    assert sum(1 for pid in eleven if by_id[pid].position == "GK") == 1


def test_default_eleven_needs_a_keeper() -> None:
    players = [p for p in _squad(5) if p.position != "GK"]
    with pytest.raises(InvalidInput):
        default_starting_eleven(players)


def test_team_rating_weights_starters_and_is_monotonic() -> None:
    team = build_default_teams()[2]
    base = calculate_team_rating(team.players, team.starting_eleven_ids)
    assert base == pytest.approx(team.overall_rating)

    starter = team.starting_players()[3]
    starter.ratings[starter.position] = min(RATING_MAX, starter.natural_rating + 15)
    assert team.overall_rating >= base

    bench = team.bench_players()[0]
    bench_only = calculate_team_rating([bench], [])
    assert bench_only == bench.natural_rating


def test_empty_squad_rates_zero() -> None:
    assert calculate_team_rating([]) == 0.0
    assert Team(country="Nowhere").overall_rating == 0.0


def test_name_generator_falls_back_when_pool_is_taken() -> None:
    gen = NameGenerator(seed=3)
    gen.reserve(f"{first} {last}" for first in FIRST_NAMES for last in LAST_NAMES)
    fresh = [gen.next_name() for _ in range(5)]
    assert len(set(fresh)) == 5
    assert all(". " in name for name in fresh)
