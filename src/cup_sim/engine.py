from __future__ import annotations

import logging
import math
import random

from .config import (
    ASSIST_CHANCE,
    BASE_EXPECTED_GOALS,
    EXPECTED_GOALS_CEILING,
    EXPECTED_GOALS_FLOOR,
    EXTRA_TIME_SCALE,
    MAX_GOALS_PER_PERIOD,
    OWN_GOAL_CHANCE,
    PENALTY_BASE_CONVERSION,
    PENALTY_CONVERSION_CEILING,
    PENALTY_CONVERSION_FLOOR,
    PENALTY_GOAL_CHANCE,
    PENALTY_RATING_SENSITIVITY,
    RATING_GOAL_SENSITIVITY,
    SCORER_POSITION_WEIGHTS,
    SHOOTOUT_ROUNDS,
)
from .errors import InvalidInput
from .models import GoalScorer, MatchResult, PenaltyKick, PenaltyShootout, Player, Team

logger = logging.getLogger(__name__)

REGULATION_MINUTES = (1, 90)
EXTRA_TIME_MINUTES = (91, 120)


def _choose_weighted(players: list[Player], weights: list[float], rng: random.Random) -> Player:
    if not players:
        raise InvalidInput("No players available for weighted selection.")
    return rng.choices(players, weights=weights, k=1)[0]


def _sample_goals(expected: float, rng: random.Random) -> int:
    # Knuth's Poisson sampler; the cap keeps minute assignment solvable.
    limit = math.exp(-expected)
    k = 0
    p = 1.0
    while p > limit:
        k += 1
        p *= rng.random()
    return min(MAX_GOALS_PER_PERIOD, max(0, k - 1))


def expected_goals(rating: float, opponent_rating: float, scale: float = 1.0) -> float:
    lam = BASE_EXPECTED_GOALS + (rating - opponent_rating) * RATING_GOAL_SENSITIVITY
    lam = max(EXPECTED_GOALS_FLOOR, min(EXPECTED_GOALS_CEILING, lam))
    return lam * scale


def penalty_conversion(rating: float, opponent_rating: float) -> float:
    chance = PENALTY_BASE_CONVERSION + (rating - opponent_rating) * PENALTY_RATING_SENSITIVITY
    return max(PENALTY_CONVERSION_FLOOR, min(PENALTY_CONVERSION_CEILING, chance))


def _fielded(team: Team) -> list[Player]:
    starters = team.starting_players()
    return starters if starters else list(team.players)


def check_team(team: Team) -> None:
    if not team.team_id:
        raise InvalidInput(f"{team.country or 'Team'} has no identifier.")
    if not team.players:
        raise InvalidInput(f"{team.country} has an empty squad.")
    ids = [p.player_id for p in team.players]
    if len(set(ids)) != len(ids):
        raise InvalidInput(f"{team.country} squad contains duplicate player ids.")
    if not any(SCORER_POSITION_WEIGHTS.get(p.position, 0.0) > 0 for p in _fielded(team)):
        raise InvalidInput(f"{team.country} has no eligible goal scorers.")


def _scorer_weights(players: list[Player]) -> list[float]:
    return [SCORER_POSITION_WEIGHTS.get(p.position, 0.0) * max(1, p.natural_rating) for p in players]


def _own_goal_candidates(opponent: Team) -> tuple[list[Player], list[float]]:
    pool = [p for p in _fielded(opponent) if p.position in {"DF", "GK", "MD"}]
    weights = [{"DF": 1.0, "MD": 0.35, "GK": 0.15}[p.position] for p in pool]
    return pool, weights


def _pick_minutes(count: int, low: int, high: int, rng: random.Random) -> list[int]:
    # One goal per team per minute; collisions are nudged to the next free minute.
    span = high - low + 1
    taken: set[int] = set()
    minutes: list[int] = []
    for _ in range(min(count, span)):
        minute = rng.randint(low, high)
        while minute in taken:
            minute = low + (minute - low + 1) % span
        taken.add(minute)
        minutes.append(minute)
    return sorted(minutes)


def _build_goals(
    team: Team,
    opponent: Team,
    count: int,
    minute_range: tuple[int, int],
    is_extra_time: bool,
    rng: random.Random,
) -> list[GoalScorer]:
    goals: list[GoalScorer] = []
    if count <= 0:
        return goals
    shooters = [p for p in _fielded(team) if SCORER_POSITION_WEIGHTS.get(p.position, 0.0) > 0]
    weights = _scorer_weights(shooters)
    for minute in _pick_minutes(count, minute_range[0], minute_range[1], rng):
        own_pool, own_weights = _own_goal_candidates(opponent)
        if own_pool and rng.random() < OWN_GOAL_CHANCE:
            scorer = _choose_weighted(own_pool, own_weights, rng)
            goals.append(
                GoalScorer(
                    player_id=scorer.player_id,
                    player_name=scorer.name,
                    team_id=team.team_id,
                    minute=minute,
                    is_extra_time=is_extra_time,
                    is_own_goal=True,
                )
            )
            continue

        scorer = _choose_weighted(shooters, weights, rng)
        is_penalty = rng.random() < PENALTY_GOAL_CHANCE
        assist: Player | None = None
        if not is_penalty and rng.random() < ASSIST_CHANCE:
            helpers = [p for p in _fielded(team) if p.player_id != scorer.player_id and p.position != "GK"]
            if helpers:
                assist = _choose_weighted(
                    helpers,
                    [max(1, p.rating("MD")) * (1.2 if p.position == "MD" else 1.0) for p in helpers],
                    rng,
                )
        goals.append(
            GoalScorer(
                player_id=scorer.player_id,
                player_name=scorer.name,
                team_id=team.team_id,
                minute=minute,
                is_extra_time=is_extra_time,
                is_penalty=is_penalty,
                assist_player_id=assist.player_id if assist else None,
                assist_player_name=assist.name if assist else None,
            )
        )
    return goals


def _sort_goals(goals: list[GoalScorer], team1: Team) -> list[GoalScorer]:
    return sorted(goals, key=lambda g: (g.minute, 0 if g.team_id == team1.team_id else 1))


def simulate_period(
    team1: Team,
    team2: Team,
    rng: random.Random,
    *,
    extra_time: bool = False,
    team1_rating: float | None = None,
    team2_rating: float | None = None,
) -> list[GoalScorer]:
    r1 = team1.overall_rating if team1_rating is None else team1_rating
    r2 = team2.overall_rating if team2_rating is None else team2_rating
    scale = EXTRA_TIME_SCALE if extra_time else 1.0
    minute_range = EXTRA_TIME_MINUTES if extra_time else REGULATION_MINUTES
    lam1 = expected_goals(r1, r2, scale)
    lam2 = expected_goals(r2, r1, scale)
    goals1 = _sample_goals(lam1, rng)
    goals2 = _sample_goals(lam2, rng)
    logger.debug(
        "%s period %s v %s: xg %.2f/%.2f -> %d-%d",
        "extra-time" if extra_time else "regulation",
        team1.country,
        team2.country,
        lam1,
        lam2,
        goals1,
        goals2,
    )
    goals = _build_goals(team1, team2, goals1, minute_range, extra_time, rng)
    goals += _build_goals(team2, team1, goals2, minute_range, extra_time, rng)
    return _sort_goals(goals, team1)


def _kick_order(team: Team) -> list[Player]:
    fielded = _fielded(team)
    outfield = sorted(
        [p for p in fielded if p.position != "GK"],
        key=lambda p: (p.rating("AT") + p.natural_rating) / 2,
        reverse=True,
    )
    return outfield + [p for p in fielded if p.position == "GK"]


def simulate_penalty_shootout(
    team1: Team,
    team2: Team,
    rng: random.Random,
    *,
    team1_rating: float | None = None,
    team2_rating: float | None = None,
) -> PenaltyShootout:
    r1 = team1.overall_rating if team1_rating is None else team1_rating
    r2 = team2.overall_rating if team2_rating is None else team2_rating
    sides = (
        (team1, _kick_order(team1), penalty_conversion(r1, r2)),
        (team2, _kick_order(team2), penalty_conversion(r2, r1)),
    )
    scores = [0, 0]
    taken = [0, 0]
    kicks: list[PenaltyKick] = []
    order = 0

    def decided() -> bool:
        if taken[0] < SHOOTOUT_ROUNDS or taken[1] < SHOOTOUT_ROUNDS:
            left = [max(0, SHOOTOUT_ROUNDS - taken[0]), max(0, SHOOTOUT_ROUNDS - taken[1])]
            return scores[0] + left[0] < scores[1] or scores[1] + left[1] < scores[0]
        return taken[0] == taken[1] and scores[0] != scores[1]

    while not decided():
        for idx, (team, takers, chance) in enumerate(sides):
            taker = takers[taken[idx] % len(takers)]
            scored = rng.random() < chance
            order += 1
            taken[idx] += 1
            if scored:
                scores[idx] += 1
            kicks.append(
                PenaltyKick(
                    team_id=team.team_id,
                    player_id=taker.player_id,
                    player_name=taker.name,
                    scored=scored,
                    order=order,
                )
            )
            if decided():
                break

    logger.debug("Shootout %s v %s: %d-%d after %d kicks", team1.country, team2.country, scores[0], scores[1], order)
    return PenaltyShootout(team1_score=scores[0], team2_score=scores[1], kicks=kicks)


def resolve_knockout(
    team1: Team,
    team2: Team,
    regulation_goals: list[GoalScorer],
    rng: random.Random,
    *,
    team1_rating: float | None = None,
    team2_rating: float | None = None,
) -> MatchResult:
    """Finish a fixture from its regulation goals: extra time, then penalties if still level."""
    check_team(team1)
    check_team(team2)
    if team1.team_id == team2.team_id:
        raise InvalidInput("A team cannot play itself.")
    for goal in regulation_goals:
        if goal.team_id not in (team1.team_id, team2.team_id):
            raise InvalidInput(f"Goal at {goal.minute}' credited to a team not in this fixture.")
        if goal.is_extra_time or not REGULATION_MINUTES[0] <= goal.minute <= REGULATION_MINUTES[1]:
            raise InvalidInput(f"Regulation goal at {goal.minute}' is outside minutes 1-90.")

    goals = _sort_goals(list(regulation_goals), team1)
    score1 = sum(1 for g in goals if g.team_id == team1.team_id)
    score2 = len(goals) - score1
    went_to_extra_time = False
    went_to_penalties = False
    shootout: PenaltyShootout | None = None

    if score1 == score2:
        went_to_extra_time = True
        extra = simulate_period(
            team1, team2, rng, extra_time=True, team1_rating=team1_rating, team2_rating=team2_rating
        )
        goals = _sort_goals(goals + extra, team1)
        score1 = sum(1 for g in goals if g.team_id == team1.team_id)
        score2 = len(goals) - score1
        if score1 == score2:
            went_to_penalties = True
            shootout = simulate_penalty_shootout(
                team1, team2, rng, team1_rating=team1_rating, team2_rating=team2_rating
            )

    if shootout is not None:
        winner_id = team1.team_id if shootout.team1_score > shootout.team2_score else team2.team_id
    else:
        winner_id = team1.team_id if score1 > score2 else team2.team_id

    result = MatchResult(
        team1_id=team1.team_id,
        team2_id=team2.team_id,
        team1_score=score1,
        team2_score=score2,
        winner_id=winner_id,
        goal_scorers=goals,
        went_to_extra_time=went_to_extra_time,
        went_to_penalties=went_to_penalties,
        penalty_shootout=shootout,
    )
    check_result(result)
    return result


def simulate_match(
    team1: Team,
    team2: Team,
    rng: random.Random | None = None,
    *,
    team1_rating: float | None = None,
    team2_rating: float | None = None,
) -> MatchResult:
    rng = rng or random.Random()
    check_team(team1)
    check_team(team2)
    regulation = simulate_period(team1, team2, rng, team1_rating=team1_rating, team2_rating=team2_rating)
    return resolve_knockout(
        team1, team2, regulation, rng, team1_rating=team1_rating, team2_rating=team2_rating
    )


def check_result(result: MatchResult) -> None:
    """Raise InvalidInput unless the result is a self-consistent knockout outcome."""
    teams = (result.team1_id, result.team2_id)
    if result.team1_score < 0 or result.team2_score < 0:
        raise InvalidInput("Scores must be non-negative.")
    if result.winner_id not in teams:
        raise InvalidInput("Winner must be one of the two teams.")
    counted = (
        sum(1 for g in result.goal_scorers if g.team_id == result.team1_id),
        sum(1 for g in result.goal_scorers if g.team_id == result.team2_id),
    )
    if counted != (result.team1_score, result.team2_score) or sum(counted) != len(result.goal_scorers):
        raise InvalidInput("Goal scorers do not add up to the final score.")
    if any(g.is_extra_time for g in result.goal_scorers) and not result.went_to_extra_time:
        raise InvalidInput("Extra-time goals recorded for a match that ended in regulation.")

    level = result.team1_score == result.team2_score
    if result.went_to_penalties:
        shootout = result.penalty_shootout
        if not result.went_to_extra_time or not level:
            raise InvalidInput("Penalties require a level score after extra time.")
        if shootout is None or shootout.team1_score == shootout.team2_score:
            raise InvalidInput("A shootout must produce a winner.")
        expected = result.team1_id if shootout.team1_score > shootout.team2_score else result.team2_id
        if result.winner_id != expected:
            raise InvalidInput("Winner does not match the shootout.")
        return
    if result.penalty_shootout is not None:
        raise InvalidInput("Shootout recorded for a match that did not go to penalties.")
    if level:
        raise InvalidInput("A knockout match cannot end level without penalties.")
    expected = result.team1_id if result.team1_score > result.team2_score else result.team2_id
    if result.winner_id != expected:
        raise InvalidInput("Winner does not match the score.")
    regulation = result.regulation_score
    if result.went_to_extra_time != (regulation[0] == regulation[1]):
        raise InvalidInput("Extra time is played exactly when regulation ends level.")
