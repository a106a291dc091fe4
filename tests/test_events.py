import random
from dataclasses import replace

import pytest

from cup_sim.app import build_default_teams
from cup_sim.config import SUBSTITUTION_LIMIT
from cup_sim.engine import resolve_knockout, simulate_match
from cup_sim.errors import InvalidInput
from cup_sim.events import check_timeline, generate_match_events
from cup_sim.models import GoalScorer, MatchResult, Team


@pytest.fixture(scope="module")
def teams() -> list[Team]:
    return build_default_teams()


def _penalty_result(team1: Team, team2: Team) -> MatchResult:
    a = next(p for p in team1.starting_players() if p.position == "AT")
    b = next(p for p in team2.starting_players() if p.position == "AT")
    regulation = [
        GoalScorer(player_id=a.player_id, player_name=a.name, team_id=team1.team_id, minute=12),
        GoalScorer(player_id=b.player_id, player_name=b.name, team_id=team2.team_id, minute=88, is_penalty=True),
    ]
    for seed in range(200):
        result = resolve_knockout(team1, team2, list(regulation), random.Random(seed))
        if result.went_to_penalties:
            return result
    raise AssertionError("no shootout in 200 seeds")


def test_timelines_are_ordered_and_match_the_score(teams) -> None:
    team1, team2 = teams[0], teams[5]
    for seed in range(120):
        rng = random.Random(seed)
        result = simulate_match(team1, team2, rng)
        events = generate_match_events(team1, team2, result, rng)

        minutes = [e.minute for e in events]
        assert minutes == sorted(minutes)
        assert events[0].type == "kickoff" and events[0].minute == 0
        assert events[-1].type == "final"
        assert sum(1 for e in events if e.type == "final") == 1
        assert sum(1 for e in events if e.type == "halftime") == 1
        assert sum(1 for e in events if e.type == "fulltime") == 1

        goals = [e for e in events if e.is_goal]
        assert len(goals) == len(result.goal_scorers)
        assert sum(1 for e in goals if e.team_id == team1.team_id) == result.team1_score
        assert sum(1 for e in goals if e.team_id == team2.team_id) == result.team2_score
        assert events[-1].score == (result.team1_score, result.team2_score)


def test_running_score_only_moves_on_goals(teams) -> None:
    team1, team2 = teams[1], teams[2]
    rng = random.Random(77)
    result = simulate_match(team1, team2, rng)
    events = generate_match_events(team1, team2, result, rng)
    previous = (0, 0)
    for event in events:
        if event.is_goal:
            assert sum(event.score) == sum(previous) + 1
        else:
            assert event.score == previous
        previous = event.score


def test_extra_time_and_penalty_markers(teams) -> None:
    team1, team2 = teams[3], teams[4]
    result = _penalty_result(team1, team2)
    events = generate_match_events(team1, team2, result, random.Random(8))
    types = [e.type for e in events]

    assert types.count("extratime") == 1
    assert types.count("penalties") == 1
    assert types.index("penalties") > types.index("fulltime")
    marker = types.index("extratime")
    assert events[marker].minute == 90
    assert all(e.minute <= 90 for e in events[:marker])
    assert events[-1].minute == 120

    after_marker = events[types.index("penalties") + 1 : -1]
    assert len(after_marker) == len(result.penalty_shootout.kicks)
    assert all(e.type == "penalty_kick" for e in after_marker)
    assert "penalties" in events[-1].description


def test_penalty_goal_is_announced_before_it_is_scored(teams) -> None:
    team1, team2 = teams[3], teams[4]
    result = _penalty_result(team1, team2)
    events = generate_match_events(team1, team2, result, random.Random(3))
    award = next(e for e in events if e.type == "penalty_kick" and e.minute < 90)
    goal = next(e for e in events if e.is_goal and e.minute == 88)
    assert award.minute < goal.minute
    assert award.player_id == goal.player_id


def test_regeneration_keeps_goals_and_score(teams) -> None:
    team1, team2 = teams[6], teams[7]
    rng = random.Random(31)
    result = simulate_match(team1, team2, rng)
    first = generate_match_events(team1, team2, result, random.Random(1))
    second = generate_match_events(team1, team2, result, random.Random(2))

    def goal_marks(events):
        return [(e.minute, e.team_id, e.player_id) for e in events if e.is_goal]

    assert goal_marks(first) == goal_marks(second)
    assert first[-1].score == second[-1].score
    check_timeline(second, result, (team1, team2))


def test_substitutions_and_dismissals_are_consistent(teams) -> None:
    team1, team2 = teams[0], teams[1]
    squads = {team1.team_id: team1, team2.team_id: team2}
    for seed in range(60):
        rng = random.Random(seed)
        result = simulate_match(team1, team2, rng)
        events = generate_match_events(team1, team2, result, rng)
        subs_per_team: dict[str, int] = {}
        gone: set[str] = set()
        for event in events:
            if event.player_id and event.type != "penalty_kick":
                assert event.player_id not in gone
            if event.type == "substitution":
                squad = squads[event.team_id]
                assert squad.player_by_id(event.subbed_out_player_id) is not None
                assert squad.player_by_id(event.subbed_in_player_id) is not None
                assert event.subbed_in_player_id not in squad.starting_eleven_ids
                assert 46 <= event.minute <= 118
                subs_per_team[event.team_id] = subs_per_team.get(event.team_id, 0) + 1
                gone.add(event.subbed_out_player_id)
            if event.type == "red_card":
                gone.add(event.player_id)
        assert all(count <= SUBSTITUTION_LIMIT for count in subs_per_team.values())


def test_own_goal_counts_for_the_benefiting_side(teams) -> None:
    team1, team2 = teams[0], teams[1]
    defender = next(p for p in team2.starting_players() if p.position == "DF")
    striker = next(p for p in team1.starting_players() if p.position == "AT")
    result = MatchResult(
        team1_id=team1.team_id,
        team2_id=team2.team_id,
        team1_score=2,
        team2_score=0,
        winner_id=team1.team_id,
        goal_scorers=[
            GoalScorer(player_id=defender.player_id, player_name=defender.name, team_id=team1.team_id, minute=30, is_own_goal=True),
            GoalScorer(player_id=striker.player_id, player_name=striker.name, team_id=team1.team_id, minute=65),
        ],
    )
    events = generate_match_events(team1, team2, result, random.Random(4))
    own = next(e for e in events if e.type == "own_goal")
    assert own.team_id == team1.team_id
    assert own.player_id == defender.player_id
    assert own.score == (1, 0)
    assert events[-1].score == (2, 0)


def test_tampered_timeline_is_rejected(teams) -> None:
    team1, team2 = teams[2], teams[3]
    rng = random.Random(12)
    result = simulate_match(team1, team2, rng)
    events = generate_match_events(team1, team2, result, rng)
    with pytest.raises(InvalidInput):
        check_timeline(events[:-1], result)
    shuffled = list(events)
    shuffled[1], shuffled[-2] = shuffled[-2], shuffled[1]
    with pytest.raises(InvalidInput):
        check_timeline(shuffled, result)


def test_unknown_event_type_is_rejected(teams) -> None:
    team1, team2 = teams[4], teams[6]
    rng = random.Random(21)
    result = simulate_match(team1, team2, rng)
    events = generate_match_events(team1, team2, result, rng)
    check_timeline(events, result)
    stray = replace(events[0], type="streaker")
    with pytest.raises(InvalidInput, match="streaker"):
        check_timeline([events[0], stray] + events[1:], result)


def test_teams_must_match_the_result(teams) -> None:
    result = simulate_match(teams[0], teams[1], random.Random(1))
    with pytest.raises(InvalidInput):
        generate_match_events(teams[0], teams[2], result, random.Random(1))


def test_teams_may_be_passed_in_either_order(teams) -> None:
    result = simulate_match(teams[0], teams[1], random.Random(6))
    events = generate_match_events(teams[1], teams[0], result, random.Random(6))
    assert events[-1].score == (result.team1_score, result.team2_score)
