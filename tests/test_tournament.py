import json

import pytest

from cup_sim.app import build_default_teams
from cup_sim.bracket import COMPLETED, QUARTER_FINALS, REGISTRATION, SEMI_FINALS
from cup_sim.errors import CompositionInvalid, InvalidInput, NotReady, UnknownEntity
from cup_sim.models import PLAYED, QUARTER_FINAL, SEMI_FINAL, SIMULATED, STATUS_COMPLETED, Player
from cup_sim.tournament import TournamentSimulator


def _sim(tmp_path, **overrides) -> TournamentSimulator:
    kwargs = {
        "teams": build_default_teams(),
        "seed": 42,
        "state_path": str(tmp_path / "tournament_state.json"),
        "history_path": str(tmp_path / "tournament_history.json"),
    }
    kwargs.update(overrides)
    return TournamentSimulator(**kwargs)


def test_full_tournament_produces_champion(tmp_path) -> None:
    sim = _sim(tmp_path)
    champion = sim.run_to_completion()

    assert sim.stage == COMPLETED
    assert sim.completed_at is not None
    matches = sim.list_matches()
    assert len(matches) == 7
    assert all(m.status == STATUS_COMPLETED for m in matches)
    final = next(m for m in matches if m.round == "final")
    assert champion.team_id == final.winner_id
    assert sim.runner_up is not None
    assert sim.runner_up.team_id == final.result.loser_id

    assert sum(t.stats.matches_played for t in sim.teams) == 14
    assert champion.stats.matches_played == 3
    total_goals = sum(m.result.team1_score + m.result.team2_score for m in matches)
    assert sum(t.stats.goals_scored for t in sim.teams) == total_goals
    own_goals = sum(1 for m in matches for g in m.result.goal_scorers if g.is_own_goal)
    assert sum(p.goals for t in sim.teams for p in t.players) == total_goals - own_goals


def test_registration_rules(tmp_path) -> None:
    teams = build_default_teams()
    sim = _sim(tmp_path, teams=teams[:7])
    assert sim.stage == REGISTRATION
    with pytest.raises(NotReady):
        sim.start()
    with pytest.raises(InvalidInput):
        sim.register_team(teams[0].country.upper())
    sim.register_team("Tunisia", "Jalel Kadri")
    with pytest.raises(InvalidInput):
        sim.register_team("Mali")
    sim.start()
    assert sim.stage == QUARTER_FINALS
    with pytest.raises(InvalidInput):
        sim.register_team("Zambia")


def test_generated_registration_builds_legal_squad(tmp_path) -> None:
    sim = _sim(tmp_path, teams=[])
    team = sim.register_team("Cape Verde", "Bubista")
    assert len(team.players) == 23
    assert len(team.starting_eleven_ids) == 11
    assert team.captain is not None



def test_squad_with_duplicate_ids_is_refused(tmp_path) -> None:
    sim = _sim(tmp_path, teams=[])
    team = build_default_teams()[0]
    bench = team.bench_players()
    bench[1].player_id = bench[0].player_id
    with pytest.raises(CompositionInvalid) as exc:
        sim.add_team(team)
    assert "Squad contains duplicate player ids" in exc.value.errors
    assert sim.teams == []


def test_custom_squad_without_lineup_lists_every_problem(tmp_path) -> None:
    sim = _sim(tmp_path, teams=[])
    players = [
        Player(name=f"Midfielder {i}", position="MD", ratings={"GK": 40, "DF": 55, "MD": 70, "AT": 60})
        for i in range(12)
    ]
    with pytest.raises(CompositionInvalid) as exc:
        sim.register_team("Tunisia", "Jalel Kadri", players=players)
    joined = " | ".join(exc.value.errors)
    assert "exactly 23 players" in joined
    assert "captain" in joined
    assert "goalkeeper" in joined
    assert sim.teams == []


def test_squad_refresh_only_during_registration(tmp_path) -> None:
    sim = _sim(tmp_path)
    team = sim.teams[0]
    before = team.overall_rating
    refreshed = sim.refresh_squad(team.team_id)
    assert refreshed is team
    assert refreshed.overall_rating != before
    assert len(refreshed.players) == 23
    sim.start()
    with pytest.raises(InvalidInput):
        sim.refresh_squad(team.team_id)


def test_start_creates_four_quarter_finals(tmp_path) -> None:
    sim = _sim(tmp_path)
    created = sim.start()
    assert [m.bracket_position for m in created] == ["QF1", "QF2", "QF3", "QF4"]
    assert {tid for m in created for tid in (m.team1_id, m.team2_id)} == {t.team_id for t in sim.teams}
    with pytest.raises(InvalidInput):
        sim.start()


def test_advance_waits_for_whole_round(tmp_path) -> None:
    sim = _sim(tmp_path)
    quarters = sim.start()
    for match in quarters[:3]:
        sim.play_match(match.match_id)
    with pytest.raises(NotReady):
        sim.advance_round()
    assert sim.list_matches(SEMI_FINAL) == []

    sim.play_match(quarters[3].match_id)
    semis = sim.advance_round()
    assert [m.bracket_position for m in semis] == ["SF1", "SF2"]
    assert (semis[0].team1_id, semis[0].team2_id) == (quarters[0].winner_id, quarters[1].winner_id)
    assert (semis[1].team1_id, semis[1].team2_id) == (quarters[2].winner_id, quarters[3].winner_id)
    assert sim.stage == SEMI_FINALS

    again = sim.advance_round(QUARTER_FINAL)
    assert again == []
    assert len(sim.list_matches(SEMI_FINAL)) == 2


def test_match_can_only_be_played_once(tmp_path) -> None:
    sim = _sim(tmp_path)
    match = sim.start()[0]
    sim.play_match(match.match_id)
    with pytest.raises(InvalidInput):
        sim.play_match(match.match_id)
    with pytest.raises(UnknownEntity):
        sim.play_match("nope")
    with pytest.raises(InvalidInput):
        sim.play_match(match.match_id, mode="live")


def test_played_mode_records_commentary(tmp_path) -> None:
    sim = _sim(tmp_path)
    match = sim.start()[0]
    sim.play_match(match.match_id, mode=PLAYED)
    assert match.simulation_type == PLAYED
    assert len(match.commentary) == len(match.events)
    assert match.events[-1].type == "final"


def test_commentary_failure_still_completes_match(tmp_path) -> None:
    def offline(_events, _context):
        raise ConnectionError("text service unavailable")

    sim = _sim(tmp_path, commentary_provider=offline)
    match = sim.start()[0]
    sim.play_match(match.match_id, mode=PLAYED)
    assert match.status == STATUS_COMPLETED
    assert match.simulation_type == SIMULATED
    assert match.commentary == []
    assert match.result is not None


def test_invalidating_result_reverts_stats_and_downstream(tmp_path) -> None:
    sim = _sim(tmp_path)
    quarters = sim.start()
    for match in quarters:
        sim.play_match(match.match_id)
    semis = sim.advance_round()
    sim.play_match(semis[0].match_id)

    target = quarters[0]
    winner = sim.get_team(target.winner_id)
    assert winner.stats.matches_played == 2

    removed = sim.invalidate_match(target.match_id)
    assert removed == [semis[0].match_id]
    assert semis[0].match_id not in sim.matches
    assert winner.stats.matches_played == 0
    assert target.status == "scheduled" and target.result is None
    assert sim.bracket.semi_finals[0].team1_id is None
    assert sim.stage == QUARTER_FINALS

    sim.play_match(target.match_id)
    rebuilt = sim.advance_round()
    assert [m.bracket_position for m in rebuilt] == ["SF1"]
    assert sim.bracket.semi_finals[0].team1_id == target.winner_id
    champion = sim.run_to_completion()
    assert champion.stats.matches_played == 3


def test_regenerate_events_keeps_goals(tmp_path) -> None:
    sim = _sim(tmp_path)
    sim.run_to_completion()
    before = {
        m.match_id: [(e.minute, e.team_id) for e in m.events if e.is_goal] for m in sim.list_matches()
    }
    assert sim.regenerate_events() == 7
    after = {
        m.match_id: [(e.minute, e.team_id) for e in m.events if e.is_goal] for m in sim.list_matches()
    }
    assert before == after
    one = sim.list_matches()[0]
    assert sim.regenerate_events(one.match_id) == 1



def test_failed_bulk_regeneration_changes_nothing(tmp_path) -> None:
    sim = _sim(tmp_path)
    for match in sim.start():
        sim.play_match(match.match_id)
    played = list(sim.matches.values())
    before = {m.match_id: list(m.events) for m in played}
    broken = played[-1].result
    broken.winner_id = broken.loser_id

    with pytest.raises(InvalidInput):
        sim.regenerate_events()
    assert all(m.events == before[m.match_id] for m in played)


def test_top_scorers_and_team_analytics(tmp_path) -> None:
    sim = _sim(tmp_path)
    champion = sim.run_to_completion()
    rows = sim.top_scorers(5)
    assert len(rows) <= 5
    goals = [row["goals"] for row in rows]
    assert goals == sorted(goals, reverse=True)

    report = sim.team_analytics(champion.team_id)
    assert report["stats"]["matchesPlayed"] == 3
    assert len(report["matches"]) == 3
    assert all(row["won"] for row in report["matches"])
    assert set(report["positionRatings"]) == {"GK", "DF", "MD", "AT"}
    with pytest.raises(UnknownEntity):
        sim.team_analytics("missing")


def test_state_survives_reload(tmp_path) -> None:
    sim = _sim(tmp_path)
    quarters = sim.start()
    sim.play_match(quarters[0].match_id)

    reloaded = _sim(tmp_path, teams=[])
    assert reloaded.last_load_error == ""
    assert [t.team_id for t in reloaded.teams] == [t.team_id for t in sim.teams]
    assert reloaded.stage == QUARTER_FINALS
    played = reloaded.get_match(quarters[0].match_id)
    assert played.status == STATUS_COMPLETED
    assert played.result.winner_id == quarters[0].winner_id
    for match in reloaded.list_matches(QUARTER_FINAL)[1:]:
        reloaded.play_match(match.match_id)
    assert len(reloaded.advance_round()) == 2


def test_reset_archives_history(tmp_path) -> None:
    sim = _sim(tmp_path)
    champion = sim.run_to_completion()
    entry = sim.reset()

    assert entry is not None
    assert entry["winnerId"] == champion.team_id
    assert entry["winnerName"] == champion.country
    assert entry["totalMatches"] == 7
    assert len(entry["participatingTeams"]) == 8
    assert sim.edition == 2
    assert sim.teams == [] and sim.matches == {}
    assert sim.stage == REGISTRATION

    reloaded = _sim(tmp_path, teams=[])
    assert len(reloaded.history) == 1
    assert reloaded.history[0]["winnerId"] == champion.team_id
    assert reloaded.edition == 2


def test_reset_without_play_archives_nothing(tmp_path) -> None:
    sim = _sim(tmp_path)
    assert sim.reset() is None
    assert sim.history == []
    assert sim.edition == 1


@pytest.mark.regression
def test_newer_save_version_is_refused(tmp_path) -> None:
    state = tmp_path / "tournament_state.json"
    state.write_text(json.dumps({"save_version": 99, "teams": []}), encoding="utf-8")
    sim = _sim(tmp_path)
    assert "Unsupported tournament state version 99" in sim.last_load_error
    assert len(sim.teams) == 8


@pytest.mark.regression
def test_corrupted_state_falls_back_to_defaults(tmp_path) -> None:
    (tmp_path / "tournament_state.json").write_text("{not json", encoding="utf-8")
    sim = _sim(tmp_path)
    assert sim.last_load_error.startswith("Failed to load tournament state")
    assert sim.stage == REGISTRATION
    assert len(sim.teams) == 8


@pytest.mark.regression
def test_saving_keeps_a_backup_of_the_previous_state(tmp_path) -> None:
    sim = _sim(tmp_path)
    sim.start()
    backup = tmp_path / "tournament_state.json.bak"
    assert backup.exists()
    previous = json.loads(backup.read_text(encoding="utf-8"))
    assert previous["save_version"] == TournamentSimulator.SAVE_VERSION
    assert previous["bracket"]["stage"] == REGISTRATION
