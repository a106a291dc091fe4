from __future__ import annotations

import json
import logging
import random
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .bracket import COMPLETED, REGISTRATION, Bracket, bracket_position, next_round
from .commentary import CommentaryContext, CommentaryProvider, generate_commentary
from .config import POSITIONS, TOURNAMENT_SIZE
from .engine import simulate_match
from .errors import InvalidInput, NotReady, UnknownEntity
from .events import generate_match_events
from .models import (
    PLAYED,
    ROUND_LABELS,
    ROUNDS,
    SIMULATED,
    STATUS_COMPLETED,
    STATUS_SCHEDULED,
    Match,
    MatchEvent,
    Player,
    Team,
)
from .names import NameGenerator
from .ratings import build_team, default_starting_eleven, ensure_valid_composition, refresh_squad_ratings

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class TournamentSimulator:
    SAVE_VERSION = 1
    MAX_TEAMS = TOURNAMENT_SIZE
    SIMULATION_TYPES = (SIMULATED, PLAYED)

    def __init__(
        self,
        teams: list[Team] | None = None,
        seed: int | None = None,
        name: str = "African Nations Cup",
        state_path: str | Path | None = None,
        history_path: str | Path | None = None,
        commentary_provider: CommentaryProvider | None = None,
    ) -> None:
        self._rng = random.Random(seed)
        self._name_generator = NameGenerator(seed=seed)
        self.commentary_provider = commentary_provider
        self.state_path = Path(state_path or "tournament_state.json")
        self.history_path = Path(history_path or "tournament_history.json")
        self.last_load_error: str = ""

        loaded = self._load_state()
        self.name = str(loaded.get("name", name)) if loaded else name
        self.edition = int(loaded.get("edition", 1)) if loaded else 1
        self.teams: list[Team] = (
            [Team.from_dict(t) for t in loaded.get("teams", []) if isinstance(t, dict)] if loaded else []
        )
        raw_matches = loaded.get("matches", []) if loaded else []
        self.matches: dict[str, Match] = {}
        for raw in raw_matches if isinstance(raw_matches, list) else []:
            if isinstance(raw, dict):
                match = Match.from_dict(raw)
                self.matches[match.match_id] = match
        raw_bracket = loaded.get("bracket") if loaded else None
        self.bracket = Bracket.from_dict(raw_bracket) if isinstance(raw_bracket, dict) else Bracket()
        self.started_at: str | None = loaded.get("started_at") if loaded else None
        self.completed_at: str | None = loaded.get("completed_at") if loaded else None
        self.history: list[dict[str, Any]] = self._load_history()

        self._name_generator.reserve([p.name for t in self.teams for p in t.players])
        if not self.teams:
            for team in teams or []:
                self.add_team(team, save=False)
        self._save_state()

    # Persistence

    def _load_state(self) -> dict[str, Any]:
        if not self.state_path.exists():
            return {}
        try:
            raw = json.loads(self.state_path.read_text(encoding="utf-8"))
            if isinstance(raw, dict):
                version = int(raw.get("save_version", 1) or 1)
                if version > self.SAVE_VERSION:
                    self.last_load_error = (
                        f"Unsupported tournament state version {version}; app supports up to {self.SAVE_VERSION}."
                    )
                    logger.warning(self.last_load_error)
                    return {}
                return raw
            self.last_load_error = "Tournament state file has invalid format; starting with defaults."
        except (json.JSONDecodeError, OSError, ValueError) as exc:
            self.last_load_error = f"Failed to load tournament state ({exc}); starting with defaults."
        logger.warning(self.last_load_error)
        return {}

    def _save_state(self) -> None:
        state = {
            "save_version": self.SAVE_VERSION,
            "name": self.name,
            "edition": self.edition,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "teams": [t.to_dict() for t in self.teams],
            "matches": [m.to_dict() for m in self.matches.values()],
            "bracket": self.bracket.to_dict(),
        }
        self._write_json_with_backup(self.state_path, state)

    def _load_history(self) -> list[dict[str, Any]]:
        if not self.history_path.exists():
            return []
        try:
            raw = json.loads(self.history_path.read_text(encoding="utf-8"))
            if isinstance(raw, dict):
                version = int(raw.get("save_version", 1) or 1)
                if version > self.SAVE_VERSION:
                    self.last_load_error = (
                        f"Unsupported tournament history version {version}; app supports up to {self.SAVE_VERSION}."
                    )
                    logger.warning(self.last_load_error)
                    return []
                payload = raw.get("tournament_history", [])
                if isinstance(payload, list):
                    return [row for row in payload if isinstance(row, dict)]
            self.last_load_error = "Tournament history file has invalid format; starting with empty history."
        except (json.JSONDecodeError, OSError, ValueError) as exc:
            self.last_load_error = f"Failed to load tournament history ({exc}); starting with empty history."
        logger.warning(self.last_load_error)
        return []

    def _save_history(self) -> None:
        payload = {"save_version": self.SAVE_VERSION, "tournament_history": self.history}
        self._write_json_with_backup(self.history_path, payload)

    def _write_json_with_backup(self, path: Path, payload: Any, *, with_backup: bool = True) -> None:
        if with_backup and path.exists():
            backup = path.with_suffix(path.suffix + ".bak")
            try:
                shutil.copy2(path, backup)
            except OSError as exc:
                logger.warning("Could not back up %s: %s", path, exc)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # Lookups

    @property
    def stage(self) -> str:
        return self.bracket.stage

    @property
    def champion(self) -> Team | None:
        return self.get_team(self.bracket.champion_id) if self.bracket.champion_id else None

    @property
    def runner_up(self) -> Team | None:
        return self.get_team(self.bracket.runner_up_id) if self.bracket.runner_up_id else None

    def get_team(self, team_id: str | None) -> Team | None:
        for team in self.teams:
            if team.team_id == team_id:
                return team
        return None

    def require_team(self, team_id: str | None) -> Team:
        team = self.get_team(team_id)
        if team is None:
            raise UnknownEntity(f"Unknown team '{team_id}'.")
        return team

    def get_match(self, match_id: str) -> Match:
        match = self.matches.get(match_id)
        if match is None:
            raise UnknownEntity(f"Unknown match '{match_id}'.")
        return match

    def list_matches(self, round_name: str | None = None) -> list[Match]:
        if round_name is not None and round_name not in ROUNDS:
            raise InvalidInput(f"Unknown round '{round_name}'.")
        rows = [m for m in self.matches.values() if round_name is None or m.round == round_name]
        return sorted(rows, key=lambda m: (ROUNDS.index(m.round), m.bracket_position or ""))

    def is_complete(self) -> bool:
        return self.bracket.stage == COMPLETED

    # Registration

    def add_team(self, team: Team, *, save: bool = True) -> Team:
        if self.bracket.stage != REGISTRATION:
            raise InvalidInput("Registration is closed for this tournament.")
        if len(self.teams) >= self.MAX_TEAMS:
            raise InvalidInput(f"Tournament already has {self.MAX_TEAMS} teams.")
        country = team.country.strip()
        if not country:
            raise InvalidInput("Country name is required.")
        if any(t.country.lower() == country.lower() for t in self.teams):
            raise InvalidInput(f"{country} is already registered.")
        if any(t.team_id == team.team_id for t in self.teams):
            raise InvalidInput(f"Team id {team.team_id} is already registered.")
        team.replace_squad(team.players, team.starting_eleven_ids)
        self.teams.append(team)
        self._name_generator.reserve([p.name for p in team.players])
        logger.info("Registered %s (%d/%d)", team.country, len(self.teams), self.MAX_TEAMS)
        if save:
            self._save_state()
        return team

    def register_team(
        self,
        country: str,
        manager_name: str = "Head Coach",
        players: list[Player] | None = None,
        starting_eleven_ids: list[str] | None = None,
    ) -> Team:
        if players is None:
            team = build_team(country.strip(), manager_name, self._name_generator, self._rng)
        else:
            if starting_eleven_ids is not None:
                eleven = list(starting_eleven_ids)
            else:
                try:
                    eleven = default_starting_eleven(players)
                except InvalidInput:
                    # Let the composition check report every problem with the squad.
                    ensure_valid_composition(players, [])
                    raise
            team = Team(country=country.strip(), manager_name=manager_name, players=list(players), starting_eleven_ids=list(eleven))
        return self.add_team(team)

    def set_starting_eleven(self, team_id: str, player_ids: list[str]) -> Team:
        team = self.require_team(team_id)
        team.set_starting_eleven(player_ids)
        self._save_state()
        return team

    def refresh_squad(self, team_id: str) -> Team:
        """Redraw every player's ratings; only allowed while registration is open."""
        team = self.require_team(team_id)
        if self.bracket.stage != REGISTRATION:
            raise InvalidInput("Squads are locked once the draw has been made.")
        refresh_squad_ratings(team, self._rng)
        logger.info("Refreshed %s squad ratings (overall %.1f)", team.country, team.overall_rating)
        self._save_state()
        return team

    # Draw and match play

    def start(self) -> list[Match]:
        if self.bracket.stage != REGISTRATION:
            raise InvalidInput("Tournament has already started.")
        if len(self.teams) != self.MAX_TEAMS:
            raise NotReady(f"Need {self.MAX_TEAMS} teams to start (have {len(self.teams)}).")
        self.bracket = Bracket.draw([t.team_id for t in self.teams], self._rng)
        self.matches = {}
        created = self._create_round_matches(ROUNDS[0])
        self.started_at = _now()
        logger.info("%s edition %d started with %d teams", self.name, self.edition, len(self.teams))
        self._save_state()
        return created

    def _create_round_matches(self, round_name: str) -> list[Match]:
        created: list[Match] = []
        for idx, slot in enumerate(self.bracket.slots(round_name)):
            if slot.match_id or not slot.teams_known:
                continue
            match = Match(
                round=round_name,
                bracket_position=bracket_position(round_name, idx),
                team1_id=slot.team1_id,
                team2_id=slot.team2_id,
            )
            self.bracket.attach_match(round_name, idx, match)
            self.matches[match.match_id] = match
            created.append(match)
        return created

    def play_match(
        self,
        match_id: str,
        mode: str = SIMULATED,
        provider: CommentaryProvider | None = None,
    ) -> Match:
        if mode not in self.SIMULATION_TYPES:
            raise InvalidInput(f"Unknown simulation type '{mode}'.")
        match = self.get_match(match_id)
        if match.status == STATUS_COMPLETED:
            raise InvalidInput(f"{match.bracket_position} has already been played.")
        if not match.teams_known:
            raise NotReady(f"{match.bracket_position} is waiting for its teams.")
        if match.round != self.bracket.current_round:
            raise NotReady(f"{ROUND_LABELS[match.round]} matches cannot be played yet.")
        team1 = self.require_team(match.team1_id)
        team2 = self.require_team(match.team2_id)

        result = simulate_match(team1, team2, self._rng)
        events = generate_match_events(team1, team2, result, self._rng)
        match.simulation_type = SIMULATED
        match.commentary = []
        match.key_moments = []
        if mode == PLAYED:
            outcome = generate_commentary(
                events,
                CommentaryContext(team1, team2, ROUND_LABELS[match.round]),
                provider or self.commentary_provider,
            )
            match.simulation_type = outcome.simulation_type
            match.commentary = outcome.commentary
            match.key_moments = outcome.key_moments

        match.result = result
        match.events = events
        match.lineups = {
            team.team_id: team.starting_eleven_ids
            + [e.subbed_in_player_id for e in events if e.type == "substitution" and e.team_id == team.team_id and e.subbed_in_player_id]
            for team in (team1, team2)
        }
        match.status = STATUS_COMPLETED
        match.completed_at = _now()
        self._apply_result(match, sign=1)
        logger.info(
            "%s %s %d-%d %s%s",
            match.bracket_position,
            team1.country,
            result.team1_score,
            result.team2_score,
            team2.country,
            " (pens)" if result.went_to_penalties else " (aet)" if result.went_to_extra_time else "",
        )
        self._save_state()
        return match

    def _apply_result(self, match: Match, sign: int) -> None:
        result = match.result
        if result is None:
            return
        for team_id, opponent_id in ((result.team1_id, result.team2_id), (result.team2_id, result.team1_id)):
            team = self.get_team(team_id)
            if team is None:
                continue
            team.stats.register_match(result.goals_for(team_id), result.goals_for(opponent_id), sign)
            for pid in match.lineups.get(team_id, []):
                player = team.player_by_id(pid)
                if player is not None:
                    player.appearances = max(0, player.appearances + sign)
        for goal in result.goal_scorers:
            if goal.is_own_goal:
                continue
            team = self.get_team(goal.team_id)
            player = team.player_by_id(goal.player_id) if team else None
            if player is not None:
                player.goals = max(0, player.goals + sign)

    def advance_round(self, round_name: str | None = None) -> list[Match]:
        round_name = round_name or self.bracket.current_round
        if round_name is None:
            raise NotReady("There is no round in progress.")
        self.bracket.advance_round(round_name, self.list_matches(round_name))
        following = next_round(round_name)
        created = self._create_round_matches(following) if following else []
        if self.bracket.stage == COMPLETED and self.completed_at is None:
            self.completed_at = _now()
            champion = self.champion
            logger.info("%s champion: %s", self.name, champion.country if champion else "?")
        self._save_state()
        return created

    def play_round(self, mode: str = SIMULATED) -> list[Match]:
        round_name = self.bracket.current_round
        if round_name is None:
            raise NotReady("There is no round in progress.")
        played = []
        for match in self.list_matches(round_name):
            if match.status == STATUS_SCHEDULED:
                played.append(self.play_match(match.match_id, mode))
        return played

    def run_to_completion(self, mode: str = SIMULATED) -> Team:
        if self.bracket.stage == REGISTRATION:
            self.start()
        while not self.is_complete():
            self.play_round(mode)
            self.advance_round()
        champion = self.champion
        if champion is None:
            raise NotReady("Tournament finished without a champion.")
        return champion

    # Administrative corrections

    def invalidate_match(self, match_id: str) -> list[str]:
        """Void a result and remove every downstream match built on it."""
        match = self.get_match(match_id)
        if match.status != STATUS_COMPLETED:
            raise InvalidInput(f"{match.bracket_position} has no result to invalidate.")
        self._apply_result(match, sign=-1)
        self._reset_match(match)
        removed: list[str] = []
        if self.bracket.locate(match_id) is not None:
            for downstream_id in self.bracket.invalidate(match_id):
                downstream = self.matches.pop(downstream_id, None)
                located = self.bracket.locate(downstream_id)
                if located is not None:
                    self.bracket.slots(located[0])[located[1]].match_id = None
                if downstream is not None and downstream.status == STATUS_COMPLETED:
                    self._apply_result(downstream, sign=-1)
                removed.append(downstream_id)
        self.completed_at = None if not self.is_complete() else self.completed_at
        logger.info("Invalidated %s; removed %d downstream matches", match.bracket_position, len(removed))
        self._save_state()
        return removed

    def _reset_match(self, match: Match) -> None:
        match.status = STATUS_SCHEDULED
        match.result = None
        match.events = []
        match.commentary = []
        match.key_moments = []
        match.lineups = {}
        match.simulation_type = None
        match.completed_at = None

    def regenerate_events(self, match_id: str | None = None) -> int:
        """Rebuild timelines from stored results; returns how many were rebuilt."""
        targets = [self.get_match(match_id)] if match_id else list(self.matches.values())
        timelines: list[tuple[Match, list[MatchEvent], Team, Team]] = []
        for match in targets:
            if not match.is_completed or match.result is None:
                if match_id:
                    raise InvalidInput(f"{match.bracket_position} has no result to expand.")
                continue
            team1 = self.require_team(match.team1_id)
            team2 = self.require_team(match.team2_id)
            timelines.append((match, generate_match_events(team1, team2, match.result, self._rng), team1, team2))

        # Nothing is assigned until every timeline has been built.
        for match, events, team1, team2 in timelines:
            match.events = events
            if match.simulation_type == PLAYED:
                outcome = generate_commentary(
                    events,
                    CommentaryContext(team1, team2, ROUND_LABELS[match.round]),
                    self.commentary_provider,
                )
                match.simulation_type = outcome.simulation_type
                match.commentary = outcome.commentary
                match.key_moments = outcome.key_moments
        rebuilt = len(timelines)
        logger.info("Regenerated events for %d matches", rebuilt)
        self._save_state()
        return rebuilt

    # Reporting

    def top_scorers(self, limit: int = 10) -> list[dict[str, object]]:
        rows: list[tuple[Player, Team]] = [(p, t) for t in self.teams for p in t.players if p.goals > 0]
        rows.sort(key=lambda row: (-row[0].goals, row[0].appearances, row[0].name))
        return [
            {
                "playerId": p.player_id,
                "playerName": p.name,
                "teamId": t.team_id,
                "country": t.country,
                "position": p.position,
                "goals": p.goals,
                "appearances": p.appearances,
            }
            for p, t in rows[:limit]
        ]

    def team_analytics(self, team_id: str) -> dict[str, object]:
        team = self.require_team(team_id)
        position_ratings: dict[str, float] = {}
        for pos in POSITIONS:
            group = [p.natural_rating for p in team.players if p.position == pos]
            position_ratings[pos] = round(sum(group) / len(group), 1) if group else 0.0
        history = []
        for match in self.list_matches():
            if not match.is_completed or team_id not in (match.team1_id, match.team2_id) or match.result is None:
                continue
            opponent = self.get_team(match.team2_id if match.team1_id == team_id else match.team1_id)
            result = match.result
            history.append(
                {
                    "matchId": match.match_id,
                    "round": match.round,
                    "opponent": opponent.country if opponent else "",
                    "goalsFor": result.goals_for(team_id),
                    "goalsAgainst": result.goals_for(opponent.team_id) if opponent else 0,
                    "won": result.winner_id == team_id,
                    "wentToPenalties": result.went_to_penalties,
                }
            )
        scorers = sorted((p for p in team.players if p.goals > 0), key=lambda p: (-p.goals, p.name))
        return {
            "teamId": team.team_id,
            "country": team.country,
            "overallRating": round(team.overall_rating, 2),
            "stats": team.stats.to_dict(),
            "winRate": round(team.stats.win_rate * 100, 1),
            "avgGoals": round(team.stats.avg_goals, 2),
            "positionRatings": position_ratings,
            "topScorers": [{"playerName": p.name, "goals": p.goals} for p in scorers[:5]],
            "matches": history,
        }

    def summary(self) -> dict[str, object]:
        champion = self.champion
        runner_up = self.runner_up
        return {
            "name": self.name,
            "edition": self.edition,
            "stage": self.bracket.stage,
            "currentRound": self.bracket.current_round,
            "teamCount": len(self.teams),
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "championId": champion.team_id if champion else None,
            "champion": champion.country if champion else None,
            "runnerUpId": runner_up.team_id if runner_up else None,
            "runnerUp": runner_up.country if runner_up else None,
            "lastLoadError": self.last_load_error,
        }

    def reset(self) -> dict[str, object] | None:
        played = [m for m in self.matches.values() if m.is_completed and m.result is not None]
        entry: dict[str, object] | None = None
        if played:
            champion = self.champion
            runner_up = self.runner_up
            entry = {
                "edition": self.edition,
                "name": self.name,
                "winnerId": champion.team_id if champion else "",
                "winnerName": champion.country if champion else "",
                "winnerManager": champion.manager_name if champion else "",
                "runnerUpId": runner_up.team_id if runner_up else "",
                "runnerUpName": runner_up.country if runner_up else "",
                "runnerUpManager": runner_up.manager_name if runner_up else "",
                "topScorers": self.top_scorers(10),
                "totalMatches": len(played),
                "totalGoals": sum(m.result.team1_score + m.result.team2_score for m in played if m.result),
                "participatingTeams": [t.country for t in self.teams],
                "completedAt": self.completed_at or self.started_at or _now(),
                "archivedAt": _now(),
            }
            self.history.append(entry)
            self._save_history()
            logger.info("Archived %s edition %d", self.name, self.edition)
            self.edition += 1
        self.teams = []
        self.matches = {}
        self.bracket = Bracket()
        self.started_at = None
        self.completed_at = None
        self._save_state()
        return entry
