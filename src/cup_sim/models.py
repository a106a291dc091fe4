from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar
from uuid import uuid4

from .config import POSITIONS, SQUAD_SIZE, STARTING_ELEVEN_SIZE

QUARTER_FINAL = "quarterFinal"
SEMI_FINAL = "semiFinal"
FINAL = "final"
ROUNDS: tuple[str, ...] = (QUARTER_FINAL, SEMI_FINAL, FINAL)
ROUND_LABELS: dict[str, str] = {
    QUARTER_FINAL: "Quarter Final",
    SEMI_FINAL: "Semi Final",
    FINAL: "Final",
}

STATUS_SCHEDULED = "scheduled"
STATUS_COMPLETED = "completed"
SIMULATED = "simulated"
PLAYED = "played"

EVENT_TYPES: tuple[str, ...] = (
    "kickoff",
    "goal",
    "own_goal",
    "shot_on_target",
    "shot_off_target",
    "save",
    "corner_kick",
    "free_kick",
    "penalty_kick",
    "yellow_card",
    "red_card",
    "substitution",
    "foul",
    "offside",
    "halftime",
    "extratime",
    "fulltime",
    "penalties",
    "final",
)
GOAL_EVENT_TYPES = {"goal", "own_goal"}


def _new_id() -> str:
    return uuid4().hex


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True)
class Player:
    name: str
    position: str
    ratings: dict[str, int]
    player_id: str = field(default_factory=_new_id)
    is_captain: bool = False
    goals: int = 0
    appearances: int = 0

    @property
    def natural_rating(self) -> int:
        return self.ratings.get(self.position, 0)

    @property
    def best_position(self) -> str:
        return max(POSITIONS, key=lambda pos: (self.ratings.get(pos, 0), pos == self.position))

    def rating(self, position: str) -> int:
        return self.ratings.get(position, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.player_id,
            "name": self.name,
            "naturalPosition": self.position,
            "isCaptain": self.is_captain,
            "ratings": dict(self.ratings),
            "goals": self.goals,
            "appearances": self.appearances,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Player:
        return cls(
            name=str(raw.get("name", "")),
            position=str(raw.get("naturalPosition", "")),
            ratings={str(k): int(v) for k, v in dict(raw.get("ratings", {})).items()},
            player_id=str(raw.get("id") or _new_id()),
            is_captain=bool(raw.get("isCaptain", False)),
            goals=int(raw.get("goals", 0)),
            appearances=int(raw.get("appearances", 0)),
        )


@dataclass(slots=True)
class TeamStats:
    matches_played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_scored: int = 0
    goals_conceded: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_scored - self.goals_conceded

    @property
    def win_rate(self) -> float:
        if self.matches_played <= 0:
            return 0.0
        return self.wins / self.matches_played

    @property
    def avg_goals(self) -> float:
        if self.matches_played <= 0:
            return 0.0
        return self.goals_scored / self.matches_played

    def register_match(self, goals_for: int, goals_against: int, sign: int = 1) -> None:
        # A shootout leaves the score level, so it is booked as a draw.
        self.matches_played += sign
        self.goals_scored += sign * goals_for
        self.goals_conceded += sign * goals_against
        if goals_for > goals_against:
            self.wins += sign
        elif goals_for < goals_against:
            self.losses += sign
        else:
            self.draws += sign

    def to_dict(self) -> dict[str, int]:
        return {
            "matchesPlayed": self.matches_played,
            "wins": self.wins,
            "draws": self.draws,
            "losses": self.losses,
            "goalsScored": self.goals_scored,
            "goalsConceded": self.goals_conceded,
            "goalDifference": self.goal_difference,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TeamStats:
        return cls(
            matches_played=int(raw.get("matchesPlayed", 0)),
            wins=int(raw.get("wins", 0)),
            draws=int(raw.get("draws", 0)),
            losses=int(raw.get("losses", 0)),
            goals_scored=int(raw.get("goalsScored", 0)),
            goals_conceded=int(raw.get("goalsConceded", 0)),
        )


@dataclass(slots=True)
class Team:
    country: str
    manager_name: str = "Head Coach"
    players: list[Player] = field(default_factory=list)
    starting_eleven_ids: list[str] = field(default_factory=list)
    team_id: str = field(default_factory=_new_id)
    stats: TeamStats = field(default_factory=TeamStats)

    SQUAD_SIZE: ClassVar[int] = SQUAD_SIZE
    STARTING_ELEVEN_SIZE: ClassVar[int] = STARTING_ELEVEN_SIZE

    @property
    def overall_rating(self) -> float:
        from .ratings import calculate_team_rating

        return calculate_team_rating(self.players, self.starting_eleven_ids)

    @property
    def captain(self) -> Player | None:
        return next((p for p in self.players if p.is_captain), None)

    def player_by_id(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.player_id == player_id:
                return player
        return None

    def starting_players(self) -> list[Player]:
        wanted = set(self.starting_eleven_ids)
        return [p for p in self.players if p.player_id in wanted]

    def bench_players(self) -> list[Player]:
        wanted = set(self.starting_eleven_ids)
        return [p for p in self.players if p.player_id not in wanted]

    def set_starting_eleven(self, player_ids: list[str]) -> None:
        from .ratings import ensure_valid_composition

        ensure_valid_composition(self.players, player_ids)
        self.starting_eleven_ids = list(player_ids)

    def replace_squad(self, players: list[Player], starting_eleven_ids: list[str]) -> None:
        from .ratings import ensure_valid_composition

        ensure_valid_composition(players, starting_eleven_ids)
        self.players = list(players)
        self.starting_eleven_ids = list(starting_eleven_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.team_id,
            "country": self.country,
            "managerName": self.manager_name,
            "players": [p.to_dict() for p in self.players],
            "starting11Ids": list(self.starting_eleven_ids),
            "overallRating": round(self.overall_rating, 2),
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Team:
        # overallRating is derived, so any stored value is ignored.
        return cls(
            country=str(raw.get("country", "")),
            manager_name=str(raw.get("managerName", "Head Coach")),
            players=[Player.from_dict(p) for p in raw.get("players", []) if isinstance(p, dict)],
            starting_eleven_ids=[str(pid) for pid in raw.get("starting11Ids", [])],
            team_id=str(raw.get("id") or _new_id()),
            stats=TeamStats.from_dict(raw.get("stats", {}) or {}),
        )


@dataclass(slots=True)
class GoalScorer:
    player_id: str
    player_name: str
    team_id: str
    minute: int
    is_extra_time: bool = False
    is_penalty: bool = False
    is_own_goal: bool = False
    assist_player_id: str | None = None
    assist_player_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "playerId": self.player_id,
                "playerName": self.player_name,
                "teamId": self.team_id,
                "minute": self.minute,
                "isExtraTime": self.is_extra_time,
                "isPenalty": self.is_penalty,
                "isOwnGoal": self.is_own_goal,
                "assistPlayerId": self.assist_player_id,
                "assistPlayerName": self.assist_player_name,
            }
        )

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GoalScorer:
        return cls(
            player_id=str(raw["playerId"]),
            player_name=str(raw.get("playerName", "")),
            team_id=str(raw["teamId"]),
            minute=int(raw["minute"]),
            is_extra_time=bool(raw.get("isExtraTime", False)),
            is_penalty=bool(raw.get("isPenalty", False)),
            is_own_goal=bool(raw.get("isOwnGoal", False)),
            assist_player_id=raw.get("assistPlayerId"),
            assist_player_name=raw.get("assistPlayerName"),
        )


@dataclass(slots=True)
class PenaltyKick:
    team_id: str
    player_id: str
    player_name: str
    scored: bool
    order: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "teamId": self.team_id,
            "playerId": self.player_id,
            "playerName": self.player_name,
            "scored": self.scored,
            "order": self.order,
        }


@dataclass(slots=True)
class PenaltyShootout:
    team1_score: int
    team2_score: int
    kicks: list[PenaltyKick] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "team1Score": self.team1_score,
            "team2Score": self.team2_score,
            "penalties": [k.to_dict() for k in self.kicks],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PenaltyShootout:
        kicks = [
            PenaltyKick(
                team_id=str(k["teamId"]),
                player_id=str(k.get("playerId", "")),
                player_name=str(k.get("playerName", "")),
                scored=bool(k.get("scored", False)),
                order=int(k.get("order", 0)),
            )
            for k in raw.get("penalties", [])
            if isinstance(k, dict)
        ]
        return cls(team1_score=int(raw["team1Score"]), team2_score=int(raw["team2Score"]), kicks=kicks)


@dataclass(slots=True)
class MatchResult:
    team1_id: str
    team2_id: str
    team1_score: int
    team2_score: int
    winner_id: str
    goal_scorers: list[GoalScorer] = field(default_factory=list)
    went_to_extra_time: bool = False
    went_to_penalties: bool = False
    penalty_shootout: PenaltyShootout | None = None

    @property
    def loser_id(self) -> str:
        return self.team2_id if self.winner_id == self.team1_id else self.team1_id

    @property
    def regulation_score(self) -> tuple[int, int]:
        regulation = [g for g in self.goal_scorers if not g.is_extra_time]
        return (
            sum(1 for g in regulation if g.team_id == self.team1_id),
            sum(1 for g in regulation if g.team_id == self.team2_id),
        )

    def goals_for(self, team_id: str) -> int:
        if team_id == self.team1_id:
            return self.team1_score
        if team_id == self.team2_id:
            return self.team2_score
        return 0

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "team1Id": self.team1_id,
            "team2Id": self.team2_id,
            "team1Score": self.team1_score,
            "team2Score": self.team2_score,
            "winnerId": self.winner_id,
            "loserId": self.loser_id,
            "isDraw": self.regulation_score[0] == self.regulation_score[1],
            "goalScorers": [g.to_dict() for g in self.goal_scorers],
            "wentToExtraTime": self.went_to_extra_time,
            "wentToPenalties": self.went_to_penalties,
        }
        if self.penalty_shootout is not None:
            payload["penaltyShootout"] = self.penalty_shootout.to_dict()
        return payload

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MatchResult:
        shootout = raw.get("penaltyShootout")
        return cls(
            team1_id=str(raw["team1Id"]),
            team2_id=str(raw["team2Id"]),
            team1_score=int(raw["team1Score"]),
            team2_score=int(raw["team2Score"]),
            winner_id=str(raw["winnerId"]),
            goal_scorers=[GoalScorer.from_dict(g) for g in raw.get("goalScorers", []) if isinstance(g, dict)],
            went_to_extra_time=bool(raw.get("wentToExtraTime", False)),
            went_to_penalties=bool(raw.get("wentToPenalties", False)),
            penalty_shootout=PenaltyShootout.from_dict(shootout) if isinstance(shootout, dict) else None,
        )


@dataclass(slots=True)
class MatchEvent:
    minute: float
    type: str
    description: str = ""
    team_id: str | None = None
    player_id: str | None = None
    player_name: str | None = None
    assist_player_name: str | None = None
    subbed_out_player_id: str | None = None
    subbed_out_player_name: str | None = None
    subbed_in_player_id: str | None = None
    subbed_in_player_name: str | None = None
    score: tuple[int, int] = (0, 0)
    is_extra_time: bool = False

    @property
    def is_goal(self) -> bool:
        return self.type in GOAL_EVENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "minute": self.minute,
                "type": self.type,
                "isExtraTime": self.is_extra_time,
                "teamId": self.team_id,
                "playerId": self.player_id,
                "playerName": self.player_name,
                "assistPlayerName": self.assist_player_name,
                "subbedOutPlayerId": self.subbed_out_player_id,
                "subbedOutPlayerName": self.subbed_out_player_name,
                "subbedInPlayerId": self.subbed_in_player_id,
                "subbedInPlayerName": self.subbed_in_player_name,
                "score": {"team1": self.score[0], "team2": self.score[1]},
                "description": self.description,
            }
        )

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MatchEvent:
        score = raw.get("score") or {}
        return cls(
            minute=float(raw["minute"]),
            type=str(raw["type"]),
            description=str(raw.get("description", "")),
            team_id=raw.get("teamId"),
            player_id=raw.get("playerId"),
            player_name=raw.get("playerName"),
            assist_player_name=raw.get("assistPlayerName"),
            subbed_out_player_id=raw.get("subbedOutPlayerId"),
            subbed_out_player_name=raw.get("subbedOutPlayerName"),
            subbed_in_player_id=raw.get("subbedInPlayerId"),
            subbed_in_player_name=raw.get("subbedInPlayerName"),
            score=(int(score.get("team1", 0)), int(score.get("team2", 0))),
            is_extra_time=bool(raw.get("isExtraTime", False)),
        )


@dataclass(slots=True)
class Match:
    round: str
    bracket_position: str | None = None
    team1_id: str | None = None
    team2_id: str | None = None
    match_id: str = field(default_factory=_new_id)
    status: str = STATUS_SCHEDULED
    simulation_type: str | None = None
    result: MatchResult | None = None
    events: list[MatchEvent] = field(default_factory=list)
    commentary: list[str] = field(default_factory=list)
    key_moments: list[str] = field(default_factory=list)
    lineups: dict[str, list[str]] = field(default_factory=dict)
    completed_at: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED and self.result is not None

    @property
    def teams_known(self) -> bool:
        return bool(self.team1_id) and bool(self.team2_id)

    @property
    def winner_id(self) -> str | None:
        return self.result.winner_id if self.result is not None else None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.match_id,
            "round": self.round,
            "status": self.status,
            "team1Id": self.team1_id,
            "team2Id": self.team2_id,
            "events": [e.to_dict() for e in self.events],
            "commentary": list(self.commentary),
            "keyMoments": list(self.key_moments),
            "lineups": {team_id: list(ids) for team_id, ids in self.lineups.items()},
        }
        if self.bracket_position is not None:
            payload["bracketPosition"] = self.bracket_position
        if self.simulation_type is not None:
            payload["simulationType"] = self.simulation_type
        if self.result is not None:
            payload["result"] = self.result.to_dict()
        if self.completed_at is not None:
            payload["completedAt"] = self.completed_at
        return payload

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Match:
        result = raw.get("result")
        return cls(
            round=str(raw["round"]),
            bracket_position=raw.get("bracketPosition"),
            team1_id=raw.get("team1Id") or None,
            team2_id=raw.get("team2Id") or None,
            match_id=str(raw.get("id") or _new_id()),
            status=str(raw.get("status", STATUS_SCHEDULED)),
            simulation_type=raw.get("simulationType"),
            result=MatchResult.from_dict(result) if isinstance(result, dict) else None,
            events=[MatchEvent.from_dict(e) for e in raw.get("events", []) if isinstance(e, dict)],
            commentary=[str(line) for line in raw.get("commentary", [])],
            key_moments=[str(line) for line in raw.get("keyMoments", [])],
            lineups={
                str(team_id): [str(pid) for pid in ids]
                for team_id, ids in dict(raw.get("lineups", {}) or {}).items()
                if isinstance(ids, list)
            },
            completed_at=raw.get("completedAt"),
        )
