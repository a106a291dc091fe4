from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Iterator

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .app import build_default_teams
from .errors import BracketInconsistency, CompositionInvalid, CupSimError, InvalidInput, NotReady, UnknownEntity
from .models import SIMULATED, Match, Player
from .ratings import validate_team_composition
from .tournament import TournamentSimulator

logger = logging.getLogger(__name__)


class PlayerPayload(BaseModel):
    name: str
    position: str
    ratings: dict[str, int]
    is_captain: bool = False
    id: str | None = None


class TeamRegistration(BaseModel):
    country: str
    manager_name: str = "Head Coach"
    players: list[PlayerPayload] | None = None
    starting_eleven_ids: list[str] | None = None


class StartingElevenSelection(BaseModel):
    player_ids: list[str] = Field(default_factory=list)


class PlaySelection(BaseModel):
    mode: str = SIMULATED


class AdvanceSelection(BaseModel):
    round: str | None = None


class ResetSelection(BaseModel):
    reseed: bool = False


class CupService:
    def __init__(self, data_root: str | Path | None = None, seed: int | None = None, seed_defaults: bool = True) -> None:
        self.data_root = Path(data_root) if data_root is not None else Path(__file__).resolve().parents[2]
        self.simulator = TournamentSimulator(
            seed=seed,
            state_path=self.data_root / "tournament_state.json",
            history_path=self.data_root / "tournament_history.json",
        )
        if seed_defaults and not self.simulator.teams:
            self._seed_default_teams()
        self._lock = Lock()

    def _seed_default_teams(self) -> None:
        for team in build_default_teams():
            self.simulator.add_team(team)

    def _match_payload(self, match: Match, *, detail: bool = False) -> dict[str, Any]:
        payload = match.to_dict()
        team1 = self.simulator.get_team(match.team1_id)
        team2 = self.simulator.get_team(match.team2_id)
        payload["team1"] = team1.country if team1 else None
        payload["team2"] = team2.country if team2 else None
        if not detail:
            payload.pop("events", None)
            payload.pop("commentary", None)
            payload.pop("lineups", None)
        return payload

    def tournament(self) -> dict[str, Any]:
        return {**self.simulator.summary(), "bracket": self.simulator.bracket.to_dict()}

    def teams(self) -> list[dict[str, Any]]:
        return [t.to_dict() for t in self.simulator.teams]

    def team(self, team_id: str) -> dict[str, Any]:
        team = self.simulator.require_team(team_id)
        return {
            **team.to_dict(),
            "composition": validate_team_composition(team.players, team.starting_eleven_ids).to_dict(),
            "analytics": self.simulator.team_analytics(team_id),
        }

    def register(self, payload: TeamRegistration) -> dict[str, Any]:
        players = None
        if payload.players is not None:
            players = []
            for p in payload.players:
                player = Player(name=p.name, position=p.position, ratings=dict(p.ratings), is_captain=p.is_captain)
                if p.id:
                    player.player_id = p.id
                players.append(player)
        team = self.simulator.register_team(
            payload.country,
            payload.manager_name,
            players=players,
            starting_eleven_ids=payload.starting_eleven_ids,
        )
        return team.to_dict()

    def matches(self, round_name: str | None) -> list[dict[str, Any]]:
        return [self._match_payload(m) for m in self.simulator.list_matches(round_name)]

    def match(self, match_id: str) -> dict[str, Any]:
        return self._match_payload(self.simulator.get_match(match_id), detail=True)

    def reset(self, reseed: bool) -> dict[str, Any]:
        archived = self.simulator.reset()
        if reseed:
            self._seed_default_teams()
        return {"archived": archived, "tournament": self.tournament()}


@contextmanager
def _domain_errors() -> Iterator[None]:
    try:
        yield
    except CompositionInvalid as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors}) from exc
    except UnknownEntity as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (NotReady, BracketInconsistency) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except CupSimError as exc:
        logger.error("Unhandled tournament error: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


service = CupService()
app = FastAPI(title="Cup Sim API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/tournament")
def tournament() -> dict[str, Any]:
    with service._lock:
        return service.tournament()


@app.post("/api/tournament/start")
def start_tournament() -> dict[str, Any]:
    with service._lock, _domain_errors():
        created = service.simulator.start()
        return {"matches": [service._match_payload(m) for m in created], "tournament": service.tournament()}


@app.get("/api/teams")
def teams() -> list[dict[str, Any]]:
    with service._lock:
        return service.teams()


@app.post("/api/teams")
def register_team(payload: TeamRegistration) -> dict[str, Any]:
    with service._lock, _domain_errors():
        return service.register(payload)


@app.get("/api/teams/{team_id}")
def team_detail(team_id: str) -> dict[str, Any]:
    with service._lock, _domain_errors():
        return service.team(team_id)


@app.put("/api/teams/{team_id}/starting-eleven")
def set_starting_eleven(team_id: str, payload: StartingElevenSelection) -> dict[str, Any]:
    with service._lock, _domain_errors():
        return service.simulator.set_starting_eleven(team_id, payload.player_ids).to_dict()


@app.post("/api/teams/{team_id}/refresh-squad")
def refresh_squad(team_id: str) -> dict[str, Any]:
    with service._lock, _domain_errors():
        return service.simulator.refresh_squad(team_id).to_dict()


@app.get("/api/matches")
def matches(round: str | None = None) -> list[dict[str, Any]]:
    with service._lock, _domain_errors():
        return service.matches(round)


@app.post("/api/matches/regenerate-events")
def regenerate_all_events() -> dict[str, Any]:
    with service._lock, _domain_errors():
        return {"regenerated": service.simulator.regenerate_events()}


@app.get("/api/matches/{match_id}")
def match_detail(match_id: str) -> dict[str, Any]:
    with service._lock, _domain_errors():
        return service.match(match_id)


@app.post("/api/matches/{match_id}/play")
def play_match(match_id: str, payload: PlaySelection | None = None) -> dict[str, Any]:
    mode = payload.mode if payload is not None else SIMULATED
    with service._lock, _domain_errors():
        match = service.simulator.play_match(match_id, mode)
        return service._match_payload(match, detail=True)


@app.post("/api/matches/{match_id}/invalidate")
def invalidate_match(match_id: str) -> dict[str, Any]:
    with service._lock, _domain_errors():
        removed = service.simulator.invalidate_match(match_id)
        return {"removedMatchIds": removed, "tournament": service.tournament()}


@app.post("/api/matches/{match_id}/regenerate-events")
def regenerate_events(match_id: str) -> dict[str, Any]:
    with service._lock, _domain_errors():
        service.simulator.regenerate_events(match_id)
        return service.match(match_id)


@app.post("/api/advance")
def advance(payload: AdvanceSelection | None = None) -> dict[str, Any]:
    with service._lock, _domain_errors():
        created = service.simulator.advance_round(payload.round if payload is not None else None)
        return {"matches": [service._match_payload(m) for m in created], "tournament": service.tournament()}


@app.get("/api/bracket")
def bracket() -> dict[str, Any]:
    with service._lock:
        return service.simulator.bracket.to_dict()


@app.get("/api/scorers")
def scorers(limit: int = 10) -> list[dict[str, object]]:
    with service._lock:
        return service.simulator.top_scorers(max(1, min(limit, 100)))


@app.get("/api/history")
def history() -> list[dict[str, Any]]:
    with service._lock:
        return list(service.simulator.history)


@app.post("/api/reset")
def reset(payload: ResetSelection | None = None) -> dict[str, Any]:
    with service._lock, _domain_errors():
        return service.reset(payload.reseed if payload is not None else False)
