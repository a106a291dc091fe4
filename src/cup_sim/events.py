from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from .config import FILLER_EVENT_WEIGHTS, FILLER_EVENTS_PER_90, SUBSTITUTION_LIMIT, SUBSTITUTION_WINDOWS
from .engine import check_result
from .errors import InvalidInput
from .models import EVENT_TYPES, MatchEvent, MatchResult, Player, Team

logger = logging.getLogger(__name__)

# Tie-break for events sharing a minute.
EVENT_RANK: dict[str, int] = {
    "kickoff": -1,
    "goal": 0,
    "own_goal": 0,
    "halftime": 2,
    "extratime": 3,
    "fulltime": 4,
    "penalties": 5,
    "final": 7,
}
FILLER_RANK = 1
SHOOTOUT_KICK_RANK = 6
MAX_RED_CARDS_PER_TEAM = 2


@dataclass(slots=True)
class _Side:
    team: Team
    on_pitch: list[Player]
    bench: list[Player]
    protected: set[str] = field(default_factory=set)
    booked: set[str] = field(default_factory=set)
    subs_used: int = 0
    red_cards: int = 0

    def outfield(self, positions: set[str] | None = None) -> list[Player]:
        wanted = positions or {"DF", "MD", "AT"}
        pool = [p for p in self.on_pitch if p.position in wanted]
        return pool or [p for p in self.on_pitch if p.position != "GK"]

    def keeper(self) -> Player | None:
        return next((p for p in self.on_pitch if p.position == "GK"), None)

    def expendable(self) -> list[Player]:
        return [p for p in self.on_pitch if p.position != "GK" and p.player_id not in self.protected]


@dataclass(slots=True)
class _Entry:
    event: MatchEvent
    rank: int
    seq: int

    @property
    def key(self) -> tuple[float, int, int]:
        return (self.event.minute, self.rank, self.seq)


def _pick(players: list[Player], rng: random.Random) -> Player | None:
    if not players:
        return None
    weights = [max(1, p.natural_rating) for p in players]
    return rng.choices(players, weights=weights, k=1)[0]


def _build_side(team: Team, result: MatchResult) -> _Side:
    starters = team.starting_players()
    on_pitch = starters if starters else list(team.players)[:11]
    used = {p.player_id for p in on_pitch}
    bench = [p for p in team.players if p.player_id not in used]
    protected: set[str] = set()
    for goal in result.goal_scorers:
        protected.add(goal.player_id)
        if goal.assist_player_id:
            protected.add(goal.assist_player_id)
    if result.penalty_shootout is not None:
        protected.update(k.player_id for k in result.penalty_shootout.kicks)
    return _Side(team=team, on_pitch=list(on_pitch), bench=bench, protected=protected)


def _filler_minutes(count: int, total: int, extra_time: bool, rng: random.Random) -> list[float]:
    minutes: list[float] = []
    while len(minutes) < count:
        minute = round(rng.uniform(0.1, total - 0.1), 1)
        if 45.0 <= minute < 46.0 or (extra_time and 90.0 <= minute < 91.0):
            continue
        if minute == int(minute):
            continue
        minutes.append(minute)
    return sorted(minutes)


def _in_substitution_window(minute: float) -> bool:
    return any(low <= minute <= high for low, high in SUBSTITUTION_WINDOWS)


def _filler_event(kind: str, minute: float, side: _Side, other: _Side, rng: random.Random) -> MatchEvent:
    team = side.team
    extra = minute > 90

    if kind == "substitution":
        off_pool = side.expendable()
        if side.bench and off_pool and side.subs_used < SUBSTITUTION_LIMIT and _in_substitution_window(minute):
            off = rng.choice(off_pool)
            same_line = [p for p in side.bench if p.position == off.position and p.position != "GK"]
            on = _pick(same_line or [p for p in side.bench if p.position != "GK"], rng)
            if on is not None:
                side.on_pitch.remove(off)
                side.bench.remove(on)
                side.on_pitch.append(on)
                side.subs_used += 1
                return MatchEvent(
                    minute=minute,
                    type="substitution",
                    description=f"Substitution: {off.name} off, {on.name} on ({team.country})",
                    team_id=team.team_id,
                    player_id=on.player_id,
                    player_name=on.name,
                    subbed_out_player_id=off.player_id,
                    subbed_out_player_name=off.name,
                    subbed_in_player_id=on.player_id,
                    subbed_in_player_name=on.name,
                    is_extra_time=extra,
                )
        kind = "foul"

    if kind in {"yellow_card", "red_card"}:
        pool = [p for p in side.expendable() if kind == "yellow_card" or p.player_id not in side.booked]
        if kind == "red_card" and side.red_cards >= MAX_RED_CARDS_PER_TEAM:
            pool = []
        if kind == "yellow_card" and side.red_cards >= MAX_RED_CARDS_PER_TEAM:
            pool = [p for p in pool if p.player_id not in side.booked]
        player = rng.choice(pool) if pool else None
        if player is not None:
            second_yellow = kind == "yellow_card" and player.player_id in side.booked
            if kind == "red_card" or second_yellow:
                side.on_pitch.remove(player)
                side.red_cards += 1
                description = (
                    f"Second yellow! {player.name} ({team.country}) is sent off!"
                    if second_yellow
                    else f"Red card! {player.name} ({team.country}) is sent off!"
                )
                return MatchEvent(
                    minute=minute,
                    type="red_card",
                    description=description,
                    team_id=team.team_id,
                    player_id=player.player_id,
                    player_name=player.name,
                    is_extra_time=extra,
                )
            side.booked.add(player.player_id)
            return MatchEvent(
                minute=minute,
                type="yellow_card",
                description=f"Yellow card shown to {player.name} ({team.country})",
                team_id=team.team_id,
                player_id=player.player_id,
                player_name=player.name,
                is_extra_time=extra,
            )
        kind = "foul"

    if kind == "save":
        keeper = other.keeper()
        shooter = _pick(side.outfield({"AT", "MD"}), rng)
        if keeper is not None and shooter is not None:
            return MatchEvent(
                minute=minute,
                type="save",
                description=f"Great save by {keeper.name} ({other.team.country}) from {shooter.name}'s shot!",
                team_id=other.team.team_id,
                player_id=keeper.player_id,
                player_name=keeper.name,
                is_extra_time=extra,
            )
        kind = "shot_off_target"

    positions = {
        "shot_on_target": {"AT", "MD"},
        "shot_off_target": {"AT", "MD"},
        "corner_kick": {"AT", "MD", "DF"},
        "free_kick": {"AT", "MD"},
        "offside": {"AT"},
        "foul": {"MD", "DF"},
    }[kind]
    player = _pick(side.outfield(positions), rng)
    if player is None:
        return MatchEvent(
            minute=minute,
            type="free_kick",
            description=f"Free kick for {team.country}",
            team_id=team.team_id,
            is_extra_time=extra,
        )
    if kind == "shot_on_target":
        text = f"{player.name} ({team.country}) {rng.choice(['forces a save', 'hits the target'])}"
    elif kind == "shot_off_target":
        text = f"{player.name} ({team.country}) {rng.choice(['shot', 'header', 'volley'])} goes wide"
    elif kind == "corner_kick":
        text = f"Corner kick for {team.country}, {player.name} to take"
    elif kind == "free_kick":
        text = f"Free kick for {team.country}, {player.name} to take"
    elif kind == "offside":
        text = f"Offside! {player.name} ({team.country}) is caught offside."
    else:
        text = f"Foul by {player.name} ({team.country})"
    return MatchEvent(
        minute=minute,
        type=kind,
        description=text,
        team_id=team.team_id,
        player_id=player.player_id,
        player_name=player.name,
        is_extra_time=extra,
    )


def _goal_entries(team1: Team, team2: Team, result: MatchResult) -> list[tuple[MatchEvent, int]]:
    by_id = {team1.team_id: team1, team2.team_id: team2}
    out: list[tuple[MatchEvent, int]] = []
    for goal in result.goal_scorers:
        team = by_id[goal.team_id]
        conceding = team2 if team is team1 else team1
        if goal.is_own_goal:
            out.append(
                (
                    MatchEvent(
                        minute=float(goal.minute),
                        type="own_goal",
                        description=(
                            f"OWN GOAL! {goal.minute}' - {goal.player_name} ({conceding.country}) "
                            f"accidentally scores for {team.country}!"
                        ),
                        team_id=team.team_id,
                        player_id=goal.player_id,
                        player_name=goal.player_name,
                        is_extra_time=goal.is_extra_time,
                    ),
                    EVENT_RANK["own_goal"],
                )
            )
            continue
        if goal.is_penalty:
            out.append(
                (
                    MatchEvent(
                        minute=round(goal.minute - 0.4, 1),
                        type="penalty_kick",
                        description=f"Penalty awarded to {team.country}! {goal.player_name} to take",
                        team_id=team.team_id,
                        player_id=goal.player_id,
                        player_name=goal.player_name,
                        is_extra_time=goal.is_extra_time,
                    ),
                    FILLER_RANK,
                )
            )
        suffix = f" (assist: {goal.assist_player_name})" if goal.assist_player_name else ""
        spot = " from the spot" if goal.is_penalty else ""
        out.append(
            (
                MatchEvent(
                    minute=float(goal.minute),
                    type="goal",
                    description=f"GOAL! {goal.minute}' - {goal.player_name} scores{spot} for {team.country}{suffix}!",
                    team_id=team.team_id,
                    player_id=goal.player_id,
                    player_name=goal.player_name,
                    assist_player_name=goal.assist_player_name,
                    is_extra_time=goal.is_extra_time,
                ),
                EVENT_RANK["goal"],
            )
        )
    return out


def _skeleton(team1: Team, team2: Team, result: MatchResult) -> list[tuple[MatchEvent, int]]:
    versus = f"{team1.country} vs {team2.country}"
    out: list[tuple[MatchEvent, int]] = [
        (MatchEvent(minute=0.0, type="kickoff", description=f"Match kicks off! {versus}"), EVENT_RANK["kickoff"]),
        (MatchEvent(minute=45.0, type="halftime", description="Half Time"), EVENT_RANK["halftime"]),
    ]
    end = 120.0 if result.went_to_extra_time else 90.0
    if result.went_to_extra_time:
        out.append(
            (
                MatchEvent(minute=90.0, type="extratime", description="Match goes to Extra Time!"),
                EVENT_RANK["extratime"],
            )
        )
    out.append(
        (MatchEvent(minute=end, type="fulltime", description="Full Time", is_extra_time=end > 90), EVENT_RANK["fulltime"])
    )
    if result.went_to_penalties:
        out.append(
            (
                MatchEvent(minute=120.0, type="penalties", description="Match goes to Penalty Shootout!", is_extra_time=True),
                EVENT_RANK["penalties"],
            )
        )
        by_id = {team1.team_id: team1, team2.team_id: team2}
        shootout = result.penalty_shootout
        for kick in sorted(shootout.kicks if shootout else [], key=lambda k: k.order):
            country = by_id[kick.team_id].country if kick.team_id in by_id else "?"
            verdict = "scores" if kick.scored else "misses"
            out.append(
                (
                    MatchEvent(
                        minute=120.0,
                        type="penalty_kick",
                        description=f"Shootout kick {kick.order}: {kick.player_name} ({country}) {verdict}",
                        team_id=kick.team_id,
                        player_id=kick.player_id,
                        player_name=kick.player_name,
                        is_extra_time=True,
                    ),
                    SHOOTOUT_KICK_RANK,
                )
            )
    out.append(
        (
            MatchEvent(minute=end, type="final", description="Final Whistle!", is_extra_time=result.went_to_extra_time),
            EVENT_RANK["final"],
        )
    )
    return out


def _describe_markers(events: list[MatchEvent], team1: Team, team2: Team, result: MatchResult) -> None:
    for event in events:
        line = f"{team1.country} {event.score[0]} - {event.score[1]} {team2.country}"
        if event.type == "halftime":
            event.description = f"Half Time - {line}"
        elif event.type == "fulltime":
            event.description = f"Full Time - {line}"
        elif event.type == "final":
            text = f"Final Whistle! {line}"
            shootout = result.penalty_shootout
            if result.went_to_penalties and shootout is not None:
                text += f" ({shootout.team1_score}-{shootout.team2_score} on penalties)"
            event.description = text


def generate_match_events(
    team1: Team,
    team2: Team,
    result: MatchResult,
    rng: random.Random | None = None,
) -> list[MatchEvent]:
    rng = rng or random.Random()
    if {team1.team_id, team2.team_id} != {result.team1_id, result.team2_id}:
        raise InvalidInput("Teams do not match the result being expanded.")
    if team1.team_id != result.team1_id:
        team1, team2 = team2, team1
    check_result(result)

    entries: list[_Entry] = []
    seq = 0
    for event, rank in _skeleton(team1, team2, result) + _goal_entries(team1, team2, result):
        entries.append(_Entry(event, rank, seq))
        seq += 1

    total = 120 if result.went_to_extra_time else 90
    sides = (_build_side(team1, result), _build_side(team2, result))
    kinds = list(FILLER_EVENT_WEIGHTS)
    weights = list(FILLER_EVENT_WEIGHTS.values())
    count = round(FILLER_EVENTS_PER_90 * total / 90)
    for minute in _filler_minutes(count, total, result.went_to_extra_time, rng):
        kind = rng.choices(kinds, weights=weights, k=1)[0]
        idx = rng.randrange(2)
        event = _filler_event(kind, minute, sides[idx], sides[1 - idx], rng)
        entries.append(_Entry(event, FILLER_RANK, seq))
        seq += 1

    entries.sort(key=lambda e: e.key)
    events = [e.event for e in entries]
    score = [0, 0]
    for event in events:
        if event.is_goal:
            score[0 if event.team_id == team1.team_id else 1] += 1
        event.score = (score[0], score[1])
    _describe_markers(events, team1, team2, result)

    check_timeline(events, result, (team1, team2))
    logger.debug("Generated %d events for %s v %s", len(events), team1.country, team2.country)
    return events


def check_timeline(
    events: list[MatchEvent],
    result: MatchResult,
    teams: tuple[Team, Team] | None = None,
) -> None:
    """Raise InvalidInput unless ``events`` is a valid timeline for ``result``."""
    if not events:
        raise InvalidInput("Timeline is empty.")
    unknown = sorted({e.type for e in events if e.type not in EVENT_TYPES})
    if unknown:
        raise InvalidInput(f"Unknown event types in timeline: {', '.join(unknown)}.")
    if events[0].type != "kickoff" or events[-1].type != "final":
        raise InvalidInput("Timeline must open with kickoff and close with final.")
    for prev, cur in zip(events, events[1:]):
        if cur.minute < prev.minute:
            raise InvalidInput(f"Event at {cur.minute}' follows an event at {prev.minute}'.")
    counts: dict[str, int] = {}
    for event in events:
        counts[event.type] = counts.get(event.type, 0) + 1
    for marker in ("kickoff", "halftime", "fulltime", "final"):
        if counts.get(marker, 0) != 1:
            raise InvalidInput(f"Timeline must contain exactly one {marker} event.")
    if counts.get("extratime", 0) != (1 if result.went_to_extra_time else 0):
        raise InvalidInput("Extra time marker does not match the result.")
    if counts.get("penalties", 0) != (1 if result.went_to_penalties else 0):
        raise InvalidInput("Penalties marker does not match the result.")

    if result.went_to_extra_time:
        marker_at = next(i for i, e in enumerate(events) if e.type == "extratime")
        if any(e.minute > 90 for e in events[:marker_at]):
            raise InvalidInput("Extra-time events precede the extra time marker.")
    if result.went_to_penalties:
        types = [e.type for e in events]
        if types.index("penalties") < types.index("fulltime"):
            raise InvalidInput("Penalties marker must follow full time.")

    goals = [e for e in events if e.is_goal]
    expected = sorted((float(g.minute), g.team_id) for g in result.goal_scorers)
    if sorted((e.minute, e.team_id or "") for e in goals) != expected:
        raise InvalidInput("Goal events do not match the result's goal scorers.")
    if events[-1].score != (result.team1_score, result.team2_score):
        raise InvalidInput("Final score snapshot does not match the result.")

    if teams is not None:
        squads = {t.team_id: {p.player_id for p in t.players} for t in teams}
        for event in events:
            if event.type != "substitution":
                continue
            squad = squads.get(event.team_id or "", set())
            if event.subbed_in_player_id not in squad or event.subbed_out_player_id not in squad:
                raise InvalidInput(f"Substitution at {event.minute}' names a player outside the squad.")
