from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .models import PLAYED, SIMULATED, MatchEvent, Player, Team

logger = logging.getLogger(__name__)

KEY_MOMENT_WORDS = ("goal", "card", "penalty", "red")
MAX_KEY_MOMENTS = 10


@dataclass(slots=True)
class CommentaryContext:
    team1: Team
    team2: Team
    round_label: str = ""

    def team(self, team_id: str | None) -> Team | None:
        if team_id == self.team1.team_id:
            return self.team1
        if team_id == self.team2.team_id:
            return self.team2
        return None

    def player(self, event: MatchEvent) -> Player | None:
        for team in (self.team1, self.team2):
            found = team.player_by_id(event.player_id) if event.player_id else None
            if found is not None:
                return found
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "round": self.round_label,
            "team1": {"country": self.team1.country, "rating": round(self.team1.overall_rating, 1), **self.team1.stats.to_dict()},
            "team2": {"country": self.team2.country, "rating": round(self.team2.overall_rating, 1), **self.team2.stats.to_dict()},
        }


CommentaryProvider = Callable[[list[MatchEvent], CommentaryContext], list[str]]


@dataclass(slots=True)
class CommentaryOutcome:
    simulation_type: str
    commentary: list[str] = field(default_factory=list)
    key_moments: list[str] = field(default_factory=list)


def win_probability(
    team1_rating: float,
    team2_rating: float,
    score: tuple[int, int],
    minute: float,
) -> tuple[float, float]:
    """Rough in-play win chance for each side, in percent, clamped to 10..90."""
    score_diff = score[0] - score[1]
    team1 = 50 + (team1_rating - team2_rating) * 0.5 + score_diff * 10
    if 90 - minute < 15 and score_diff != 0:
        team1 += 5 if score_diff > 0 else -5
    team1 = max(10.0, min(90.0, team1))
    return team1, 100.0 - team1


def _player_note(player: Player | None) -> str:
    if player is None:
        return ""
    notes: list[str] = []
    if player.goals > 0:
        notes.append(f"{player.goals} goal{'s' if player.goals > 1 else ''} this tournament")
    if player.appearances > 0:
        notes.append(f"{player.appearances} appearance{'s' if player.appearances > 1 else ''}")
    best = player.best_position
    if player.rating(best) > 70:
        notes.append(f"strong {best} with rating {player.rating(best)}")
    return f", who has {', '.join(notes)}" if notes else ""


def event_commentary(event: MatchEvent, context: CommentaryContext) -> str:
    minute = int(event.minute)
    name1 = context.team1.country
    name2 = context.team2.country
    team = context.team(event.team_id)
    team_name = team.country if team else ""
    other_name = name2 if team is context.team1 else name1
    who = event.player_name or "Player"
    score = f"{event.score[0]} - {event.score[1]}"

    if event.type == "kickoff":
        stage = f" in the {context.round_label}" if context.round_label else ""
        return f"{minute}' - We're underway! {name1} take on {name2}{stage}."
    if event.type == "goal":
        p1, p2 = win_probability(context.team1.overall_rating, context.team2.overall_rating, event.score, event.minute)
        assist = f" Assisted by {event.assist_player_name}." if event.assist_player_name else ""
        return (
            f"{minute}' - GOAL! {who}{_player_note(context.player(event))} scores for {team_name}! {score}.{assist}"
            f" Win chances now {name1} {p1:.0f}% / {name2} {p2:.0f}%."
        )
    if event.type == "own_goal":
        return f"{minute}' - Own goal! {who} turns it into his own net. {team_name} benefit! {score}."
    if event.type == "shot_on_target":
        return f"{minute}' - {who} shoots on target!"
    if event.type == "shot_off_target":
        return f"{minute}' - {who} shoots wide."
    if event.type == "save":
        return f"{minute}' - Great save from {who}!"
    if event.type == "corner_kick":
        return f"{minute}' - Corner kick for {team_name}. Dangerous situation!"
    if event.type == "free_kick":
        return f"{minute}' - Free kick for {team_name}. {who} to take."
    if event.type == "penalty_kick":
        if event.minute >= 120 and event.is_extra_time and "Shootout" in event.description:
            return f"{minute}' - {event.description}."
        return f"{minute}' - PENALTY! {team_name} awarded. {who} steps up!"
    if event.type == "yellow_card":
        return f"{minute}' - Yellow card to {who}."
    if event.type == "red_card":
        return f"{minute}' - RED CARD! {who} sent off! {team_name} a man down against {other_name}!"
    if event.type == "substitution":
        return (
            f"{minute}' - Substitution for {team_name}: {event.subbed_out_player_name or 'Player'} off, "
            f"{event.subbed_in_player_name or 'Player'} on."
        )
    if event.type == "foul":
        return f"{minute}' - Foul by {who}."
    if event.type == "offside":
        return f"{minute}' - Offside! {who} caught."
    if event.type == "halftime":
        return f"{minute}' - Half time! {score}."
    if event.type == "fulltime":
        return f"{minute}' - Full time! {score}."
    if event.type == "extratime":
        return f"{minute}' - Level after ninety minutes, extra time begins! {score}."
    if event.type == "penalties":
        return f"{minute}' - Penalty shootout! {name1} vs {name2}."
    if event.type == "final":
        return f"{minute}' - Match ends! {event.description}"
    return f"{minute}' - {event.description}"


def template_commentary(events: list[MatchEvent], context: CommentaryContext) -> list[str]:
    return [event_commentary(event, context) for event in events]


def key_moments(lines: list[str], limit: int = MAX_KEY_MOMENTS) -> list[str]:
    picked = [line for line in lines if any(word in line.lower() for word in KEY_MOMENT_WORDS)]
    return picked[:limit]


def generate_commentary(
    events: list[MatchEvent],
    context: CommentaryContext,
    provider: CommentaryProvider | None = None,
) -> CommentaryOutcome:
    provider = provider or template_commentary
    try:
        lines = provider(list(events), context)
        if not isinstance(lines, list) or not all(isinstance(line, str) for line in lines):
            raise TypeError("commentary provider must return a list of strings")
    except Exception as exc:  # provider errors never fail the match
        logger.warning(
            "Commentary failed for %s v %s (%s); falling back to simulated mode",
            context.team1.country,
            context.team2.country,
            exc,
        )
        return CommentaryOutcome(simulation_type=SIMULATED)
    return CommentaryOutcome(simulation_type=PLAYED, commentary=lines, key_moments=key_moments(lines))
