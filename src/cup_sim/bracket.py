from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any

from .config import TOURNAMENT_SIZE
from .engine import check_result
from .errors import BracketInconsistency, InvalidInput, NotReady
from .models import FINAL, QUARTER_FINAL, ROUND_LABELS, ROUNDS, SEMI_FINAL, Match

logger = logging.getLogger(__name__)

REGISTRATION = "registration"
QUARTER_FINALS = "quarterFinals"
SEMI_FINALS = "semiFinals"
FINAL_STAGE = "final"
COMPLETED = "completed"
STAGES: tuple[str, ...] = (REGISTRATION, QUARTER_FINALS, SEMI_FINALS, FINAL_STAGE, COMPLETED)
STAGE_FOR_ROUND: dict[str, str] = {QUARTER_FINAL: QUARTER_FINALS, SEMI_FINAL: SEMI_FINALS, FINAL: FINAL_STAGE}


def bracket_position(round_name: str, index: int = 0) -> str:
    if round_name == QUARTER_FINAL:
        return f"QF{index + 1}"
    if round_name == SEMI_FINAL:
        return f"SF{index + 1}"
    if round_name == FINAL:
        return "FINAL"
    raise InvalidInput(f"Unknown round '{round_name}'.")


def next_round(round_name: str) -> str | None:
    if round_name not in ROUNDS:
        raise InvalidInput(f"Unknown round '{round_name}'.")
    idx = ROUNDS.index(round_name)
    return ROUNDS[idx + 1] if idx + 1 < len(ROUNDS) else None


def feeder_target(round_name: str, index: int) -> tuple[str, int, int] | None:
    """Next-round slot fed by slot ``index``: (round, slot index, side 0/1)."""
    following = next_round(round_name)
    if following is None:
        return None
    return following, index // 2, index % 2


@dataclass(slots=True)
class BracketSlot:
    team1_id: str | None = None
    team2_id: str | None = None
    match_id: str | None = None
    winner_id: str | None = None

    @property
    def teams_known(self) -> bool:
        return bool(self.team1_id) and bool(self.team2_id)

    def side(self, side: int) -> str | None:
        return self.team1_id if side == 0 else self.team2_id

    def set_side(self, side: int, team_id: str | None) -> None:
        if side == 0:
            self.team1_id = team_id
        else:
            self.team2_id = team_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "team1Id": self.team1_id,
            "team2Id": self.team2_id,
            "matchId": self.match_id,
            "winnerId": self.winner_id,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> BracketSlot:
        return cls(
            team1_id=raw.get("team1Id") or None,
            team2_id=raw.get("team2Id") or None,
            match_id=raw.get("matchId") or None,
            winner_id=raw.get("winnerId") or None,
        )


@dataclass(slots=True)
class Bracket:
    quarter_finals: list[BracketSlot] = field(default_factory=lambda: [BracketSlot() for _ in range(4)])
    semi_finals: list[BracketSlot] = field(default_factory=lambda: [BracketSlot() for _ in range(2)])
    final: list[BracketSlot] = field(default_factory=lambda: [BracketSlot()])
    stage: str = REGISTRATION

    @classmethod
    def draw(cls, team_ids: list[str], rng: random.Random | None = None) -> Bracket:
        rng = rng or random.Random()
        if len(team_ids) != TOURNAMENT_SIZE:
            raise InvalidInput(f"Tournament must have exactly {TOURNAMENT_SIZE} teams (found {len(team_ids)}).")
        if len(set(team_ids)) != len(team_ids):
            raise InvalidInput("Tournament team ids must be unique.")
        shuffled = list(team_ids)
        rng.shuffle(shuffled)
        bracket = cls(stage=QUARTER_FINALS)
        for idx, slot in enumerate(bracket.quarter_finals):
            slot.team1_id = shuffled[idx * 2]
            slot.team2_id = shuffled[idx * 2 + 1]
        logger.debug("Drew quarter-finals: %s", [(s.team1_id, s.team2_id) for s in bracket.quarter_finals])
        return bracket

    def slots(self, round_name: str) -> list[BracketSlot]:
        if round_name == QUARTER_FINAL:
            return self.quarter_finals
        if round_name == SEMI_FINAL:
            return self.semi_finals
        if round_name == FINAL:
            return self.final
        raise InvalidInput(f"Unknown round '{round_name}'.")

    @property
    def current_round(self) -> str | None:
        for round_name, stage in STAGE_FOR_ROUND.items():
            if stage == self.stage:
                return round_name
        return None

    @property
    def champion_id(self) -> str | None:
        return self.final[0].winner_id if self.stage == COMPLETED else None

    @property
    def runner_up_id(self) -> str | None:
        slot = self.final[0]
        if self.champion_id is None:
            return None
        return slot.team2_id if slot.winner_id == slot.team1_id else slot.team1_id

    def locate(self, match_id: str) -> tuple[str, int] | None:
        for round_name in ROUNDS:
            for idx, slot in enumerate(self.slots(round_name)):
                if slot.match_id == match_id:
                    return round_name, idx
        return None

    def attach_match(self, round_name: str, index: int, match: Match) -> None:
        slot = self.slots(round_name)[index]
        if match.round != round_name or match.bracket_position != bracket_position(round_name, index):
            raise BracketInconsistency(
                f"Match {match.match_id} is not the {ROUND_LABELS[round_name]} at {bracket_position(round_name, index)}."
            )
        if slot.match_id and slot.match_id != match.match_id:
            raise BracketInconsistency(f"{bracket_position(round_name, index)} already holds another match.")
        if (match.team1_id, match.team2_id) != (slot.team1_id, slot.team2_id):
            raise BracketInconsistency(f"Match {match.match_id} teams differ from {bracket_position(round_name, index)}.")
        slot.match_id = match.match_id

    def advance_round(self, round_name: str, matches: list[Match]) -> list[BracketSlot]:
        """Write every winner of ``round_name`` into its next-round slot, or nothing at all."""
        slots = self.slots(round_name)
        if self.stage == REGISTRATION:
            raise NotReady("The draw has not been made yet.")
        if STAGES.index(STAGE_FOR_ROUND[round_name]) > STAGES.index(self.stage):
            raise NotReady(f"{ROUND_LABELS[round_name]} cannot advance before earlier rounds.")

        by_id = {m.match_id: m for m in matches}
        for match in matches:
            located = self.locate(match.match_id)
            if located is None or located[0] != round_name or match.round != round_name:
                raise BracketInconsistency(f"Match {match.match_id} is not a {ROUND_LABELS[round_name]} of this bracket.")

        winners: list[str] = []
        for idx, slot in enumerate(slots):
            label = bracket_position(round_name, idx)
            match = by_id.get(slot.match_id or "")
            if match is None:
                raise NotReady(f"{label} has no match yet.")
            if not match.is_completed:
                raise NotReady(f"{label} is not completed.")
            if (match.team1_id, match.team2_id) != (slot.team1_id, slot.team2_id):
                raise BracketInconsistency(f"{label} teams differ from its match.")
            if match.result is None:
                raise BracketInconsistency(f"{label} is completed but has no result.")
            if (match.result.team1_id, match.result.team2_id) != (slot.team1_id, slot.team2_id):
                raise BracketInconsistency(f"{label} result belongs to a different fixture.")
            try:
                check_result(match.result)
            except InvalidInput as exc:
                raise BracketInconsistency(f"{label} result is inconsistent: {exc}") from exc
            winner = match.winner_id
            if winner not in (slot.team1_id, slot.team2_id):
                raise BracketInconsistency(f"{label} winner is not one of its teams.")
            if slot.winner_id and slot.winner_id != winner:
                raise BracketInconsistency(f"{label} already records a different winner.")
            target = feeder_target(round_name, idx)
            if target is not None:
                next_slot = self.slots(target[0])[target[1]]
                current = next_slot.side(target[2])
                if current and current != winner:
                    raise BracketInconsistency(
                        f"{bracket_position(target[0], target[1])} already holds a different team from {label}."
                    )
            winners.append(winner)

        for idx, (slot, winner) in enumerate(zip(slots, winners)):
            slot.winner_id = winner
            target = feeder_target(round_name, idx)
            if target is not None:
                self.slots(target[0])[target[1]].set_side(target[2], winner)

        following = next_round(round_name)
        new_stage = STAGE_FOR_ROUND[following] if following else COMPLETED
        if STAGES.index(new_stage) > STAGES.index(self.stage):
            self.stage = new_stage
            logger.info("Bracket advanced to %s", new_stage)
        return self.slots(following) if following else []

    def invalidate(self, match_id: str) -> list[str]:
        """Clear a slot's winner and everything it fed; returns the downstream match ids."""
        located = self.locate(match_id)
        if located is None:
            raise InvalidInput(f"Match {match_id} is not part of this bracket.")
        round_name, idx = located
        affected: list[str] = []
        self._clear_from(round_name, idx, affected)
        stage = STAGE_FOR_ROUND[round_name]
        if STAGES.index(stage) < STAGES.index(self.stage):
            self.stage = stage
        return affected

    def _clear_from(self, round_name: str, idx: int, affected: list[str]) -> None:
        slot = self.slots(round_name)[idx]
        slot.winner_id = None
        target = feeder_target(round_name, idx)
        if target is None:
            return
        next_slot = self.slots(target[0])[target[1]]
        if next_slot.side(target[2]) is None:
            return
        next_slot.set_side(target[2], None)
        if next_slot.match_id:
            affected.append(next_slot.match_id)
        self._clear_from(target[0], target[1], affected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "quarterFinals": [s.to_dict() for s in self.quarter_finals],
            "semiFinals": [s.to_dict() for s in self.semi_finals],
            "final": self.final[0].to_dict(),
            "championId": self.champion_id,
            "runnerUpId": self.runner_up_id,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Bracket:
        def _slots(payload: Any, size: int) -> list[BracketSlot]:
            rows = [BracketSlot.from_dict(r) for r in payload if isinstance(r, dict)] if isinstance(payload, list) else []
            rows = rows[:size]
            return rows + [BracketSlot() for _ in range(size - len(rows))]

        final_raw = raw.get("final")
        stage = str(raw.get("stage", REGISTRATION))
        return cls(
            quarter_finals=_slots(raw.get("quarterFinals"), 4),
            semi_finals=_slots(raw.get("semiFinals"), 2),
            final=_slots([final_raw] if isinstance(final_raw, dict) else [], 1),
            stage=stage if stage in STAGES else REGISTRATION,
        )
