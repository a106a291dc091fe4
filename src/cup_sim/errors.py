from __future__ import annotations


class CupSimError(Exception):
    """Base class for tournament simulation errors."""


class InvalidInput(CupSimError, ValueError):
    """Malformed squad, unknown id or unrecognized position."""


class CompositionInvalid(CupSimError):
    """Squad or starting eleven breaks the lineup rules; ``errors`` lists every violation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid team composition.")


class NotReady(CupSimError):
    """A round cannot advance while any of its matches is unfinished."""


class BracketInconsistency(CupSimError):
    """Slot and match mapping disagree; needs administrative correction."""


class UnknownEntity(InvalidInput):
    """No team or match with the requested id."""
