"""Shared data models for GM Studio.

Move, FullAnalysis, GameSummary and ChatMessage are the shared contract
between the replay layer, the two API clients, the session controller
and the terminal UI.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

PHASES = ("opening", "middlegame", "tactics", "endgame")


class InputMode(str, enum.Enum):
    """Which input widget the UI shows. Does not gate any action."""

    MANUAL = "manual"
    PGN = "pgn"
    LICHESS = "lichess"


@dataclass(frozen=True)
class Move:
    """A single applied move and the position it leads to."""

    from_square: str
    to_square: str
    san: str
    fen: str


@dataclass(frozen=True)
class PhaseAnalysis:
    """Coach evaluation of one game phase."""

    score: int
    feedback: str
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FullAnalysis:
    """The four phase evaluations plus overall advice and a study list."""

    opening: PhaseAnalysis
    middlegame: PhaseAnalysis
    tactics: PhaseAnalysis
    endgame: PhaseAnalysis
    overall_advice: str
    referenced_books: list[str] = field(default_factory=list)

    def phases(self) -> list[tuple[str, PhaseAnalysis]]:
        """Return (phase name, analysis) pairs in fixed phase order."""
        return [(name, getattr(self, name)) for name in PHASES]

    def score_summary(self) -> str:
        """Render the phase scores as 'opening/middlegame/tactics/endgame'."""
        return "/".join(str(phase.score) for _, phase in self.phases())


@dataclass(frozen=True)
class GameSummary:
    """One entry of a lichess user's recent games list."""

    id: str
    white_name: str
    black_name: str
    created_at: int
    status: str
    variant: str

    @property
    def created_at_datetime(self) -> datetime:
        """Creation time as an aware UTC datetime (lichess sends epoch millis)."""
        return datetime.fromtimestamp(self.created_at / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str
