"""Shared test fixtures.

No test touches the network: the lichess session and the genai client
are MagicMocks.

Fixtures:
    analysis_payload  - A complete, valid coach analysis dict.
    mock_lichess      - MagicMock standing in for LichessClient.
    mock_coach        - MagicMock standing in for CoachClient.
    controller        - SessionController wired to both mocks.
"""

from __future__ import annotations

import copy
from unittest.mock import MagicMock

import pytest

from gm_studio.coach import CoachClient
from gm_studio.lichess import LichessClient
from gm_studio.models import FullAnalysis, GameSummary, PhaseAnalysis
from gm_studio.session import SessionController

SHORT_PGN = "1. e4 e5 2. Nf3"

SCHOLARS_MATE_PGN = """[Event "Casual Game"]
[Site "https://lichess.org/abcd1234"]
[White "alice"]
[Black "bob"]
[Result "1-0"]

1. e4 e5 2. Bc4 Nc6 3. Qh5 Nf6 4. Qxf7# 1-0
"""

CRAZYHOUSE_PGN = """[Variant "Crazyhouse"]

1. e4 d5 2. exd5 Qxd5 3. Nc3 Qa5 4. P@d5 *
"""

_ANALYSIS_PAYLOAD = {
    "opening": {"score": 70, "feedback": "Solid development.", "errors": []},
    "middlegame": {"score": 60, "feedback": "Lost the thread.", "errors": ["12...h6?"]},
    "tactics": {"score": 50, "feedback": "Missed a fork.", "errors": ["15. Nd5"]},
    "endgame": {"score": 40, "feedback": "Passive king.", "errors": []},
    "overallAdvice": "Activate your king earlier.",
    "referencedBooks": ["Dvoretsky's Endgame Manual"],
}


def make_analysis(score: int = 70) -> FullAnalysis:
    """Build a FullAnalysis with every phase at the given score."""
    phase = PhaseAnalysis(score=score, feedback="ok", errors=[])
    return FullAnalysis(
        opening=phase,
        middlegame=phase,
        tactics=phase,
        endgame=phase,
        overall_advice="Keep going.",
        referenced_books=["My System"],
    )


def make_summary(game_id: str = "abcd1234") -> GameSummary:
    return GameSummary(
        id=game_id,
        white_name="alice",
        black_name="bob",
        created_at=1700000000000,
        status="mate",
        variant="standard",
    )


@pytest.fixture()
def analysis_payload() -> dict:
    return copy.deepcopy(_ANALYSIS_PAYLOAD)


@pytest.fixture()
def mock_lichess():
    mock = MagicMock(spec=LichessClient)
    mock.list_recent_games.return_value = [make_summary()]
    mock.fetch_game_pgn.return_value = SCHOLARS_MATE_PGN
    return mock


@pytest.fixture()
def mock_coach():
    mock = MagicMock(spec=CoachClient)
    mock.analyze_game.return_value = make_analysis()
    mock.chat_reply.return_value = "Develop your knights before bishops."
    return mock


@pytest.fixture()
def controller(mock_lichess, mock_coach):
    return SessionController(mock_lichess, mock_coach)
