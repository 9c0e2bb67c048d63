"""Session state and controller for GM Studio.

SessionState is an immutable record. Every change goes through
reduce(state, event), a pure function, so tests can drive transitions
without touching the network. SessionController performs the side
effects (lichess, coach, file reads) and dispatches the resulting
events.

Loading flags reject a second request of the same kind while one is
running: the rejected call records an ActionInFlight error and makes
no request.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

import chess

from gm_studio.coach import CoachClient
from gm_studio.errors import (
    ActionInFlight,
    InvalidPgn,
    StudioError,
    ValidationError,
)
from gm_studio.lichess import LichessClient
from gm_studio.log import get_logger
from gm_studio.models import ChatMessage, FullAnalysis, GameSummary, InputMode, Move
from gm_studio.replay import (
    MoveOutcome,
    ReplayResult,
    apply_user_move,
    load_from_pgn,
    moves_to_pgn,
    navigate_to,
    read_pgn_file,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionState:
    """Everything the UI shows. Replaced wholesale on every event."""

    input_mode: InputMode = InputMode.MANUAL
    pgn: str = ""
    username: str = ""
    moves: tuple[Move, ...] = ()
    current_index: int = -1
    starting_fen: str = chess.STARTING_FEN
    fen: str = chess.STARTING_FEN
    analysis: FullAnalysis | None = None
    chat: tuple[ChatMessage, ...] = ()
    recent_games: tuple[GameSummary, ...] = ()
    show_game_selector: bool = False
    is_analyzing: bool = False
    is_searching_lichess: bool = False
    is_thinking: bool = False
    error: StudioError | None = None
    last_discard: tuple[str, ...] = ()

    @property
    def current_move(self) -> Move | None:
        if self.current_index < 0:
            return None
        return self.moves[self.current_index]

    @property
    def game_pgn(self) -> str:
        """PGN sent to the coach: the loaded text, else the played moves."""
        return self.pgn or moves_to_pgn(self.moves, self.starting_fen)

    @property
    def can_analyze(self) -> bool:
        return bool(self.pgn.strip() or self.moves)


def initial_state() -> SessionState:
    return SessionState()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModeSelected:
    mode: InputMode


@dataclass(frozen=True)
class UsernameChanged:
    username: str


@dataclass(frozen=True)
class PgnLoaded:
    pgn: str
    result: ReplayResult
    mode: InputMode | None = None


@dataclass(frozen=True)
class PgnRejected:
    error: StudioError


@dataclass(frozen=True)
class MoveApplied:
    outcome: MoveOutcome
    pgn: str


@dataclass(frozen=True)
class Navigated:
    index: int
    fen: str


@dataclass(frozen=True)
class SearchStarted:
    username: str


@dataclass(frozen=True)
class GamesListed:
    games: tuple[GameSummary, ...]


@dataclass(frozen=True)
class SearchErrored:
    error: StudioError


@dataclass(frozen=True)
class SelectorClosed:
    pass


@dataclass(frozen=True)
class FetchStarted:
    game_id: str


@dataclass(frozen=True)
class GameFetched:
    pgn: str
    result: ReplayResult


@dataclass(frozen=True)
class FetchErrored:
    error: StudioError


@dataclass(frozen=True)
class AnalysisStarted:
    pass


@dataclass(frozen=True)
class AnalysisSucceeded:
    analysis: FullAnalysis


@dataclass(frozen=True)
class AnalysisErrored:
    error: StudioError


@dataclass(frozen=True)
class ChatSent:
    message: ChatMessage


@dataclass(frozen=True)
class ChatReplied:
    message: ChatMessage


@dataclass(frozen=True)
class ChatErrored:
    error: StudioError


@dataclass(frozen=True)
class ErrorRaised:
    error: StudioError


@dataclass(frozen=True)
class ErrorDismissed:
    pass


@dataclass(frozen=True)
class Reset:
    pass


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def _load(state: SessionState, pgn: str, result: ReplayResult, **changes) -> SessionState:
    fen = result.moves[result.index].fen if result.index >= 0 else result.starting_fen
    return replace(
        state,
        pgn=pgn,
        moves=result.moves,
        current_index=result.index,
        starting_fen=result.starting_fen,
        fen=fen,
        error=None,
        last_discard=(),
        **changes,
    )


def _on_pgn_loaded(state: SessionState, event: PgnLoaded) -> SessionState:
    return _load(state, event.pgn, event.result, input_mode=event.mode or state.input_mode)


def _on_move_applied(state: SessionState, event: MoveApplied) -> SessionState:
    outcome = event.outcome
    return replace(
        state,
        pgn=event.pgn,
        moves=outcome.moves,
        current_index=outcome.index,
        fen=outcome.move.fen,
        error=None,
        last_discard=outcome.discarded,
    )


def _on_game_fetched(state: SessionState, event: GameFetched) -> SessionState:
    return _load(
        state, event.pgn, event.result,
        input_mode=InputMode.LICHESS,
        is_analyzing=False,
    )


_REDUCERS: dict[type, Callable] = {
    ModeSelected: lambda s, e: replace(s, input_mode=e.mode),
    UsernameChanged: lambda s, e: replace(s, username=e.username),
    PgnLoaded: _on_pgn_loaded,
    PgnRejected: lambda s, e: replace(s, error=e.error),
    MoveApplied: _on_move_applied,
    Navigated: lambda s, e: replace(s, current_index=e.index, fen=e.fen),
    SearchStarted: lambda s, e: replace(
        s, username=e.username, is_searching_lichess=True, error=None,
    ),
    GamesListed: lambda s, e: replace(
        s, recent_games=e.games, show_game_selector=True, is_searching_lichess=False,
    ),
    SearchErrored: lambda s, e: replace(s, is_searching_lichess=False, error=e.error),
    SelectorClosed: lambda s, e: replace(s, show_game_selector=False),
    FetchStarted: lambda s, e: replace(s, is_analyzing=True, show_game_selector=False),
    GameFetched: _on_game_fetched,
    FetchErrored: lambda s, e: replace(s, is_analyzing=False, error=e.error),
    AnalysisStarted: lambda s, e: replace(s, is_analyzing=True, error=None),
    AnalysisSucceeded: lambda s, e: replace(s, analysis=e.analysis, is_analyzing=False),
    AnalysisErrored: lambda s, e: replace(s, is_analyzing=False, error=e.error),
    ChatSent: lambda s, e: replace(s, chat=s.chat + (e.message,), is_thinking=True),
    ChatReplied: lambda s, e: replace(s, chat=s.chat + (e.message,), is_thinking=False),
    ChatErrored: lambda s, e: replace(s, is_thinking=False, error=e.error),
    ErrorRaised: lambda s, e: replace(s, error=e.error),
    ErrorDismissed: lambda s, e: replace(s, error=None),
    Reset: lambda s, e: initial_state(),
}


def reduce(state: SessionState, event: object) -> SessionState:
    """Return the state that follows event.

    Raises:
        TypeError: If event is not a known event type.
    """
    handler = _REDUCERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown session event: {type(event).__name__}")
    return handler(state, event)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class SessionController:
    """Wires user actions to the replay layer and the two API clients."""

    def __init__(
        self,
        lichess: LichessClient,
        coach: CoachClient,
        on_change: Callable[[SessionState], None] | None = None,
        state: SessionState | None = None,
    ) -> None:
        self._lichess = lichess
        self._coach = coach
        self._on_change = on_change
        self._state = state or initial_state()

    @property
    def state(self) -> SessionState:
        return self._state

    def dispatch(self, event: object) -> SessionState:
        self._state = reduce(self._state, event)
        if self._on_change is not None:
            self._on_change(self._state)
        return self._state

    def _busy(self, flag: bool) -> bool:
        """Record an ActionInFlight error if flag is set."""
        if flag:
            self.dispatch(ErrorRaised(ActionInFlight()))
        return flag

    # -- input ---------------------------------------------------------------

    def select_mode(self, mode: InputMode | str) -> None:
        self.dispatch(ModeSelected(InputMode(mode)))

    def set_username(self, username: str) -> None:
        self.dispatch(UsernameChanged(username))

    def submit_pgn(self, text: str, mode: InputMode | None = None) -> bool:
        """Load PGN text, replacing the move list.

        Blank text is ignored. On failure the error is set and the
        current game is left as it was.

        Returns:
            True if the PGN was loaded.
        """
        if not text.strip():
            return False
        try:
            result = load_from_pgn(text)
        except InvalidPgn as exc:
            logger.info("Rejected PGN: %s", exc)
            self.dispatch(PgnRejected(exc))
            return False
        self.dispatch(PgnLoaded(text, result, mode))
        return True

    def upload_file(self, path: str | Path) -> bool:
        """Load a local PGN file and switch to PGN input mode."""
        try:
            text = read_pgn_file(path)
        except InvalidPgn as exc:
            self.dispatch(PgnRejected(exc))
            return False
        if not text.strip():
            self.dispatch(PgnRejected(InvalidPgn()))
            return False
        return self.submit_pgn(text, mode=InputMode.PGN)

    # -- lichess -------------------------------------------------------------

    def search(self, username: str | None = None) -> bool:
        """List recent lichess games for username and open the selector.

        Returns:
            True if the list was fetched.
        """
        name = (self._state.username if username is None else username).strip()
        if not name:
            return False
        if self._busy(self._state.is_searching_lichess):
            return False

        self.dispatch(SearchStarted(name))
        try:
            games = self._lichess.list_recent_games(name)
        except StudioError as exc:
            self.dispatch(SearchErrored(exc))
            return False
        self.dispatch(GamesListed(tuple(games)))
        return True

    def close_selector(self) -> None:
        self.dispatch(SelectorClosed())

    def select_game(self, game_id: str) -> bool:
        """Fetch a lichess game's PGN and load it.

        Returns:
            True if the game was fetched and loaded.
        """
        if self._busy(self._state.is_analyzing):
            return False

        self.dispatch(FetchStarted(game_id))
        try:
            pgn = self._lichess.fetch_game_pgn(game_id)
            result = load_from_pgn(pgn)
        except StudioError as exc:
            self.dispatch(FetchErrored(exc))
            return False
        self.dispatch(GameFetched(pgn, result))
        return True

    def select_game_at(self, position: int) -> bool:
        """Select the game at a 1-based position in the recent games list."""
        games = self._state.recent_games
        if not 1 <= position <= len(games):
            return False
        return self.select_game(games[position - 1].id)

    # -- board ---------------------------------------------------------------

    def move(self, from_sq: str, to_sq: str, promotion: str = "q") -> bool:
        """Play a move from the displayed position.

        Illegal moves are ignored without an error.

        Returns:
            True if the move was played.
        """
        state = self._state
        outcome = apply_user_move(
            state.moves, state.current_index, from_sq, to_sq, promotion, state.starting_fen,
        )
        if outcome is None:
            return False
        if outcome.discarded:
            logger.info("Discarded continuation: %s", " ".join(outcome.discarded))
        pgn = moves_to_pgn(outcome.moves, state.starting_fen)
        self.dispatch(MoveApplied(outcome, pgn))
        return True

    def navigate(self, index: int) -> None:
        """Show the position after move index (-1 = starting position).

        Raises:
            IndexError: If index is out of range.
        """
        state = self._state
        board = navigate_to(state.moves, index, state.starting_fen)
        self.dispatch(Navigated(index, board.fen()))

    def first(self) -> None:
        self.navigate(-1)

    def previous(self) -> None:
        if self._state.current_index >= 0:
            self.navigate(self._state.current_index - 1)

    def next(self) -> None:
        if self._state.current_index < len(self._state.moves) - 1:
            self.navigate(self._state.current_index + 1)

    def last(self) -> None:
        self.navigate(len(self._state.moves) - 1)

    # -- coach ---------------------------------------------------------------

    def request_analysis(self) -> bool:
        """Ask the coach to analyze the loaded game.

        A previous analysis stays on screen until a new one succeeds.

        Returns:
            True if a new analysis was stored.
        """
        state = self._state
        if not state.can_analyze:
            self.dispatch(ErrorRaised(ValidationError()))
            return False
        if self._busy(state.is_analyzing):
            return False

        self.dispatch(AnalysisStarted())
        try:
            analysis = self._coach.analyze_game(state.game_pgn)
        except StudioError as exc:
            self.dispatch(AnalysisErrored(exc))
            return False
        self.dispatch(AnalysisSucceeded(analysis))
        return True

    def send_chat(self, text: str) -> bool:
        """Send a question to the coach.

        The question is added to the transcript before the call and kept
        even if the call fails.

        Returns:
            True if a reply was appended.
        """
        query = text.strip()
        if not query:
            return False
        state = self._state
        if self._busy(state.is_thinking):
            return False

        prior = list(state.chat)
        self.dispatch(ChatSent(ChatMessage(role="user", content=query)))
        try:
            reply = self._coach.chat_reply(
                query, state.game_pgn, state.fen, prior, state.analysis,
            )
        except StudioError as exc:
            self.dispatch(ChatErrored(exc))
            return False
        self.dispatch(ChatReplied(ChatMessage(role="assistant", content=reply)))
        return True

    # -- session -------------------------------------------------------------

    def dismiss_error(self) -> None:
        self.dispatch(ErrorDismissed())

    def reset(self) -> None:
        self.dispatch(Reset())

    def close(self) -> None:
        self._lichess.close()
