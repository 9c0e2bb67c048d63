"""Replay state for a linear move list.

All functions are pure: they take the current move list (and starting
FEN) and return new values, leaving their inputs untouched. python-chess
does all rules work (SAN, legality, FEN, PGN).
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path

import chess
import chess.pgn

from gm_studio.errors import InvalidPgn
from gm_studio.models import Move

_PROMOTION_PIECES = {
    "q": chess.QUEEN, "queen": chess.QUEEN,
    "r": chess.ROOK, "rook": chess.ROOK,
    "b": chess.BISHOP, "bishop": chess.BISHOP,
    "n": chess.KNIGHT, "knight": chess.KNIGHT,
}


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of loading a PGN: the full line, shown at its last move."""

    moves: tuple[Move, ...]
    index: int
    starting_fen: str = chess.STARTING_FEN


@dataclass(frozen=True)
class MoveOutcome:
    """Outcome of a legal user move.

    discarded holds the SAN of the continuation that was cut off when the
    move was made from an earlier position; empty when nothing was lost.
    """

    moves: tuple[Move, ...]
    index: int
    move: Move
    discarded: tuple[str, ...] = field(default_factory=tuple)


def _record(board: chess.Board, move: chess.Move) -> Move:
    """Push move onto board and return the Move record."""
    san = board.san(move)
    board.push(move)
    return Move(
        from_square=chess.square_name(move.from_square),
        to_square=chess.square_name(move.to_square),
        san=san,
        fen=board.fen(),
    )


def load_from_pgn(pgn: str) -> ReplayResult:
    """Replay a PGN's main line from its starting position.

    Args:
        pgn: PGN text (headers optional).

    Returns:
        ReplayResult with index at the last move (-1 for a set-up
        position with no moves).

    Raises:
        InvalidPgn: If no game can be read, a move is illegal/unparsable,
            or the text holds no moves and no FEN set-up. Variant games
            (Crazyhouse, Chess960, ...) are rejected as well.
    """
    try:
        game = chess.pgn.read_game(io.StringIO(pgn))
    except (ValueError, chess.InvalidMoveError, chess.IllegalMoveError) as exc:
        raise InvalidPgn() from exc

    if game is None or game.errors:
        raise InvalidPgn()

    try:
        board = game.board()
        if type(board) is not chess.Board or board.chess960:
            raise InvalidPgn("Only standard chess games are supported.")
        starting_fen = board.fen()
        moves = [_record(board, move) for move in game.mainline_moves()]
    except (ValueError, AssertionError) as exc:
        raise InvalidPgn() from exc

    # The reader skips tokens it cannot match, so free text parses as an
    # empty game. Only a set-up position may legitimately have no moves.
    if not moves and "FEN" not in game.headers:
        raise InvalidPgn()

    return ReplayResult(moves=tuple(moves), index=len(moves) - 1, starting_fen=starting_fen)


def navigate_to(
    moves: tuple[Move, ...] | list[Move],
    index: int,
    starting_fen: str = chess.STARTING_FEN,
) -> chess.Board:
    """Rebuild the board after moves [0..index].

    Args:
        moves: Current move list.
        index: -1 for the starting position, else a move index.
        starting_fen: Position the move list starts from.

    Returns:
        A new board with the replayed move stack.

    Raises:
        IndexError: If index is outside [-1, len(moves) - 1].
    """
    if index < -1 or index >= len(moves):
        raise IndexError(f"Move index {index} out of range for {len(moves)} moves")

    board = chess.Board(starting_fen)
    for move in moves[: index + 1]:
        board.push_san(move.san)
    return board


def _build_move(board: chess.Board, from_sq: str, to_sq: str, promotion: str) -> chess.Move | None:
    """Build a chess.Move from square names, or None if they don't parse."""
    try:
        from_square = chess.parse_square(from_sq.strip().lower())
        to_square = chess.parse_square(to_sq.strip().lower())
    except ValueError:
        return None

    promotion_piece = None
    piece = board.piece_at(from_square)
    if piece is not None and piece.piece_type == chess.PAWN:
        if chess.square_rank(to_square) in (0, 7):
            promotion_piece = _PROMOTION_PIECES.get(promotion.strip().lower(), chess.QUEEN)

    return chess.Move(from_square, to_square, promotion=promotion_piece)


def apply_user_move(
    moves: tuple[Move, ...] | list[Move],
    index: int,
    from_sq: str,
    to_sq: str,
    promotion: str = "q",
    starting_fen: str = chess.STARTING_FEN,
) -> MoveOutcome | None:
    """Play a move from the displayed position.

    Moves after index are dropped (branch discard) and reported in
    MoveOutcome.discarded.

    Args:
        moves: Current move list.
        index: Currently displayed move index.
        from_sq: Origin square name, e.g. 'e2'.
        to_sq: Destination square name, e.g. 'e4'.
        promotion: Piece a pawn promotes to (letter or name). Default queen.
        starting_fen: Position the move list starts from.

    Returns:
        MoveOutcome, or None when the move is illegal or malformed.
    """
    board = navigate_to(moves, index, starting_fen)
    move = _build_move(board, from_sq, to_sq, promotion)
    if move is None or move not in board.legal_moves:
        return None

    record = _record(board, move)
    kept = tuple(moves[: index + 1])
    discarded = tuple(m.san for m in moves[index + 1:])
    return MoveOutcome(
        moves=kept + (record,),
        index=index + 1,
        move=record,
        discarded=discarded,
    )


def moves_to_pgn(
    moves: tuple[Move, ...] | list[Move],
    starting_fen: str = chess.STARTING_FEN,
) -> str:
    """Export a linear move list as PGN movetext.

    E.g. [e4, e5, Nf3] -> '1. e4 e5 2. Nf3 *'

    Args:
        moves: Move list to export.
        starting_fen: Position the moves start from; emitted as a FEN
            header when it is not the standard start.

    Returns:
        PGN text. Empty string for an empty list from the standard start.
    """
    if not moves and starting_fen == chess.STARTING_FEN:
        return ""

    board = chess.Board(starting_fen)
    game = chess.pgn.Game()
    custom_start = starting_fen != chess.STARTING_FEN
    if custom_start:
        game.setup(board)

    node: chess.pgn.GameNode = game
    for m in moves:
        move = board.parse_san(m.san)
        node = node.add_variation(move)
        board.push(move)
    if board.is_game_over():
        game.headers["Result"] = board.result()

    exporter = chess.pgn.StringExporter(headers=custom_start, variations=False, comments=False)
    return game.accept(exporter).strip()


def read_pgn_file(path: str | Path) -> str:
    """Read a local PGN file in full.

    Raises:
        InvalidPgn: If the file cannot be read as text.
    """
    try:
        return Path(path).expanduser().read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidPgn(f"Could not read PGN file: {path}") from exc
