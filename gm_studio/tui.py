"""Terminal UI for GM Studio.

Renders the session with Rich (board, move list, coach analysis, chat)
and drives the SessionController from a simple command prompt. Use
--once to render a game and exit without the prompt.
"""

from __future__ import annotations

import argparse
import re
import sys
from typing import Callable

import chess
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gm_studio.coach import CoachClient
from gm_studio.config import load_settings
from gm_studio.errors import ErrorKind, StudioError
from gm_studio.lichess import LichessClient
from gm_studio.log import setup_logging
from gm_studio.models import InputMode, PhaseAnalysis
from gm_studio.session import SessionController, SessionState

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"

# Score -> style thresholds, checked top-down on the clamped score
_SCORE_STYLES = [
    (80, "green"),
    (60, "blue"),
    (40, "yellow"),
]

_MOVE_RE = re.compile(r"^([a-h][1-8])-?([a-h][1-8])=?([qrbnQRBN])?$")

HELP_TEXT = """\
[bold]Input[/bold]
  mode manual|pgn|lichess   switch input widget
  move e2e4 | move Nf3      play a move from the shown position
  pgn <movetext>            load PGN given on the line
  paste                     load multi-line PGN (end with a single '.')
  load <file.pgn>           load a PGN file
  search <username>         list recent lichess games
  select <n>                load game n from the list
  close                     hide the game list
[bold]Replay[/bold]
  first | prev | next | last | goto <ply>
[bold]Coach[/bold]
  analyze                   phase-by-phase evaluation
  ask <question>            chat with the coach
[bold]Session[/bold]
  flip | dismiss | reset | help | quit"""


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


def describe_error(error: StudioError) -> str:
    """User-facing text for an error kind.

    Analysis and chat failures get generic wording; lichess and input
    failures show their own message.
    """
    if error.kind in (ErrorKind.INVALID_ANALYSIS_FORMAT, ErrorKind.ANALYSIS_FAILED):
        return "Analysis failed. Please try again."
    if error.kind == ErrorKind.CHAT_FAILURE:
        return "Chat failed. Check your API key or connection."
    return error.message


def clamp_score(score: int | float) -> int:
    """Clamp a coach score into 0-100."""
    return int(max(0, min(100, score)))


def score_style(score: int | float) -> str:
    """Rich style for a phase score."""
    clamped = clamp_score(score)
    for threshold, style in _SCORE_STYLES:
        if clamped >= threshold:
            return style
    return "red"


def move_label(index: int) -> str:
    """Move number prefix for a ply index: 0 -> '1.', 1 -> '1...'."""
    return f"{index // 2 + 1}{'.' if index % 2 == 0 else '...'}"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_board(state: SessionState, flipped: bool = False) -> Panel:
    """Render the displayed position as a Rich Panel.

    Args:
        state: Current session state.
        flipped: Draw with black at the bottom.

    Returns:
        Panel containing the board.
    """
    board = chess.Board(state.fen)

    highlight_squares: set[int] = set()
    current = state.current_move
    if current is not None:
        highlight_squares.add(chess.parse_square(current.from_square))
        highlight_squares.add(chess.parse_square(current.to_square))

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 0))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(f"{rank + 1} ", style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)

            is_light = (rank + file) % 2 == 1
            bg = _LIGHT_SQ if is_light else _DARK_SQ
            if sq in highlight_squares:
                bg = _HIGHLIGHT

            if piece is not None:
                symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?")
                cell = Text(f" {symbol} ", style=f"black on {bg}")
            else:
                cell = Text("   ", style=f"on {bg}")
            row.append(cell)

        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in files:
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    title = "GM Studio"
    if board.is_game_over():
        title = f"Game Over: {board.result()}"
    position = "start" if state.current_index < 0 else f"ply {state.current_index + 1}/{len(state.moves)}"
    subtitle = f"{state.input_mode.value} | {position}"

    return Panel(table, title=title, subtitle=subtitle, border_style="blue")


def render_moves(state: SessionState) -> Panel:
    """Move history with the displayed move highlighted."""
    if not state.moves:
        body: Text | Table = Text("No moves played yet", style="dim italic")
    else:
        body = Table.grid(padding=(0, 2))
        body.add_column()
        body.add_column()
        for i in range(0, len(state.moves), 2):
            cells = []
            for j in (i, i + 1):
                if j >= len(state.moves):
                    cells.append(Text(""))
                    continue
                style = "bold reverse" if j == state.current_index else ""
                cells.append(Text(f"{move_label(j)} {state.moves[j].san}", style=style))
            body.add_row(*cells)

    parts: list = [body]
    if state.last_discard:
        parts.append(Text(f"\nDiscarded: {' '.join(state.last_discard)}", style="dim"))
    return Panel(Group(*parts), title="Move History", border_style="green")


def _render_phase(title: str, phase: PhaseAnalysis) -> Panel:
    style = score_style(phase.score)
    lines = [Text(f"{phase.score}%", style=f"bold {style}"), Text(phase.feedback)]
    for err in phase.errors:
        lines.append(Text(f"- {err}", style="dim"))
    return Panel(Group(*lines), title=title, border_style=style)


def render_analysis(state: SessionState) -> Panel:
    """Phase cards, overall advice and the study list."""
    if state.is_analyzing:
        return Panel(Text("Analyzing...", style="italic"), title="Game Analysis")
    analysis = state.analysis
    if analysis is None:
        return Panel(
            Text("Run analysis to see scores and strategic advice.", style="dim"),
            title="Game Analysis",
        )

    grid = Table.grid(expand=True, padding=(0, 1))
    grid.add_column(ratio=1)
    grid.add_column(ratio=1)
    cards = [_render_phase(name.capitalize(), phase) for name, phase in analysis.phases()]
    grid.add_row(cards[0], cards[1])
    grid.add_row(cards[2], cards[3])

    parts: list = [grid, Text(f'"{analysis.overall_advice}"', style="italic")]
    if analysis.referenced_books:
        parts.append(Text("Study List", style="bold"))
        for book in analysis.referenced_books:
            parts.append(Text(f"  {book}"))
    return Panel(Group(*parts), title="Game Analysis", border_style="magenta")


def render_chat(state: SessionState) -> Panel:
    """Chat transcript with the coach."""
    if not state.chat and not state.is_thinking:
        body: list = [Text("Ask me about the current position or game plan.", style="dim")]
    else:
        body = []
        for msg in state.chat:
            if msg.role == "user":
                body.append(Text(f"You: {msg.content}", style="bold cyan"))
            else:
                body.append(Text(f"Coach: {msg.content}"))
        if state.is_thinking:
            body.append(Text("Coach is thinking...", style="italic dim"))
    return Panel(Group(*body), title="Ask Coach", border_style="magenta")


def render_game_selector(state: SessionState) -> Panel:
    """Table of the user's recent lichess games."""
    table = Table(expand=True)
    table.add_column("#", justify="right")
    table.add_column("White")
    table.add_column("Black")
    table.add_column("Date")
    table.add_column("Status")
    table.add_column("Variant")
    for i, game in enumerate(state.recent_games, 1):
        table.add_row(
            str(i),
            game.white_name,
            game.black_name,
            game.created_at_datetime.strftime("%Y-%m-%d"),
            game.status,
            game.variant,
        )
    if not state.recent_games:
        table.add_row("", "No games found", "", "", "", "")
    return Panel(table, title=f"Recent games for {state.username}", border_style="blue")


def render_screen(state: SessionState, flipped: bool = False) -> Group:
    """Full screen: board and moves on the left, coach on the right."""
    left = Group(render_board(state, flipped), render_moves(state))
    right = Group(render_analysis(state), render_chat(state))

    grid = Table.grid(expand=True, padding=(0, 1))
    grid.add_column(ratio=2)
    grid.add_column(ratio=3)
    grid.add_row(left, right)

    parts: list = [grid]
    if state.show_game_selector:
        parts.append(render_game_selector(state))
    if state.error is not None:
        parts.append(Panel(Text(describe_error(state.error), style="red"), border_style="red"))
    return Group(*parts)


# ---------------------------------------------------------------------------
# Command loop
# ---------------------------------------------------------------------------


def _parse_move(state: SessionState, arg: str) -> tuple[str, str, str] | None:
    """Turn 'e2e4', 'e7e8q' or SAN like 'Nf3' into (from, to, promotion)."""
    arg = arg.replace(" ", "")
    match = _MOVE_RE.match(arg)
    if match:
        return match.group(1), match.group(2), (match.group(3) or "q").lower()

    board = chess.Board(state.fen)
    try:
        move = board.parse_san(arg)
    except ValueError:
        return None
    promotion = chess.piece_symbol(move.promotion) if move.promotion else "q"
    return chess.square_name(move.from_square), chess.square_name(move.to_square), promotion


def _read_multiline(input_fn: Callable[[str], str]) -> str:
    lines: list[str] = []
    while True:
        try:
            line = input_fn("")
        except EOFError:
            break
        if line.strip() == ".":
            break
        lines.append(line)
    return "\n".join(lines)


class StudioApp:
    """Command interpreter around a SessionController."""

    def __init__(
        self,
        controller: SessionController,
        console: Console,
        input_fn: Callable[[str], str] | None = None,
    ) -> None:
        self.controller = controller
        self.console = console
        self.input_fn = input_fn or console.input
        self.flipped = False

    def render(self) -> None:
        self.console.print(render_screen(self.controller.state, self.flipped))

    def run_command(self, line: str) -> bool:
        """Execute one command line.

        Returns:
            False when the user asked to quit.
        """
        line = line.strip()
        if not line:
            return True
        cmd, _, arg = line.partition(" ")
        cmd = cmd.lower()
        arg = arg.strip()
        ctl = self.controller

        if cmd in ("quit", "exit", "q"):
            return False
        if cmd == "help":
            self.console.print(HELP_TEXT)
        elif cmd == "mode":
            try:
                ctl.select_mode(arg.lower())
            except ValueError:
                self.console.print(f"[red]Unknown mode: {arg}[/red]")
        elif cmd == "move":
            parsed = _parse_move(ctl.state, arg)
            if parsed is None or not ctl.move(*parsed):
                self.console.print("[dim]Illegal move ignored.[/dim]")
        elif cmd == "pgn":
            ctl.submit_pgn(arg)
        elif cmd == "paste":
            self.console.print("[dim]Paste PGN, then a line with a single '.'[/dim]")
            ctl.submit_pgn(_read_multiline(self.input_fn))
        elif cmd == "load":
            ctl.upload_file(arg)
        elif cmd == "search":
            ctl.search(arg or None)
        elif cmd == "select":
            if arg.isdigit():
                if not ctl.select_game_at(int(arg)):
                    self.console.print(f"[red]No game #{arg} in the list.[/red]")
            elif arg:
                ctl.select_game(arg)
        elif cmd == "close":
            ctl.close_selector()
        elif cmd == "first":
            ctl.first()
        elif cmd == "prev":
            ctl.previous()
        elif cmd == "next":
            ctl.next()
        elif cmd == "last":
            ctl.last()
        elif cmd == "goto":
            if arg.isdigit() and int(arg) <= len(ctl.state.moves):
                ctl.navigate(int(arg) - 1)
            else:
                self.console.print(f"[red]No ply {arg}.[/red]")
        elif cmd == "analyze":
            with self.console.status("Coach is analyzing..."):
                ctl.request_analysis()
        elif cmd == "ask":
            with self.console.status("Coach is thinking..."):
                ctl.send_chat(arg)
        elif cmd == "flip":
            self.flipped = not self.flipped
        elif cmd == "dismiss":
            ctl.dismiss_error()
        elif cmd == "reset":
            ctl.reset()
        else:
            self.console.print(f"[red]Unknown command: {cmd}[/red] (type 'help')")
        return True

    def loop(self) -> None:
        self.render()
        while True:
            try:
                line = self.input_fn("[bold]gm>[/bold] ")
            except (EOFError, KeyboardInterrupt):
                break
            if not self.run_command(line):
                break
            self.render()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for gm-studio."""
    parser = argparse.ArgumentParser(
        description="GM Studio - replay chess games and ask an AI coach about them"
    )
    parser.add_argument("--pgn-file", help="PGN file to load on start")
    parser.add_argument("--username", help="lichess username to search on start")
    parser.add_argument("--log-level", help="Logging level (default from GM_STUDIO_LOG_LEVEL)")
    parser.add_argument(
        "--once", action="store_true",
        help="Render the loaded game and exit (no prompt)",
    )
    args = parser.parse_args(argv)

    settings = load_settings()
    setup_logging(args.log_level.upper() if args.log_level else settings.log_level)

    console = Console()
    controller = SessionController(
        LichessClient(settings.lichess_base_url, settings.lichess_timeout),
        CoachClient(settings.api_key, settings.model),
    )
    app = StudioApp(controller, console)

    try:
        if args.pgn_file:
            controller.upload_file(args.pgn_file)
        if args.username:
            controller.select_mode(InputMode.LICHESS)
            controller.search(args.username)

        if args.once:
            app.render()
            if controller.state.error is not None:
                sys.exit(1)
            return

        app.loop()
    finally:
        controller.close()


if __name__ == "__main__":
    main()
