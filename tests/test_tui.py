"""Tests for terminal rendering and the command interpreter."""

from __future__ import annotations

from dataclasses import replace

from rich.console import Console

from gm_studio.errors import (
    ChatFailure,
    ErrorKind,
    InvalidAnalysisFormat,
    NotFoundOrPrivate,
    StudioError,
    ValidationError,
)
from gm_studio.models import InputMode
from gm_studio.session import SessionController, initial_state
from gm_studio.tui import (
    StudioApp,
    clamp_score,
    describe_error,
    move_label,
    render_screen,
    score_style,
)

from conftest import SHORT_PGN, make_analysis, make_summary


def _console() -> Console:
    return Console(record=True, width=140, color_system=None)


def _render_text(state) -> str:
    console = _console()
    console.print(render_screen(state))
    return console.export_text()


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


class TestPresentation:

    def test_describe_error_generic_for_coach(self):
        assert describe_error(InvalidAnalysisFormat()) == "Analysis failed. Please try again."
        assert describe_error(ChatFailure()) == "Chat failed. Check your API key or connection."

    def test_describe_error_verbatim_otherwise(self):
        assert describe_error(NotFoundOrPrivate()) == "Lichess user not found or private."
        assert describe_error(ValidationError()) == "Please input some moves or upload a game first."

    def test_base_error_has_neutral_kind(self):
        error = StudioError("Unexpected failure.")
        assert error.kind == ErrorKind.UNKNOWN
        assert describe_error(error) == "Unexpected failure."

    def test_clamp_score(self):
        assert clamp_score(150) == 100
        assert clamp_score(-10) == 0
        assert clamp_score(73) == 73

    def test_score_style_thresholds(self):
        assert score_style(80) == "green"
        assert score_style(79) == "blue"
        assert score_style(60) == "blue"
        assert score_style(40) == "yellow"
        assert score_style(39) == "red"
        assert score_style(250) == "green"
        assert score_style(-5) == "red"

    def test_move_label(self):
        assert move_label(0) == "1."
        assert move_label(1) == "1..."
        assert move_label(4) == "3."


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRenderScreen:

    def test_empty_session(self):
        text = _render_text(initial_state())
        assert "No moves played yet" in text
        assert "Run analysis to see scores" in text
        assert "Ask me about the current position" in text

    def test_moves_analysis_and_error(self, controller):
        controller.submit_pgn(SHORT_PGN)
        state = replace(
            controller.state,
            analysis=make_analysis(65),
            error=InvalidAnalysisFormat(),
        )
        text = _render_text(state)
        assert "1. e4" in text
        assert "1... e5" in text
        assert "2. Nf3" in text
        assert "65%" in text
        assert "My System" in text
        assert "Analysis failed. Please try again." in text

    def test_game_selector(self):
        state = replace(
            initial_state(),
            username="alice",
            recent_games=(make_summary(),),
            show_game_selector=True,
        )
        text = _render_text(state)
        assert "Recent games for alice" in text
        assert "2023-11-14" in text

    def test_discard_notice(self, controller):
        controller.submit_pgn(SHORT_PGN)
        controller.navigate(0)
        controller.move("g8", "f6")
        assert "Discarded: e5 Nf3" in _render_text(controller.state)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommands:

    def _app(self, controller, inputs: list[str] | None = None) -> StudioApp:
        lines = iter(inputs or [])
        return StudioApp(controller, _console(), input_fn=lambda _prompt: next(lines))

    def test_move_commands(self, controller):
        app = self._app(controller)
        app.run_command("move e2e4")
        app.run_command("move e7-e5")
        app.run_command("move Nf3")
        assert [m.san for m in controller.state.moves] == ["e4", "e5", "Nf3"]

    def test_illegal_move_is_ignored(self, controller):
        app = self._app(controller)
        app.run_command("move e2e5")
        assert controller.state.moves == ()
        assert "Illegal move ignored" in app.console.export_text()

    def test_pgn_and_navigation(self, controller):
        app = self._app(controller)
        app.run_command(f"pgn {SHORT_PGN}")
        app.run_command("first")
        assert controller.state.current_index == -1
        app.run_command("next")
        app.run_command("next")
        assert controller.state.current_index == 1
        app.run_command("goto 3")
        assert controller.state.current_index == 2
        app.run_command("prev")
        assert controller.state.current_index == 1

    def test_paste_reads_until_dot(self, controller):
        app = self._app(controller, ["1. e4 e5", "2. Nf3", "."])
        app.run_command("paste")
        assert len(controller.state.moves) == 3

    def test_search_and_select(self, controller, mock_lichess):
        app = self._app(controller)
        app.run_command("search alice")
        app.run_command("select 1")
        mock_lichess.fetch_game_pgn.assert_called_once_with("abcd1234")
        assert controller.state.input_mode == InputMode.LICHESS

    def test_analyze_and_ask(self, controller, mock_coach):
        app = self._app(controller)
        app.run_command(f"pgn {SHORT_PGN}")
        app.run_command("analyze")
        app.run_command("ask Why Nf3?")
        mock_coach.analyze_game.assert_called_once()
        assert controller.state.chat[0].content == "Why Nf3?"

    def test_mode_and_reset(self, controller):
        app = self._app(controller)
        app.run_command("mode lichess")
        assert controller.state.input_mode == InputMode.LICHESS
        app.run_command("mode bogus")
        assert "Unknown mode" in app.console.export_text()
        app.run_command("reset")
        assert controller.state == initial_state()

    def test_quit(self, controller):
        app = self._app(controller)
        assert app.run_command("help")
        assert not app.run_command("quit")

    def test_loop_stops_on_eof(self, mock_lichess, mock_coach):
        ctl = SessionController(mock_lichess, mock_coach)
        app = StudioApp(ctl, _console(), input_fn=_raise_after(["move e2e4"]))
        app.loop()
        assert len(ctl.state.moves) == 1


def _raise_after(lines: list[str]):
    it = iter(lines)

    def _input(_prompt: str) -> str:
        try:
            return next(it)
        except StopIteration:
            raise EOFError from None

    return _input
