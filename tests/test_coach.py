"""Tests for the Gemini coach client. The genai client is a MagicMock."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from gm_studio.coach import (
    FALLBACK_REPLY,
    SYSTEM_INSTRUCTION,
    CoachClient,
    build_context,
    flatten_transcript,
    parse_analysis,
)
from gm_studio.errors import AnalysisFailed, ChatFailure, ConfigError, InvalidAnalysisFormat
from gm_studio.models import ChatMessage
from gm_studio.schemas import validate_analysis

from conftest import SHORT_PGN, make_analysis

_FEN = "rnbqkbnr/pppp1ppp/8/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R b KQkq - 1 2"


def _genai_client(text: str | None = None) -> MagicMock:
    client = MagicMock()
    client.models.generate_content.return_value = MagicMock(text=text)
    chat = MagicMock()
    chat.send_message.return_value = MagicMock(text=text)
    client.chats.create.return_value = chat
    return client


# ---------------------------------------------------------------------------
# Parsing and validation
# ---------------------------------------------------------------------------


class TestParseAnalysis:

    def test_valid_payload(self, analysis_payload):
        analysis = parse_analysis(json.dumps(analysis_payload))
        assert analysis.opening.score == 70
        assert analysis.middlegame.errors == ["12...h6?"]
        assert analysis.overall_advice == "Activate your king earlier."
        assert analysis.referenced_books == ["Dvoretsky's Endgame Manual"]
        assert analysis.score_summary() == "70/60/50/40"

    def test_missing_endgame(self, analysis_payload):
        del analysis_payload["endgame"]
        assert "Missing key: endgame" in validate_analysis(analysis_payload)
        with pytest.raises(InvalidAnalysisFormat):
            parse_analysis(json.dumps(analysis_payload))

    def test_missing_nested_field(self, analysis_payload):
        del analysis_payload["tactics"]["feedback"]
        with pytest.raises(InvalidAnalysisFormat):
            parse_analysis(json.dumps(analysis_payload))

    def test_wrong_score_type(self, analysis_payload):
        analysis_payload["opening"]["score"] = "high"
        with pytest.raises(InvalidAnalysisFormat):
            parse_analysis(json.dumps(analysis_payload))

    @pytest.mark.parametrize("score", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_score(self, analysis_payload, score):
        analysis_payload["opening"]["score"] = score
        text = json.dumps(analysis_payload)
        assert any("opening.score" in p for p in validate_analysis(json.loads(text)))
        with pytest.raises(InvalidAnalysisFormat):
            parse_analysis(text)

    def test_not_json(self):
        with pytest.raises(InvalidAnalysisFormat):
            parse_analysis("Sure! Here is my analysis:")

    def test_empty_text(self):
        with pytest.raises(InvalidAnalysisFormat):
            parse_analysis(None)

    def test_json_array(self):
        with pytest.raises(InvalidAnalysisFormat):
            parse_analysis("[]")

    def test_out_of_range_score_passes_through(self, analysis_payload):
        analysis_payload["opening"]["score"] = 150
        analysis_payload["endgame"]["score"] = 85.0
        analysis = parse_analysis(json.dumps(analysis_payload))
        assert analysis.opening.score == 150
        assert analysis.endgame.score == 85


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------


class TestPrompts:

    def test_flatten_transcript(self):
        prior = [
            ChatMessage(role="user", content="Hi"),
            ChatMessage(role="assistant", content="Hello"),
        ]
        assert flatten_transcript(prior, "Why e4?") == "Human: Hi\nAssistant: Hello\nHuman: Why e4?"

    def test_flatten_empty_transcript(self):
        assert flatten_transcript([], "Why e4?") == "Human: Why e4?"

    def test_context_without_analysis(self):
        context = build_context(SHORT_PGN, _FEN)
        assert f"Current Game PGN: {SHORT_PGN}" in context
        assert f"Current Position FEN: {_FEN}" in context
        assert "Score Summary" not in context

    def test_context_with_analysis(self):
        context = build_context(SHORT_PGN, _FEN, make_analysis(55))
        assert "AI Analysis Score Summary: 55/55/55/55" in context


# ---------------------------------------------------------------------------
# API calls
# ---------------------------------------------------------------------------


class TestAnalyzeGame:

    def test_request_shape(self, analysis_payload):
        genai_client = _genai_client(json.dumps(analysis_payload))
        coach = CoachClient(model="test-model", client=genai_client)

        analysis = coach.analyze_game(SHORT_PGN)

        assert analysis.tactics.score == 50
        kwargs = genai_client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["contents"] == f"Please analyze this chess game: {SHORT_PGN}"
        assert kwargs["config"].response_mime_type == "application/json"
        assert kwargs["config"].system_instruction == SYSTEM_INSTRUCTION

    def test_invalid_format_not_retried(self, analysis_payload):
        del analysis_payload["endgame"]
        genai_client = _genai_client(json.dumps(analysis_payload))
        coach = CoachClient(client=genai_client)

        with pytest.raises(InvalidAnalysisFormat):
            coach.analyze_game(SHORT_PGN)
        assert genai_client.models.generate_content.call_count == 1

    def test_nan_score_is_invalid_format(self, analysis_payload):
        analysis_payload["tactics"]["score"] = float("nan")
        coach = CoachClient(client=_genai_client(json.dumps(analysis_payload)))
        with pytest.raises(InvalidAnalysisFormat):
            coach.analyze_game(SHORT_PGN)

    def test_api_error(self):
        genai_client = MagicMock()
        genai_client.models.generate_content.side_effect = RuntimeError("quota")
        with pytest.raises(AnalysisFailed):
            CoachClient(client=genai_client).analyze_game(SHORT_PGN)

    def test_missing_api_key(self):
        with pytest.raises(ConfigError):
            CoachClient(api_key="").analyze_game(SHORT_PGN)


class TestChatReply:

    def test_fresh_chat_with_flattened_prompt(self):
        genai_client = _genai_client("Play d4 next.")
        coach = CoachClient(model="test-model", client=genai_client)
        prior = [ChatMessage(role="user", content="Hi"), ChatMessage(role="assistant", content="Hello")]

        reply = coach.chat_reply("What now?", SHORT_PGN, _FEN, prior, make_analysis(80))

        assert reply == "Play d4 next."
        create_kwargs = genai_client.chats.create.call_args.kwargs
        assert create_kwargs["model"] == "test-model"
        system = create_kwargs["config"].system_instruction
        assert system.startswith(SYSTEM_INSTRUCTION)
        assert f"Current Position FEN: {_FEN}" in system
        assert "AI Analysis Score Summary: 80/80/80/80" in system

        chat = genai_client.chats.create.return_value
        chat.send_message.assert_called_once_with(
            "Human: Hi\nAssistant: Hello\nHuman: What now?"
        )

    def test_each_call_creates_new_chat(self):
        genai_client = _genai_client("ok")
        coach = CoachClient(client=genai_client)
        coach.chat_reply("a", SHORT_PGN, _FEN, [])
        coach.chat_reply("b", SHORT_PGN, _FEN, [])
        assert genai_client.chats.create.call_count == 2

    def test_empty_reply_falls_back(self):
        coach = CoachClient(client=_genai_client(None))
        assert coach.chat_reply("Hi", SHORT_PGN, _FEN, []) == FALLBACK_REPLY

    def test_api_error(self):
        genai_client = _genai_client("ok")
        genai_client.chats.create.return_value.send_message.side_effect = RuntimeError("offline")
        with pytest.raises(ChatFailure):
            CoachClient(client=genai_client).chat_reply("Hi", SHORT_PGN, _FEN, [])
