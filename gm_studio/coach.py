"""AI chess coach backed by the Gemini API.

Provides:
- Structured phase-by-phase game analysis (JSON constrained by schema)
- Free-text chat about the current game and position

Each call is one blocking request; nothing is retried or streamed.
"""

from __future__ import annotations

import json

from google import genai
from google.genai import types

from gm_studio.config import DEFAULT_MODEL
from gm_studio.errors import (
    AnalysisFailed,
    ChatFailure,
    ConfigError,
    InvalidAnalysisFormat,
    StudioError,
)
from gm_studio.log import get_logger
from gm_studio.models import PHASES, ChatMessage, FullAnalysis, PhaseAnalysis
from gm_studio.schemas import ANALYSIS_RESPONSE_SCHEMA, validate_analysis

logger = get_logger(__name__)

SYSTEM_INSTRUCTION = """
You are a world-class Chess Grandmaster and Coach. Your knowledge base includes deep study of classic and modern chess literature, including:
- "My System" by Aron Nimzowitsch
- "Zurich International Chess Tournament 1953" by David Bronstein
- "Dvoretsky's Endgame Manual" by Mark Dvoretsky
- "The Life and Games of Mikhail Tal" by Mikhail Tal
- "Bobby Fischer Teaches Chess"
- "Fundamental Chess Endings" by Karsten Müller

Your task is to analyze chess games and answer questions.
When analyzing: Evaluate Opening, Middlegame, Tactics, and Endgame.
When chatting: Provide concise, expert advice. Refer to the current game state (PGN/FEN) and any provided analysis.
Mention relevant books where applicable.
"""

FALLBACK_REPLY = "I apologize, I couldn't formulate a response."


def _to_phase(data: dict) -> PhaseAnalysis:
    score = data["score"]
    # Integral floats (85.0) become ints; out-of-range values pass through.
    score = int(round(score))
    return PhaseAnalysis(
        score=score,
        feedback=data["feedback"],
        errors=list(data["errors"]),
    )


def parse_analysis(text: str | None) -> FullAnalysis:
    """Parse the coach's JSON analysis text into a FullAnalysis.

    Args:
        text: Raw response text.

    Returns:
        FullAnalysis built from the payload.

    Raises:
        InvalidAnalysisFormat: If the text is not JSON or misses required fields.
    """
    if not text:
        raise InvalidAnalysisFormat()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse AI response: %s", exc)
        raise InvalidAnalysisFormat() from exc

    problems = validate_analysis(payload)
    if problems:
        logger.error("Failed to parse AI response: %s", "; ".join(problems))
        raise InvalidAnalysisFormat()

    phases = {phase: _to_phase(payload[phase]) for phase in PHASES}
    return FullAnalysis(
        **phases,
        overall_advice=payload["overallAdvice"],
        referenced_books=list(payload["referencedBooks"]),
    )


def build_context(pgn: str, fen: str, analysis: FullAnalysis | None = None) -> str:
    """Game context appended to the system instruction for chat."""
    lines = [
        "Context:",
        f"Current Game PGN: {pgn}",
        f"Current Position FEN: {fen}",
    ]
    if analysis is not None:
        lines.append(f"AI Analysis Score Summary: {analysis.score_summary()}")
    return "\n".join(lines)


def flatten_transcript(prior_messages: list[ChatMessage], query: str) -> str:
    """Flatten the transcript and new query into one prompt string.

    E.g. [user 'Hi', assistant 'Hello'] + 'Why e4?' ->
    'Human: Hi\\nAssistant: Hello\\nHuman: Why e4?'
    """
    lines = [
        f"{'Human' if m.role == 'user' else 'Assistant'}: {m.content}"
        for m in prior_messages
    ]
    lines.append(f"Human: {query}")
    return "\n".join(lines)


class CoachClient:
    """Gemini-backed coach. The genai client is created on first use."""

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        client: genai.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise ConfigError()
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def analyze_game(self, pgn: str) -> FullAnalysis:
        """Ask the coach for a phase-by-phase evaluation of a game.

        Args:
            pgn: Game in PGN.

        Returns:
            FullAnalysis parsed from the structured response.

        Raises:
            InvalidAnalysisFormat: If the response is unparsable or incomplete.
            AnalysisFailed: If the API call itself fails.
            ConfigError: If no API key is configured.
        """
        try:
            response = self.client.models.generate_content(
                model=self._model,
                contents=f"Please analyze this chess game: {pgn}",
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_INSTRUCTION,
                    response_mime_type="application/json",
                    response_schema=ANALYSIS_RESPONSE_SCHEMA,
                ),
            )
        except StudioError:
            raise
        except Exception as exc:
            logger.error("Analysis request failed: %s", exc)
            raise AnalysisFailed() from exc

        return parse_analysis(response.text)

    def chat_reply(
        self,
        query: str,
        pgn: str,
        fen: str,
        prior_messages: list[ChatMessage],
        analysis: FullAnalysis | None = None,
    ) -> str:
        """Answer a question about the game in a fresh chat session.

        Args:
            query: The user's new question.
            pgn: Current game PGN.
            fen: Currently displayed position.
            prior_messages: Transcript before this query.
            analysis: Latest analysis, if any; its scores go into the context.

        Returns:
            Reply text, or a fixed apology when the model returns none.

        Raises:
            ChatFailure: If the API call fails.
            ConfigError: If no API key is configured.
        """
        system = f"{SYSTEM_INSTRUCTION}\n{build_context(pgn, fen, analysis)}"
        prompt = flatten_transcript(prior_messages, query)
        try:
            chat = self.client.chats.create(
                model=self._model,
                config=types.GenerateContentConfig(system_instruction=system),
            )
            result = chat.send_message(prompt)
        except StudioError:
            raise
        except Exception as exc:
            logger.error("Chat request failed: %s", exc)
            raise ChatFailure() from exc

        return result.text or FALLBACK_REPLY
