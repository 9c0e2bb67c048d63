"""Error kinds raised by GM Studio components.

Every failure carries an ErrorKind so the session controller can keep
the structured kind in state and the UI can choose the wording.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    UNKNOWN = "unknown"
    NOT_FOUND_OR_PRIVATE = "not_found_or_private"
    FETCH_FAILED = "fetch_failed"
    INVALID_PGN = "invalid_pgn"
    INVALID_ANALYSIS_FORMAT = "invalid_analysis_format"
    ANALYSIS_FAILED = "analysis_failed"
    VALIDATION = "validation"
    CHAT_FAILURE = "chat_failure"
    ACTION_IN_FLIGHT = "action_in_flight"
    CONFIG = "config"


class StudioError(Exception):
    """Base class for all GM Studio failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StudioError):
            return NotImplemented
        return (type(self), self.message) == (type(other), other.message)

    def __hash__(self) -> int:
        return hash((type(self), self.message))


class NotFoundOrPrivate(StudioError):
    """The lichess user does not exist or hides their games."""

    kind = ErrorKind.NOT_FOUND_OR_PRIVATE
    default_message = "Lichess user not found or private."


class FetchFailed(StudioError):
    kind = ErrorKind.FETCH_FAILED
    default_message = "Could not fetch game PGN."


class InvalidResponse(FetchFailed):
    """The game server answered with a body that could not be parsed."""

    default_message = "Lichess returned a malformed games list."


class InvalidPgn(StudioError):
    kind = ErrorKind.INVALID_PGN
    default_message = "Invalid PGN data."


class InvalidAnalysisFormat(StudioError):
    kind = ErrorKind.INVALID_ANALYSIS_FORMAT
    default_message = "Invalid analysis format received from AI."


class AnalysisFailed(StudioError):
    kind = ErrorKind.ANALYSIS_FAILED
    default_message = "Analysis failed. Please try again."


class ValidationError(StudioError):
    kind = ErrorKind.VALIDATION
    default_message = "Please input some moves or upload a game first."


class ChatFailure(StudioError):
    kind = ErrorKind.CHAT_FAILURE
    default_message = "Chat failed. Check your API key or connection."


class ActionInFlight(StudioError):
    """A request of the same kind is still running."""

    kind = ErrorKind.ACTION_IN_FLIGHT
    default_message = "Please wait for the current request to finish."


class ConfigError(StudioError):
    kind = ErrorKind.CONFIG
    default_message = "GEMINI_API_KEY is not set."
