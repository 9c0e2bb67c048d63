"""Read-only lichess.org client.

Two requests, no retries:
- list a user's 10 most recent games (NDJSON, one game per line)
- export one game's moves as PGN text
"""

from __future__ import annotations

import json
from urllib.parse import quote

import requests

from gm_studio.config import DEFAULT_LICHESS_URL, DEFAULT_TIMEOUT_SECONDS
from gm_studio.errors import FetchFailed, InvalidResponse, NotFoundOrPrivate
from gm_studio.log import get_logger
from gm_studio.models import GameSummary

logger = get_logger(__name__)

MAX_GAMES = 10


def _player_name(player: dict) -> str:
    """Display name for one side of a lichess game.

    Stockfish opponents have no user, only an aiLevel.
    """
    user = player.get("user") or {}
    name = user.get("name")
    if name:
        return name
    if player.get("aiLevel") is not None:
        return f"AI level {player['aiLevel']}"
    return "Anonymous"


def parse_game_summary(data: dict) -> GameSummary:
    """Build a GameSummary from one decoded NDJSON line.

    Args:
        data: Decoded lichess game object.

    Returns:
        GameSummary.

    Raises:
        InvalidResponse: If the object has no game id.
    """
    if not isinstance(data, dict) or not data.get("id"):
        raise InvalidResponse()

    players = data.get("players") or {}
    variant = data.get("variant", "standard")
    if isinstance(variant, dict):
        variant = variant.get("key") or variant.get("name") or "standard"

    return GameSummary(
        id=str(data["id"]),
        white_name=_player_name(players.get("white") or {}),
        black_name=_player_name(players.get("black") or {}),
        created_at=int(data.get("createdAt") or 0),
        status=str(data.get("status", "")),
        variant=str(variant),
    )


def parse_ndjson_games(text: str) -> list[GameSummary]:
    """Parse an NDJSON games list. Any malformed line fails the whole list.

    Args:
        text: Raw response body.

    Returns:
        Summaries in server order; empty for a blank body.

    Raises:
        InvalidResponse: If a line is not a JSON game object.
    """
    games: list[GameSummary] = []
    for line in text.strip().splitlines():
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            raise InvalidResponse() from exc
        games.append(parse_game_summary(data))
    return games


class LichessClient:
    """Thin wrapper over the two lichess endpoints GM Studio needs."""

    def __init__(
        self,
        base_url: str = DEFAULT_LICHESS_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _get(self, path: str, params: dict, accept: str) -> requests.Response:
        url = f"{self._base_url}{path}"
        logger.debug("GET %s %s", url, params)
        return self._session.get(
            url,
            params=params,
            headers={"Accept": accept},
            timeout=self._timeout,
        )

    def list_recent_games(self, username: str) -> list[GameSummary]:
        """List a user's most recent games.

        Args:
            username: lichess username.

        Returns:
            Up to 10 GameSummary records, newest first.

        Raises:
            NotFoundOrPrivate: On a non-success HTTP status.
            FetchFailed: On a transport failure or malformed body.
        """
        path = f"/api/games/user/{quote(username.strip(), safe='')}"
        params = {"max": MAX_GAMES, "moves": "false", "pgnInJson": "false"}
        try:
            resp = self._get(path, params, "application/x-ndjson")
        except requests.RequestException as exc:
            logger.error("Lichess list fetch error: %s", exc)
            raise FetchFailed("Could not reach lichess.org.") from exc

        if not resp.ok:
            logger.error("Lichess list fetch error: HTTP %s for %s", resp.status_code, username)
            raise NotFoundOrPrivate()

        try:
            return parse_ndjson_games(resp.text)
        except InvalidResponse:
            logger.error("Lichess list fetch error: malformed NDJSON for %s", username)
            raise

    def fetch_game_pgn(self, game_id: str) -> str:
        """Export one game as PGN.

        Args:
            game_id: lichess game id.

        Returns:
            The response body verbatim.

        Raises:
            FetchFailed: On a transport failure or non-success HTTP status.
        """
        path = f"/game/export/{quote(game_id.strip(), safe='')}"
        params = {"moves": "true", "pgnInJson": "false"}
        try:
            resp = self._get(path, params, "application/x-chess-pgn")
        except requests.RequestException as exc:
            logger.error("Lichess PGN fetch error: %s", exc)
            raise FetchFailed() from exc

        if not resp.ok:
            logger.error("Lichess PGN fetch error: HTTP %s for %s", resp.status_code, game_id)
            raise FetchFailed()

        return resp.text

    def close(self) -> None:
        self._session.close()
