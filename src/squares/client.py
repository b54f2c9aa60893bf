"""HTTP client for the remote Squares service.

Every public coroutine resolves to an :class:`ApiResult`. Failures are
classified into :class:`ApiError` subclasses and returned, never raised, so
callers always get exactly one of a value or an error.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .board import BoardState, Move, from_wire_color, to_wire_color
from .config import DEFAULT_API_URL, DEFAULT_RULESET

logger = logging.getLogger(__name__)

T = TypeVar("T")

FINISHED = "finished"


# ---------- Errors & results ----------


class ApiError(Exception):
    """A classified API failure. Returned inside :class:`ApiResult`."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class TransportError(ApiError):
    """Network failure or a non-2xx response."""


class MalformedResponse(ApiError):
    """2xx response whose JSON does not have the expected shape."""


class ParseError(ApiError):
    """Response body is not valid JSON."""


class ServiceUnavailable(ApiError):
    """Health probing gave up without a more specific error."""


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[ApiError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class GameStatus:
    status: str
    result: Optional[str] = None

    @property
    def finished(self) -> bool:
        # Anything else ("ongoing", "inProgress") means play continues
        return self.status == FINISHED


# ---------- Wire models ----------


class BoardPayload(BaseModel):
    """Request body shared by the nextMove and status endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    size: int
    data: str
    next_player_color: str = Field(alias="nextPlayerColor")

    @classmethod
    def from_board(cls, board: BoardState) -> "BoardPayload":
        return cls(
            size=board.size,
            data=board.serialize(),
            next_player_color=to_wire_color(board.current_turn_color),
        )


class RemoteMove(BaseModel):
    """A move as sent by the service: ``x`` is the column, ``y`` the row."""

    x: int
    y: int
    color: Optional[str] = None

    @field_validator("x", "y", mode="before")
    @classmethod
    def _integral(cls, value: Any) -> int:
        # JSON numbers like 1.0 are accepted; 1.5, "1" and booleans are not
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("coordinate must be a number")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError("coordinate must be integral")
        return int(value)

    def to_move(self, fallback_color: str) -> Move:
        # Wire contract: x -> col, y -> row. Do not swap.
        return Move(
            row=self.y,
            col=self.x,
            color=from_wire_color(self.color) or fallback_color,
        )


class StatusPayload(BaseModel):
    status: str = Field(min_length=1)
    result: Optional[str] = None


# ---------- Client ----------


class SquaresAPIClient:
    """Async client for the ``/health``, ``/{ruleset}/nextMove`` and ``/status`` endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float = 10.0,
        retry_delay: float = 1.0,
        default_ruleset: str = DEFAULT_RULESET,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.default_ruleset = default_ruleset
        self._transport = transport
        self._sleep = sleep

    # ---- transport ----

    async def _request(
        self, method: str, path: str, payload: Optional[BaseModel] = None
    ) -> ApiResult[Any]:
        url = f"{self.base_url}{path}"
        body = payload.model_dump(by_alias=True) if payload is not None else None
        logger.debug("%s %s %s", method, url, body)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    json=body,
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            return ApiResult(error=TransportError(f"Network error occurred: {exc}"))

        data: Any = None
        parse_error: Optional[str] = None
        if response.text:
            try:
                data = json.loads(response.text)
            except (ValueError, RecursionError) as exc:
                # RecursionError: nesting deeper than the decoder can follow
                parse_error = f"Failed to parse response: {exc}"

        if response.is_success:
            if parse_error is not None:
                logger.warning("%s %s returned invalid JSON", method, url)
                return ApiResult(error=ParseError(parse_error, response.status_code))
            return ApiResult(value=data)

        message = f"Request failed with status: {response.status_code}"
        if isinstance(data, dict):
            server_message = data.get("error") or data.get("message")
            if isinstance(server_message, str) and server_message:
                message = server_message
        logger.warning("%s %s -> %s: %s", method, url, response.status_code, message)
        return ApiResult(error=TransportError(message, response.status_code))

    # ---- endpoints ----

    async def request_next_move(
        self, board: BoardState, ruleset: Optional[str] = None
    ) -> ApiResult[Optional[Move]]:
        """Ask the service for the next move of ``board.current_turn_color``.

        A reply with only a ``message`` means no move is possible and yields
        ``ApiResult(value=None)``.
        """
        rules = ruleset or self.default_ruleset
        outcome = await self._request(
            "POST", f"/{rules}/nextMove", BoardPayload.from_board(board)
        )
        if not outcome.ok:
            return outcome

        data = outcome.value
        try:
            remote = RemoteMove.model_validate(data)
        except ValidationError:
            if isinstance(data, dict) and data.get("message"):
                logger.info("No move available: %s", data["message"])
                return ApiResult(value=None)
            return ApiResult(error=MalformedResponse("Invalid response format"))
        return ApiResult(value=remote.to_move(board.current_turn_color))

    async def request_status(self, board: BoardState) -> ApiResult[GameStatus]:
        outcome = await self._request(
            "POST", "/status", BoardPayload.from_board(board)
        )
        if not outcome.ok:
            return outcome
        try:
            payload = StatusPayload.model_validate(outcome.value)
        except ValidationError:
            return ApiResult(error=MalformedResponse("Invalid response format"))
        return ApiResult(value=GameStatus(status=payload.status, result=payload.result))

    async def check_health(self) -> ApiResult[bool]:
        outcome = await self._request("GET", "/health")
        if not outcome.ok:
            return ApiResult(value=False, error=outcome.error)
        data = outcome.value
        healthy = isinstance(data, dict) and (
            data.get("message") == "OK" or data.get("status") == "OK"
        )
        return ApiResult(value=healthy)

    async def check_availability(self, max_retries: int = 3) -> ApiResult[bool]:
        """Probe the health endpoint, retrying with linear backoff.

        Waits ``retry_delay * attempt`` seconds before retry number
        ``attempt`` (1s, 2s, 3s, ... by default), so at most
        ``max_retries + 1`` probes are made.
        """
        retries = 0
        while True:
            outcome = await self.check_health()
            if outcome.value:
                logger.info("API at %s is available", self.base_url)
                return ApiResult(value=True)
            last_error = outcome.error
            if retries >= max_retries:
                break
            retries += 1
            delay = self.retry_delay * retries
            logger.info(
                "API not available (attempt %d), retrying in %.1fs", retries, delay
            )
            await self._sleep(delay)

        error = last_error or ServiceUnavailable(
            f"API is not available after {max_retries} attempts"
        )
        logger.warning("Giving up on %s: %s", self.base_url, error)
        return ApiResult(value=False, error=error)
