"""
Killlog Sync XML API Client

Async HTTP client for the EVE Online XML API using httpx.

Exposes the two logical calls the sync needs:
    fetch_account_info(key_id, v_code) -> AccountInfo
    fetch_kill_log(key_id, v_code, character_id) -> KillLog

Every failure crosses this boundary as a RemoteError carrying the numeric
code and, when the API supplied one, the cachedUntil hint. Callers never
inspect httpx exceptions.

Usage:
    async with EveApiClient() as client:
        info = await client.fetch_account_info(12345, "vcode")
        log = await client.fetch_kill_log(12345, "vcode", 90000001)
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from .config import get_settings
from .constants import (
    API_KEY_INFO_PATH,
    CHAR_KILL_LOG_PATH,
    CORP_KILL_LOG_PATH,
    ERROR_TIMEOUT,
    ERROR_UNPARSEABLE,
)
from .formatters import parse_api_datetime
from .logging import get_logger
from .retry import api_retry_async

logger = get_logger(__name__)


# =============================================================================
# Response Types
# =============================================================================


@dataclass
class Kill:
    """One kill log row: its id and the full row as a plain dict."""

    kill_id: int
    payload: dict[str, Any]


@dataclass
class KillLog:
    """Parsed KillLog response."""

    kills: list[Kill] = field(default_factory=list)
    cached_until: Optional[int] = None


@dataclass
class AccountCharacter:
    """A character listed by APIKeyInfo."""

    character_id: int
    character_name: str = ""
    corporation_id: Optional[int] = None


@dataclass
class AccountInfo:
    """Parsed APIKeyInfo response."""

    access_mask: int
    key_type: str = ""
    expires: Optional[int] = None
    characters: list[AccountCharacter] = field(default_factory=list)

    @property
    def is_corporation_key(self) -> bool:
        return self.key_type == "Corporation"


# =============================================================================
# Exceptions
# =============================================================================


class RemoteError(Exception):
    """
    Error reported by (or on the way to) the remote API.

    Attributes:
        code: Remote error code, HTTP status, or 28 for transport failures
        message: Human-readable message from the API
        cached_until: Unix timestamp from <cachedUntil>, when present
    """

    def __init__(
        self,
        code: int,
        message: str = "",
        cached_until: Optional[int] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.cached_until = cached_until
        super().__init__(f"{code}: {message}" if message else str(code))

    def to_dict(self) -> dict[str, Any]:
        """Convert error to JSON-serializable dict."""
        result: dict[str, Any] = {"error": "remote_error", "code": self.code, "message": self.message}
        if self.cached_until is not None:
            result["cached_until"] = self.cached_until
        return result


# =============================================================================
# Remote API Protocol
# =============================================================================


@runtime_checkable
class RemoteApi(Protocol):
    """The two remote calls the gate and the workers depend on."""

    async def fetch_account_info(self, key_id: int, v_code: str) -> AccountInfo: ...

    async def fetch_kill_log(
        self,
        key_id: int,
        v_code: str,
        character_id: int,
        corporation: bool = False,
    ) -> KillLog: ...


# =============================================================================
# XML Parsing
# =============================================================================


def parse_api_response(body: bytes | str, status_code: int = 200) -> tuple[ET.Element, Optional[int]]:
    """
    Parse an XML API envelope.

    Args:
        body: Raw response body
        status_code: HTTP status of the response

    Returns:
        Tuple of (<result> element, cachedUntil timestamp)

    Raises:
        RemoteError: For <error> responses, HTTP errors without an error
            element, and bodies that are not a valid envelope (code 0)
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        if status_code >= 400:
            raise RemoteError(status_code, f"HTTP {status_code}") from e
        raise RemoteError(ERROR_UNPARSEABLE, f"Unparseable API response: {e}") from e

    cached_until = parse_api_datetime(root.findtext("cachedUntil"))

    error = root.find("error")
    if error is not None:
        try:
            code = int(error.get("code", ERROR_UNPARSEABLE))
        except ValueError:
            code = ERROR_UNPARSEABLE
        raise RemoteError(code, (error.text or "").strip(), cached_until=cached_until)

    if status_code >= 400:
        raise RemoteError(status_code, f"HTTP {status_code}", cached_until=cached_until)

    result = root.find("result")
    if result is None:
        raise RemoteError(ERROR_UNPARSEABLE, "API response has no result element")

    return result, cached_until


def row_to_dict(row: ET.Element) -> dict[str, Any]:
    """
    Convert a <row> element to a plain dict.

    Attributes become keys. Nested <rowset name="..."> elements become lists
    under their name, other child elements (e.g. <victim>) become nested dicts.
    """
    data: dict[str, Any] = dict(row.attrib)
    for child in row:
        if child.tag == "rowset":
            data[child.get("name", "rows")] = [row_to_dict(r) for r in child.findall("row")]
        else:
            data[child.tag] = row_to_dict(child)
    return data


def _find_rowset(parent: ET.Element, name: str) -> list[ET.Element]:
    for rowset in parent.findall("rowset"):
        if rowset.get("name") == name:
            return rowset.findall("row")
    return []


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_account_info(result: ET.Element) -> AccountInfo:
    """Build AccountInfo from an APIKeyInfo <result> element."""
    key = result.find("key")
    if key is None:
        raise RemoteError(ERROR_UNPARSEABLE, "APIKeyInfo response has no key element")

    characters: list[AccountCharacter] = []
    for row in _find_rowset(key, "characters"):
        character_id = _optional_int(row.get("characterID"))
        if character_id is None:
            logger.debug("Skipping character row without characterID")
            continue
        characters.append(
            AccountCharacter(
                character_id=character_id,
                character_name=row.get("characterName", ""),
                corporation_id=_optional_int(row.get("corporationID")),
            )
        )

    return AccountInfo(
        access_mask=_optional_int(key.get("accessMask")) or 0,
        key_type=key.get("type", ""),
        expires=parse_api_datetime(key.get("expires")),
        characters=characters,
    )


def parse_kill_log(result: ET.Element, cached_until: Optional[int] = None) -> KillLog:
    """Build a KillLog from a KillLog <result> element."""
    kills: list[Kill] = []
    for row in _find_rowset(result, "kills"):
        kill_id = _optional_int(row.get("killID"))
        if kill_id is None:
            logger.debug("Skipping kill row without killID")
            continue
        kills.append(Kill(kill_id=kill_id, payload=row_to_dict(row)))
    return KillLog(kills=kills, cached_until=cached_until)


# =============================================================================
# Async Client
# =============================================================================


class EveApiClient:
    """
    Async client for the XML API.

    Must be used as an async context manager to ensure proper connection
    pooling. Requests are sent as form POSTs so vCodes stay out of URLs.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        enable_retry: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: API root (default: settings.api_base_url)
            timeout: Request timeout in seconds (default: settings.api_timeout)
            enable_retry: Retry connection failures with backoff
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        settings = get_settings()
        self.base_url: str = base_url or settings.api_base_url
        self.timeout: float = timeout or settings.api_timeout
        self.user_agent: str = settings.user_agent
        self.enable_retry: bool = enable_retry
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> EveApiClient:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers={"User-Agent": self.user_agent, "Accept": "application/xml"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_account_info(self, key_id: int, v_code: str) -> AccountInfo:
        """Call APIKeyInfo for a key."""
        result, _ = await self._request(API_KEY_INFO_PATH, {"keyID": key_id, "vCode": v_code})
        return parse_account_info(result)

    async def fetch_kill_log(
        self,
        key_id: int,
        v_code: str,
        character_id: int,
        corporation: bool = False,
    ) -> KillLog:
        """
        Call KillLog for a character.

        Args:
            corporation: Use the corporation kill log (director characters)
        """
        path = CORP_KILL_LOG_PATH if corporation else CHAR_KILL_LOG_PATH
        result, cached_until = await self._request(
            path,
            {"keyID": key_id, "vCode": v_code, "characterID": character_id},
        )
        return parse_kill_log(result, cached_until)

    async def _request(
        self, path: str, params: dict[str, Any]
    ) -> tuple[ET.Element, Optional[int]]:
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        try:
            if self.enable_retry:
                response = await self._send_with_retry(path, params)
            else:
                response = await self._send(path, params)
        except httpx.TimeoutException as e:
            raise RemoteError(ERROR_TIMEOUT, f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            # An unreachable API is handled like a timeout: pause everything
            raise RemoteError(ERROR_TIMEOUT, f"Network error: {e}") from e

        return parse_api_response(response.content, response.status_code)

    async def _send(self, path: str, params: dict[str, Any]) -> httpx.Response:
        assert self._client is not None
        logger.debug("POST %s (keyID=%s)", path, params.get("keyID"))
        return await self._client.post(path, data={k: str(v) for k, v in params.items()})

    @api_retry_async()
    async def _send_with_retry(self, path: str, params: dict[str, Any]) -> httpx.Response:
        return await self._send(path, params)
