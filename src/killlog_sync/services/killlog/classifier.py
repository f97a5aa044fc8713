"""
Remote Error Classification.

Maps a remote error code to the set of state changes it calls for. The
mapping is a pure function: it reads no state and writes none, so it can be
checked against the code table without a database.

Code table:
    28, 904                  pause all polling for 5 minutes
    403, 502, 503            back the character off for 5 minutes
    119, 120                 back off until the API's cachedUntil
    221, 200, 220, 211       drop all characters, mark the key errored
    202-205, 210, 521        (authentication failures) same as above
    201, 522                 drop the character (it left the account)
    207, 209                 demote the character (no corp kill log access)
    222                      account expired: drop characters, mark key, 7 days
    404, 500, 520, 902       back the character off for an hour
    anything else            mark the key errored
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...core.constants import (
    AUTHENTICATION_FAILURE_CODES,
    ERROR_ACCOUNT_EXPIRED,
    ERROR_BEFORE_KILL_ID,
    ERROR_CHARACTER_NOT_ON_ACCOUNT,
    ERROR_CHARACTER_NOT_ON_ACCOUNT_ALT,
    ERROR_ILLEGAL_PAGE,
    ERROR_KILLS_EXHAUSTED,
    ERROR_LOGIN_DENIED,
    ERROR_NOT_AVAILABLE,
    ERROR_NPC_CORPORATION,
    ERROR_SECURITY_LEVEL,
    ERROR_SECURITY_LEVEL_ALT,
    ERROR_TEMP_BAN,
    ERROR_TIMEOUT,
    SERVER_ERROR_CODES,
    SERVICE_UNAVAILABLE_CODES,
)
from ...core.formatters import epoch_now

GLOBAL_STOP_SECONDS = 300
SERVICE_UNAVAILABLE_BACKOFF = 300
SERVER_ERROR_BACKOFF = 3600
ACCOUNT_EXPIRED_BACKOFF = 7 * 24 * 3600

KEY_INVALIDATING_CODES = frozenset(
    {ERROR_ILLEGAL_PAGE, ERROR_SECURITY_LEVEL, ERROR_SECURITY_LEVEL_ALT, ERROR_LOGIN_DENIED}
    | AUTHENTICATION_FAILURE_CODES
)

KNOWN_CODES = frozenset(
    {
        ERROR_TIMEOUT,
        ERROR_TEMP_BAN,
        ERROR_KILLS_EXHAUSTED,
        ERROR_BEFORE_KILL_ID,
        ERROR_CHARACTER_NOT_ON_ACCOUNT,
        ERROR_CHARACTER_NOT_ON_ACCOUNT_ALT,
        ERROR_NPC_CORPORATION,
        ERROR_NOT_AVAILABLE,
        ERROR_ACCOUNT_EXPIRED,
    }
    | SERVICE_UNAVAILABLE_CODES
    | KEY_INVALIDATING_CODES
    | SERVER_ERROR_CODES
)


@dataclass(frozen=True)
class Action:
    """
    State changes for one remote error. Fields are independent.

    Attributes:
        clear_character: Delete the (key, character) row
        clear_all_characters: Delete every character of the key
        clear_api_entry: Mark the credential errored with the code
        demote_character: Set the character's director flag to False
        cache_until: Do not poll the character before this timestamp
        global_stop: Suspend all polling for this many seconds
    """

    clear_character: bool = False
    clear_all_characters: bool = False
    clear_api_entry: bool = False
    demote_character: bool = False
    cache_until: Optional[int] = None
    global_stop: Optional[int] = None

    def describe(self) -> list[str]:
        """Names of the effects this action carries, for logs and CLI output."""
        effects = []
        if self.global_stop is not None:
            effects.append(f"global_stop={self.global_stop}s")
        if self.demote_character:
            effects.append("demote")
        if self.clear_character:
            effects.append("clear_character")
        if self.clear_all_characters:
            effects.append("clear_all_characters")
        if self.clear_api_entry:
            effects.append("clear_api_entry")
        if self.cache_until is not None:
            effects.append(f"cache_until={self.cache_until}")
        return effects


def is_known_code(code: int) -> bool:
    return code in KNOWN_CODES


def classify(code: int, cached_until: Optional[int] = None, now: Optional[int] = None) -> Action:
    """
    Classify a remote error code.

    Total over all integers; never raises.

    Args:
        code: Remote error code
        cached_until: The API's cachedUntil hint (used by 119 and 120)
        now: Current Unix timestamp (default: wall clock)

    Returns:
        The Action for the code
    """
    if now is None:
        now = epoch_now()

    if code in (ERROR_TIMEOUT, ERROR_TEMP_BAN):
        return Action(global_stop=GLOBAL_STOP_SECONDS)

    if code in SERVICE_UNAVAILABLE_CODES:
        return Action(cache_until=now + SERVICE_UNAVAILABLE_BACKOFF)

    if code in (ERROR_KILLS_EXHAUSTED, ERROR_BEFORE_KILL_ID):
        return Action(cache_until=cached_until)

    if code in KEY_INVALIDATING_CODES:
        return Action(clear_all_characters=True, clear_api_entry=True)

    if code in (ERROR_CHARACTER_NOT_ON_ACCOUNT, ERROR_CHARACTER_NOT_ON_ACCOUNT_ALT):
        return Action(clear_character=True)

    if code in (ERROR_NPC_CORPORATION, ERROR_NOT_AVAILABLE):
        return Action(demote_character=True)

    if code == ERROR_ACCOUNT_EXPIRED:
        return Action(
            cache_until=now + ACCOUNT_EXPIRED_BACKOFF,
            clear_all_characters=True,
            clear_api_entry=True,
        )

    if code in SERVER_ERROR_CODES:
        return Action(cache_until=now + SERVER_ERROR_BACKOFF)

    return Action(clear_api_entry=True)
