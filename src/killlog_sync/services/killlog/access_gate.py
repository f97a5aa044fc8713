"""
Access Gate.

Validates a keyID/vCode pair before it is stored or polled: rejects
malformed input without touching the network, then asks the API for the
key's access mask and requires the KillLog bit.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from ...core.api_client import AccountInfo, RemoteApi, RemoteError
from ...core.constants import KILLLOG_ACCESS_BIT, MAX_PLAUSIBLE_KEY_ID_LENGTH
from ...core.logging import get_logger

logger = get_logger(__name__)

MSG_MISSING_INPUT = "Error, no keyID and/or vCode"
MSG_INVALID_KEY_ID = "Invalid keyID. Did you get the keyID and vCode mixed up?"
MSG_SWAPPED = "Error, you might have mistaken keyid for the vcode"
MSG_INSUFFICIENT_SCOPE = (
    "Error, key does not have access to killlog, please modify key to add killlog access"
)
MSG_SUCCESS = "success"


class GateFailure(str, Enum):
    """Why a key was rejected."""

    MALFORMED = "malformed"
    SWAPPED = "swapped"
    REMOTE = "remote"
    INSUFFICIENT_SCOPE = "insufficient_scope"


@dataclass
class GateResult:
    """
    Outcome of a gate check.

    Attributes:
        ok: True when the key is usable for KillLog polling
        message: Human-readable outcome, suitable for showing to the key owner
        reason: Failure category, None on success
        key_id: Parsed keyID, None when the input was malformed
        account_info: APIKeyInfo response, when the remote call succeeded
        remote_error: The remote rejection, for REMOTE and SWAPPED failures
    """

    ok: bool
    message: str
    reason: Optional[GateFailure] = None
    key_id: Optional[int] = None
    account_info: Optional[AccountInfo] = None
    remote_error: Optional[RemoteError] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "ok": self.ok,
            "message": self.message,
            "reason": self.reason.value if self.reason else None,
            "key_id": self.key_id,
        }
        if self.account_info is not None:
            result["access_mask"] = self.account_info.access_mask
            result["key_type"] = self.account_info.key_type
            result["characters"] = [c.character_id for c in self.account_info.characters]
        if self.remote_error is not None:
            result["remote_error"] = self.remote_error.to_dict()
        return result


def has_killlog_access(access_mask: int) -> bool:
    return (access_mask & KILLLOG_ACCESS_BIT) != 0


class AccessGate:
    """Check keys against the remote API."""

    def __init__(self, client: RemoteApi):
        self.client = client

    async def validate(self, key_id: Union[str, int], v_code: Union[str, int]) -> GateResult:
        """
        Validate a keyID/vCode pair.

        Never raises for remote rejections; the result's reason tells a
        malformed submission from a likely field swap and from a reason
        the API reported.
        """
        key_text = str(key_id).strip()
        v_code_text = str(v_code).strip()

        if not key_text or not v_code_text:
            return GateResult(ok=False, message=MSG_MISSING_INPUT, reason=GateFailure.MALFORMED)

        # ASCII digits only
        is_number = key_text.isascii() and key_text.isdigit()
        parsed_key_id = int(key_text) if is_number else 0
        if parsed_key_id <= 0:
            return GateResult(ok=False, message=MSG_INVALID_KEY_ID, reason=GateFailure.MALFORMED)

        try:
            info = await self.client.fetch_account_info(parsed_key_id, v_code_text)
        except RemoteError as e:
            if len(key_text) > MAX_PLAUSIBLE_KEY_ID_LENGTH:
                return GateResult(
                    ok=False,
                    message=MSG_SWAPPED,
                    reason=GateFailure.SWAPPED,
                    key_id=parsed_key_id,
                    remote_error=e,
                )
            logger.debug("APIKeyInfo rejected keyID %d: %s", parsed_key_id, e)
            return GateResult(
                ok=False,
                message=f"Error: {e.code} Message: {e.message}",
                reason=GateFailure.REMOTE,
                key_id=parsed_key_id,
                remote_error=e,
            )

        if not has_killlog_access(info.access_mask):
            return GateResult(
                ok=False,
                message=MSG_INSUFFICIENT_SCOPE,
                reason=GateFailure.INSUFFICIENT_SCOPE,
                key_id=parsed_key_id,
                account_info=info,
            )

        return GateResult(ok=True, message=MSG_SUCCESS, key_id=parsed_key_id, account_info=info)
