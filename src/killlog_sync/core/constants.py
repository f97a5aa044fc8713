"""
Killlog Sync Constants

Remote API paths, storage keys and the remote error codes the
classifier dispatches on.
"""

# =============================================================================
# XML API Configuration
# =============================================================================

API_KEY_INFO_PATH = "/account/APIKeyInfo.xml.aspx"
CHAR_KILL_LOG_PATH = "/char/KillLog.xml.aspx"
CORP_KILL_LOG_PATH = "/corp/KillLog.xml.aspx"

# accessMask bit granting KillLog access
KILLLOG_ACCESS_BIT = 256

# A keyID longer than this is almost certainly a pasted vCode
MAX_PLAUSIBLE_KEY_ID_LENGTH = 20

# =============================================================================
# Global Storage Keys
# =============================================================================

STORAGE_FETCHES_PER_SECOND = "APIFetchesPerSecond"
STORAGE_API_STOP = "ApiStop904"

DEFAULT_FETCHES_PER_SECOND = 30

# =============================================================================
# Remote Error Codes
#
# Codes below 1000 come from the API's <error code="..."> element or the
# HTTP status line. Transport failures are reported as ERROR_TIMEOUT.
# =============================================================================

ERROR_UNPARSEABLE = 0
ERROR_TIMEOUT = 28
ERROR_TEMP_BAN = 904

ERROR_KILLS_EXHAUSTED = 119
ERROR_BEFORE_KILL_ID = 120

ERROR_SECURITY_LEVEL = 200
ERROR_CHARACTER_NOT_ON_ACCOUNT = 201
ERROR_NPC_CORPORATION = 207
ERROR_NOT_AVAILABLE = 209
ERROR_LOGIN_DENIED = 211
ERROR_SECURITY_LEVEL_ALT = 220
ERROR_ILLEGAL_PAGE = 221
ERROR_ACCOUNT_EXPIRED = 222
ERROR_CHARACTER_NOT_ON_ACCOUNT_ALT = 522

AUTHENTICATION_FAILURE_CODES = frozenset({202, 203, 204, 205, 210, 521})
SERVICE_UNAVAILABLE_CODES = frozenset({403, 502, 503})
SERVER_ERROR_CODES = frozenset({404, 500, 520, 902})
