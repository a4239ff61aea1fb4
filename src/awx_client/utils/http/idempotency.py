"""Idempotency keys for financially sensitive operations.

POST calls that create money movements or payment instruments carry an
``x-idempotency-key`` header so that the API can recognise retried
copies of the same logical operation. The key is generated once per call
and reused across that call's retries.
"""

import secrets
from typing import FrozenSet

IDEMPOTENCY_HEADER = "x-idempotency-key"
IDEMPOTENCY_KEY_BYTES = 16

API_PATH_PREFIX = "/api/v1"

# Operations that move money or issue instruments.
FINANCIAL_OPERATIONS: FrozenSet[str] = frozenset(
    {
        "/transfers/create",
        "/beneficiaries/create",
        "/issuing/cards/create",
        "/fx/conversions/create",
        "/linked_accounts/create",
        "/pa/payment_links/create",
    }
)


def generate_idempotency_key() -> str:
    """Return a new key: 16 random bytes, hex encoded (32 characters)."""
    return secrets.token_hex(IDEMPOTENCY_KEY_BYTES)


def is_financial_operation(path: str) -> bool:
    """Return whether a request path needs an idempotency key.

    The query string is ignored. The remaining path must be exactly one
    of the financial operations, either as given or under the API
    prefix; anything longer, shorter, or decorated does not match.

    >>> is_financial_operation("/api/v1/transfers/create?dry=1")
    True
    >>> is_financial_operation("/api/v1/transfers/create-preview")
    False
    """
    path = path.split("?", 1)[0]
    if path.startswith(API_PATH_PREFIX + "/"):
        path = path[len(API_PATH_PREFIX):]
    return path in FINANCIAL_OPERATIONS


def requires_idempotency_key(method: str, path: str) -> bool:
    """Return whether a call should carry an idempotency key.

    Only POST requests to financial operations qualify.
    """
    return method.upper() == "POST" and is_financial_operation(path)
