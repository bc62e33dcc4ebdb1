"""
RFC 6238 time-based one-time passwords.

SHA-1, 6 digits, 30 second step: the parameters every authenticator app
understands.
"""

import base64
import hashlib
import hmac
import secrets
from typing import Optional
from urllib.parse import quote, urlencode

TOTP_INTERVAL = 30
TOTP_DIGITS = 6
SECRET_BYTES = 20


def generate_secret() -> str:
    return base64.b32encode(secrets.token_bytes(SECRET_BYTES)).decode().rstrip("=")


def time_step(timestamp: float, interval: int = TOTP_INTERVAL) -> int:
    return int(timestamp // interval)


def _decode_secret(secret: str) -> bytes:
    padded = secret.upper() + "=" * ((8 - len(secret) % 8) % 8)
    return base64.b32decode(padded, casefold=True)


def code_at_step(secret: str, step: int, digits: int = TOTP_DIGITS) -> str:
    key = _decode_secret(secret)
    digest = hmac.new(key, step.to_bytes(8, "big"), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code_int = (int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF) % (
        10**digits
    )
    return str(code_int).zfill(digits)


def match_step(
    secret: str, code: str, timestamp: float, window: int = 1, interval: int = TOTP_INTERVAL
) -> Optional[int]:
    """
    Return the time step whose code equals `code`, searching +/- `window` steps
    around `timestamp`, or None.
    """
    code = code.strip().replace(" ", "")
    if len(code) != TOTP_DIGITS or not code.isdigit():
        return None

    current = time_step(timestamp, interval)
    for step in range(current - window, current + window + 1):
        if hmac.compare_digest(code_at_step(secret, step), code):
            return step
    return None


def provisioning_uri(secret: str, account: str, issuer: str) -> str:
    label = quote(f"{issuer}:{account}")
    params = urlencode(
        {
            "secret": secret,
            "issuer": issuer,
            "algorithm": "SHA1",
            "digits": TOTP_DIGITS,
            "period": TOTP_INTERVAL,
        }
    )
    return f"otpauth://totp/{label}?{params}"
