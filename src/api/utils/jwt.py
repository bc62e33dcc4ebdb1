import calendar
from datetime import UTC, datetime

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError


class TokenDecodeError(Exception):
    """Base class for tokens that cannot be trusted"""


class MalformedTokenError(TokenDecodeError):
    """Not a JWT, or claims of the wrong shape"""


class InvalidSignatureError(TokenDecodeError):
    """Well-formed JWT whose signature does not verify with our key"""


def to_timestamp(value: datetime) -> int:
    """Naive UTC datetime -> epoch seconds"""
    return calendar.timegm(value.utctimetuple())


def from_timestamp(value: int) -> datetime:
    """Epoch seconds -> naive UTC datetime"""
    return datetime.fromtimestamp(int(value), UTC).replace(tzinfo=None)


def encode_jwt(claims: dict, secret: str, algorithm: str) -> str:
    """
    Sign a claim set.

    Args:
        claims: JSON-serialisable claims; datetimes must already be epoch ints
        secret: HMAC signing key
        algorithm: One of HS256/HS384/HS512

    Returns:
        Compact JWS string
    """
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_jwt(token: str, secret: str, algorithm: str) -> dict:
    """
    Verify signature and decode a JWT.

    Expiry is NOT checked here: callers compare `exp` against their own clock.

    Raises:
        MalformedTokenError: token is not a decodable JWT
        InvalidSignatureError: signature does not verify
    """
    try:
        jwt.get_unverified_header(token)
    except JWTError as exc:
        raise MalformedTokenError(str(exc)) from exc

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_exp": False, "verify_aud": False},
        )
    except JWTClaimsError as exc:
        raise MalformedTokenError(str(exc)) from exc
    except JWTError as exc:
        raise InvalidSignatureError(str(exc)) from exc
