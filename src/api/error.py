from fastapi import status

from src.app.errors import AuthErrorCode
from src.libs.result import Error


class ClientError(Exception):
    def __init__(self, base_error: Error, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.base_error = base_error
        self.status_code = status_code
        super().__init__(base_error.message)


class ServerError(Exception):
    def __init__(self, base_error: Error, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        self.base_error = base_error
        self.status_code = status_code
        super().__init__(base_error.message)


_UNAUTHORIZED = {
    AuthErrorCode.INVALID_CREDENTIALS,
    AuthErrorCode.INVALID_CODE,
    AuthErrorCode.CHALLENGE_EXPIRED,
    AuthErrorCode.MALFORMED_TOKEN,
    AuthErrorCode.INVALID_SIGNATURE,
    AuthErrorCode.TOKEN_EXPIRED,
    AuthErrorCode.TOKEN_REVOKED,
    AuthErrorCode.TOKEN_NOT_FOUND,
    AuthErrorCode.SESSION_REVOKED,
    AuthErrorCode.STATE_MISMATCH,
    AuthErrorCode.ADMIN_KEY_INVALID,
}

STATUS_BY_CODE = {
    **{code.value: status.HTTP_401_UNAUTHORIZED for code in _UNAUTHORIZED},
    AuthErrorCode.FORBIDDEN.value: status.HTTP_403_FORBIDDEN,
    AuthErrorCode.ACCOUNT_INACTIVE.value: status.HTTP_403_FORBIDDEN,
    AuthErrorCode.EMAIL_NOT_VERIFIED.value: status.HTTP_403_FORBIDDEN,
    AuthErrorCode.SESSION_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.PRINCIPAL_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.ALREADY_ENROLLED.value: status.HTTP_409_CONFLICT,
    AuthErrorCode.ACCOUNT_LINK_REQUIRED.value: status.HTTP_409_CONFLICT,
    AuthErrorCode.LINK_CONFLICT.value: status.HTTP_409_CONFLICT,
    AuthErrorCode.PASSWORD_POLICY_VIOLATION.value: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AuthErrorCode.RATE_LIMITED.value: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorCode.UNSUPPORTED_PROVIDER.value: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.NO_ENROLLMENT.value: status.HTTP_400_BAD_REQUEST,
}

SERVER_STATUS_BY_CODE = {
    AuthErrorCode.PROVIDER_ERROR.value: status.HTTP_502_BAD_GATEWAY,
    AuthErrorCode.SERVICE_UNAVAILABLE.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    AuthErrorCode.NOT_IMPLEMENTED.value: status.HTTP_501_NOT_IMPLEMENTED,
}


def raise_for_error(error: Error):
    """Map a use-case error onto the HTTP exception the app handlers render"""
    if error.code in STATUS_BY_CODE:
        raise ClientError(error, status_code=STATUS_BY_CODE[error.code])
    raise ServerError(error, status_code=SERVER_STATUS_BY_CODE.get(error.code, 500))
