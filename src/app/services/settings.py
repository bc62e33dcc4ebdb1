"""
Auth Settings

Immutable view of ApplicationConfig handed to the core services.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, Tuple

from src.app.errors import ConfigurationError

MIN_SECRET_LENGTH = 32
SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")


@dataclass(frozen=True)
class OAuthProviderConfig:
    name: str
    client_id: str
    client_secret: str
    auth_url: str
    token_url: str
    userinfo_url: str
    scopes: Tuple[str, ...]
    emails_url: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class AuthSettings:
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_ttl: timedelta = timedelta(minutes=15)
    refresh_token_ttl: timedelta = timedelta(days=7)
    challenge_ttl: timedelta = timedelta(minutes=5)
    oauth_state_ttl: timedelta = timedelta(minutes=10)
    session_policy: str = "multi"
    bcrypt_rounds: int = 12
    password_history_size: int = 5
    totp_issuer: str = "IAM Service"
    backup_code_count: int = 10
    login_ip_limit: RateLimitRule = RateLimitRule(20, 300)
    login_account_limit: RateLimitRule = RateLimitRule(5, 300)
    two_factor_limit: RateLimitRule = RateLimitRule(5, 300)
    refresh_limit: RateLimitRule = RateLimitRule(60, 60)
    oauth_limit: RateLimitRule = RateLimitRule(20, 300)
    oauth_auto_provision: bool = False
    oauth_redirect_uri: str = "http://localhost:8000/auth/oauth/callback/{provider}"
    oauth_providers: Dict[str, OAuthProviderConfig] = field(default_factory=dict)

    def __post_init__(self):
        # Never fall back to unsigned or weakly signed tokens
        if not self.jwt_secret or len(self.jwt_secret) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters"
            )
        if self.jwt_algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported JWT algorithm: {self.jwt_algorithm}")
        if self.session_policy not in ("multi", "single"):
            raise ConfigurationError(f"Unknown SESSION_POLICY: {self.session_policy}")

    @classmethod
    def from_config(cls, config) -> "AuthSettings":
        return cls(
            jwt_secret=config.JWT_SECRET,
            jwt_algorithm=config.JWT_ALGORITHM,
            access_token_ttl=timedelta(minutes=config.ACCESS_TOKEN_TTL_MINUTES),
            refresh_token_ttl=timedelta(days=config.REFRESH_TOKEN_TTL_DAYS),
            challenge_ttl=timedelta(minutes=config.CHALLENGE_TTL_MINUTES),
            oauth_state_ttl=timedelta(minutes=config.OAUTH_STATE_TTL_MINUTES),
            session_policy=config.SESSION_POLICY,
            bcrypt_rounds=config.BCRYPT_ROUNDS,
            password_history_size=config.PASSWORD_HISTORY_SIZE,
            totp_issuer=config.TOTP_ISSUER,
            backup_code_count=config.BACKUP_CODE_COUNT,
            login_ip_limit=RateLimitRule(*config.LOGIN_IP_RATE_LIMIT),
            login_account_limit=RateLimitRule(*config.LOGIN_ACCOUNT_RATE_LIMIT),
            two_factor_limit=RateLimitRule(*config.TWO_FACTOR_RATE_LIMIT),
            refresh_limit=RateLimitRule(*config.REFRESH_RATE_LIMIT),
            oauth_limit=RateLimitRule(*config.OAUTH_RATE_LIMIT),
            oauth_auto_provision=config.OAUTH_AUTO_PROVISION,
            oauth_redirect_uri=config.OAUTH_REDIRECT_URI,
            oauth_providers=build_oauth_providers(config),
        )


def build_oauth_providers(config) -> Dict[str, OAuthProviderConfig]:
    """Known providers; only those with credentials are enabled."""
    return {
        "google": OAuthProviderConfig(
            name="google",
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            auth_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
            scopes=("openid", "email", "profile"),
        ),
        "github": OAuthProviderConfig(
            name="github",
            client_id=config.GITHUB_CLIENT_ID,
            client_secret=config.GITHUB_CLIENT_SECRET,
            auth_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            emails_url="https://api.github.com/user/emails",
            scopes=("read:user", "user:email"),
        ),
        "microsoft": OAuthProviderConfig(
            name="microsoft",
            client_id=config.MICROSOFT_CLIENT_ID,
            client_secret=config.MICROSOFT_CLIENT_SECRET,
            auth_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
            token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
            userinfo_url="https://graph.microsoft.com/oidc/userinfo",
            scopes=("openid", "email", "profile"),
        ),
    }
