"""
OAuthProviderClient over httpx.

Exchanges the authorization code at the provider's token endpoint and reads
the user's identity from the userinfo endpoint. Every failure (timeout,
transport error, non-2xx answer, unusable payload) surfaces as
ProviderUnavailableError.
"""

import logging
from typing import Dict, Optional

import httpx

from src.app.errors import ProviderUnavailableError
from src.app.services.oauth_provider_client import OAuthProviderClient, ProviderIdentity
from src.app.services.settings import OAuthProviderConfig

logger = logging.getLogger(__name__)


class HttpxOAuthProviderClient(OAuthProviderClient):
    def __init__(
        self,
        providers: Dict[str, OAuthProviderConfig],
        redirect_uri_template: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.providers = providers
        self.redirect_uri_template = redirect_uri_template
        self.client = httpx.AsyncClient(
            timeout=timeout, follow_redirects=False, transport=transport
        )

    async def exchange_code(self, provider: str, code: str) -> ProviderIdentity:
        config = self.providers.get(provider)
        if config is None or not config.enabled:
            raise ProviderUnavailableError(f"Provider {provider} is not configured")

        try:
            access_token = await self._fetch_access_token(config, code)
            headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
            if provider == "github":
                headers["Accept"] = "application/vnd.github+json"

            response = await self.client.get(config.userinfo_url, headers=headers)
            response.raise_for_status()
            userinfo = response.json()
            if not isinstance(userinfo, dict):
                raise ProviderUnavailableError(f"Unexpected userinfo payload from {provider}")

            identity = _parse_userinfo(provider, userinfo)
            if provider == "github" and config.emails_url:
                identity = await self._github_primary_email(config, headers, identity)
        except httpx.HTTPStatusError as exc:
            logger.error(
                f"OAuth provider {provider} answered {exc.response.status_code}"
            )
            raise ProviderUnavailableError(f"Provider {provider} returned an error") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"OAuth exchange with {provider} failed: {exc}")
            raise ProviderUnavailableError(f"Provider {provider} is unreachable") from exc

        if not identity.provider_user_id:
            raise ProviderUnavailableError(f"Provider {provider} returned no user id")
        return identity

    async def _fetch_access_token(self, config: OAuthProviderConfig, code: str) -> str:
        response = await self.client.post(
            config.token_url,
            data={
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri_template.format(provider=config.name),
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise ProviderUnavailableError(f"No access token from {config.name}")
        return access_token

    async def _github_primary_email(
        self, config: OAuthProviderConfig, headers: dict, identity: ProviderIdentity
    ) -> ProviderIdentity:
        # GitHub's /user does not say whether the email is verified
        response = await self.client.get(config.emails_url, headers=headers)
        response.raise_for_status()
        emails = response.json()
        if not isinstance(emails, list):
            raise ProviderUnavailableError(f"Unexpected emails payload from {config.name}")
        primary = next(
            (e for e in emails if isinstance(e, dict) and e.get("primary")), None
        )
        if primary is None:
            return identity
        return ProviderIdentity(
            provider=identity.provider,
            provider_user_id=identity.provider_user_id,
            email=primary.get("email"),
            email_verified=bool(primary.get("verified")),
            name=identity.name,
        )

    async def close(self) -> None:
        await self.client.aclose()


def _parse_userinfo(provider: str, userinfo: dict) -> ProviderIdentity:
    if provider == "github":
        return ProviderIdentity(
            provider=provider,
            provider_user_id=str(userinfo.get("id") or ""),
            email=userinfo.get("email"),
            email_verified=False,
            name=userinfo.get("name") or userinfo.get("login"),
        )
    if provider == "microsoft":
        email = userinfo.get("email") or userinfo.get("preferred_username")
        return ProviderIdentity(
            provider=provider,
            provider_user_id=str(userinfo.get("sub") or userinfo.get("oid") or ""),
            email=email,
            # Entra ID only issues the email claim for verified domains
            email_verified=bool(userinfo.get("email")),
            name=userinfo.get("name"),
        )
    return ProviderIdentity(
        provider=provider,
        provider_user_id=str(userinfo.get("sub") or userinfo.get("id") or ""),
        email=userinfo.get("email"),
        email_verified=bool(userinfo.get("email_verified", False)),
        name=userinfo.get("name"),
    )
