"""
OAuth Linker

    RedirectIssued -> StateConsumed -> IdentityExchanged -> Linked | Created | Error

Maps an external provider identity onto a local principal. Token issuance
happens afterwards in the orchestrator, exactly as for a password login.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlencode
from uuid import UUID

from src.app.errors import AuthErrorCode, ProviderUnavailableError, auth_error
from src.app.services.clock import Clock
from src.app.services.oauth_provider_client import OAuthProviderClient, ProviderIdentity
from src.app.services.settings import AuthSettings, OAuthProviderConfig
from src.app.services.unit_of_work import UnitOfWork
from src.domain.entities import OAuthLink, OAuthState, Principal
from src.libs.result import Result, Return

logger = logging.getLogger(__name__)


class OAuthOutcome:
    LINKED = "linked"
    CREATED = "created"
    ACCOUNT_LINKED = "account_linked"


@dataclass(frozen=True)
class AuthorizationRequest:
    authorization_url: str
    state: str
    provider: str


@dataclass(frozen=True)
class OAuthResolution:
    outcome: str
    principal: Principal
    identity: ProviderIdentity

    @property
    def is_new_principal(self) -> bool:
        return self.outcome == OAuthOutcome.CREATED

    @property
    def signs_in(self) -> bool:
        """An explicit account-linking flow does not start a session"""
        return self.outcome != OAuthOutcome.ACCOUNT_LINKED


class OAuthLinker:
    """
    External identity linking.

    Business Rules:
    - Every callback must present the single-use state issued for that provider
    - At most one principal per (provider, provider_user_id)
    - Only verified provider emails are trusted
    - Unknown identities are auto-provisioned only when the policy flag allows
      it and no principal already owns the email; otherwise an explicit link
      is required
    - Runs inside the caller's unit of work; the caller commits. The state is
      consumed and committed before the code exchange, and the exchange runs
      with no transaction open
    """

    def __init__(
        self,
        uow: UnitOfWork,
        settings: AuthSettings,
        clock: Clock,
        provider_client: OAuthProviderClient,
    ):
        self.uow = uow
        self.settings = settings
        self.clock = clock
        self.provider_client = provider_client

    async def build_authorization_url(
        self,
        provider: str,
        tenant_hint: Optional[str] = None,
        principal_id: Optional[UUID] = None,
    ) -> Result[AuthorizationRequest]:
        """
        Persist a fresh state and return the provider's consent URL.

        Passing `principal_id` starts an explicit account-linking flow.
        """
        config = self._provider(provider)
        if config is None:
            return Return.err(self._unsupported(provider))

        now = self.clock.now()
        state = secrets.token_urlsafe(32)
        await self.uow.oauth.create_state(
            OAuthState(
                state=state,
                provider=provider,
                tenant_hint=tenant_hint,
                principal_id=principal_id,
                created_at=now,
                expires_at=now + self.settings.oauth_state_ttl,
            )
        )

        params = {
            "client_id": config.client_id,
            "redirect_uri": self.redirect_uri(provider),
            "response_type": "code",
            "scope": " ".join(config.scopes),
            "state": state,
        }
        if provider == "google":
            params["access_type"] = "online"
            params["prompt"] = "select_account"

        url = f"{config.auth_url}?{urlencode(params)}"
        return Return.ok(AuthorizationRequest(authorization_url=url, state=state, provider=provider))

    def available_providers(self) -> List[OAuthProviderConfig]:
        """Providers with credentials configured, in configuration order"""
        return [config for config in self.settings.oauth_providers.values() if config.enabled]

    async def consume_state(self, provider: str, state: Optional[str]) -> Result[OAuthState]:
        """
        Burn the single-use state presented on a callback.

        The caller commits this on its own, before any provider round trip.

        Returns:
            Result with the issued OAuthState, or UNSUPPORTED_PROVIDER / STATE_MISMATCH
        """
        if self._provider(provider) is None:
            return Return.err(self._unsupported(provider))

        if not state:
            return Return.err(self._state_mismatch())
        issued = await self.uow.oauth.consume_state(state, provider, self.clock.now())
        if issued is None:
            return Return.err(self._state_mismatch())
        return Return.ok(issued)

    async def exchange_code(self, provider: str, code: Optional[str]) -> Result[ProviderIdentity]:
        """
        Trade the authorization code for a verified provider identity.

        Never touches the store; call it with no transaction open.

        Returns:
            Result with ProviderIdentity, or PROVIDER_ERROR / EMAIL_NOT_VERIFIED
        """
        if not code:
            return Return.err(
                auth_error(AuthErrorCode.PROVIDER_ERROR, "Authorization code missing")
            )

        try:
            identity = await self.provider_client.exchange_code(provider, code)
        except ProviderUnavailableError as exc:
            logger.warning(f"OAuth code exchange failed for {provider}: {exc}")
            return Return.err(
                auth_error(AuthErrorCode.PROVIDER_ERROR, "Identity provider is unavailable")
            )

        if not identity.email or not identity.email_verified:
            return Return.err(
                auth_error(
                    AuthErrorCode.EMAIL_NOT_VERIFIED,
                    "The provider did not return a verified email address",
                )
            )
        return Return.ok(identity)

    async def resolve(
        self, issued: OAuthState, identity: ProviderIdentity
    ) -> Result[OAuthResolution]:
        """
        Map a verified identity onto a local principal.

        Auto-provisioned principals belong to no tenant. The state's tenant
        hint comes from an unauthenticated request, so it is echoed back to
        the client and never used for membership.

        Returns:
            Result with OAuthResolution, or ACCOUNT_LINK_REQUIRED / LINK_CONFLICT /
            PRINCIPAL_NOT_FOUND
        """
        if issued.principal_id is not None:
            return await self.link(issued.principal_id, identity)

        provider = identity.provider
        link = await self.uow.oauth.get_link(provider, identity.provider_user_id)
        if link is not None:
            principal = await self.uow.principals.get_by_id(link.principal_id)
            if principal is None:
                return Return.err(self._link_required())
            return Return.ok(OAuthResolution(OAuthOutcome.LINKED, principal, identity))

        email = identity.email.lower()
        if not self.settings.oauth_auto_provision:
            return Return.err(self._link_required())
        if await self.uow.principals.get_by_email(email) is not None:
            return Return.err(self._link_required())

        principal = await self.uow.principals.create(
            Principal(email=email, tenant_id=None, created_at=self.clock.now())
        )
        await self._create_link(principal.id, identity)
        logger.info(f"Provisioned principal {principal.id} from {provider}")
        return Return.ok(OAuthResolution(OAuthOutcome.CREATED, principal, identity))

    async def link(self, principal_id: UUID, identity: ProviderIdentity) -> Result[OAuthResolution]:
        """Attach a provider identity to an existing principal"""
        principal = await self.uow.principals.get_by_id(principal_id)
        if principal is None:
            return Return.err(
                auth_error(AuthErrorCode.PRINCIPAL_NOT_FOUND, "Principal not found")
            )

        existing = await self.uow.oauth.get_link(identity.provider, identity.provider_user_id)
        if existing is not None and existing.principal_id != principal_id:
            return Return.err(
                auth_error(
                    AuthErrorCode.LINK_CONFLICT,
                    "This provider account is linked to another user",
                )
            )
        if existing is None:
            await self._create_link(principal_id, identity)

        return Return.ok(OAuthResolution(OAuthOutcome.ACCOUNT_LINKED, principal, identity))

    def redirect_uri(self, provider: str) -> str:
        return self.settings.oauth_redirect_uri.format(provider=provider)

    async def _create_link(self, principal_id: UUID, identity: ProviderIdentity) -> OAuthLink:
        return await self.uow.oauth.create_link(
            OAuthLink(
                provider=identity.provider,
                provider_user_id=identity.provider_user_id,
                principal_id=principal_id,
                email=identity.email.lower() if identity.email else None,
                created_at=self.clock.now(),
            )
        )

    def _provider(self, provider: str) -> Optional[OAuthProviderConfig]:
        config = self.settings.oauth_providers.get(provider)
        if config is None or not config.enabled:
            return None
        return config

    @staticmethod
    def _unsupported(provider: str):
        return auth_error(
            AuthErrorCode.UNSUPPORTED_PROVIDER, f"OAuth provider '{provider}' is not supported"
        )

    @staticmethod
    def _state_mismatch():
        return auth_error(AuthErrorCode.STATE_MISMATCH, "Invalid or expired OAuth state")

    @staticmethod
    def _link_required():
        return auth_error(
            AuthErrorCode.ACCOUNT_LINK_REQUIRED,
            "Sign in and link this provider from your account first",
        )
