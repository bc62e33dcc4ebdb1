from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import pytest

from src.app.services.oauth_linker import OAuthLinker, OAuthOutcome
from src.app.services.oauth_provider_client import ProviderIdentity
from tests.fixtures.fakes import make_settings


def google_identity(user_id="g-1", email="oauth@acme.com", verified=True):
    return ProviderIdentity(
        provider="google",
        provider_user_id=user_id,
        email=email,
        email_verified=verified,
        name="OAuth User",
    )


@pytest.fixture
def linker(uow, settings, clock, provider_client):
    return OAuthLinker(uow, settings, clock, provider_client)


async def _issue_state(uow, linker, provider="google", **kwargs):
    async with uow:
        request = (await linker.build_authorization_url(provider, **kwargs)).value
        await uow.commit()
    return request.state


async def _callback(uow, linker, provider, code, state):
    """Consume, exchange and resolve in the order the orchestrator runs them"""
    async with uow:
        consumed = await linker.consume_state(provider, state)
        if consumed.is_err():
            return consumed
        await uow.commit()

    exchanged = await linker.exchange_code(provider, code)
    if exchanged.is_err():
        return exchanged

    async with uow:
        result = await linker.resolve(consumed.value, exchanged.value)
        await uow.commit()
    return result


@pytest.mark.asyncio
async def test_authorization_url_carries_state_and_redirect(uow, linker):
    async with uow:
        result = await linker.build_authorization_url("google", tenant_hint="acme")
        await uow.commit()

    request = result.value
    parsed = urlparse(request.authorization_url)
    params = parse_qs(parsed.query)
    assert parsed.netloc == "accounts.example.com"
    assert params["client_id"] == ["google-client"]
    assert params["state"] == [request.state]
    assert params["response_type"] == ["code"]
    assert params["redirect_uri"] == ["http://localhost:8000/auth/oauth/callback/google"]
    assert params["scope"] == ["openid email profile"]


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", ["microsoft", "myspace"])
async def test_disabled_or_unknown_provider(uow, linker, provider):
    async with uow:
        result = await linker.build_authorization_url(provider)

    assert result.error.code == "UNSUPPORTED_PROVIDER"


@pytest.mark.asyncio
async def test_existing_link_signs_in(uow, linker, clock, provider_client, create_principal):
    principal = await create_principal(email="oauth@acme.com")
    async with uow:
        await linker.link(principal.id, google_identity())
        await uow.commit()
    state = await _issue_state(uow, linker)
    provider_client.register("code-1", google_identity())

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.value.outcome == OAuthOutcome.LINKED
    assert result.value.principal.id == principal.id
    assert result.value.signs_in is True


@pytest.mark.asyncio
async def test_state_is_single_use(uow, linker, provider_client, create_principal):
    principal = await create_principal(email="oauth@acme.com")
    async with uow:
        await linker.link(principal.id, google_identity())
        await uow.commit()
    state = await _issue_state(uow, linker)
    provider_client.register("code-1", google_identity())

    first = await _callback(uow, linker, "google", "code-1", state)
    second = await _callback(uow, linker, "google", "code-1", state)

    assert first.is_ok()
    assert second.error.code == "STATE_MISMATCH"
    # The replay never reached the provider
    assert len(provider_client.calls) == 1


@pytest.mark.asyncio
async def test_state_bound_to_provider(uow, linker, provider_client):
    state = await _issue_state(uow, linker, provider="github")

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.error.code == "STATE_MISMATCH"
    assert provider_client.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [None, "", "never-issued"])
async def test_missing_or_unknown_state(uow, linker, state):
    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.error.code == "STATE_MISMATCH"


@pytest.mark.asyncio
async def test_expired_state(uow, linker, clock, settings):
    state = await _issue_state(uow, linker)
    clock.advance(seconds=settings.oauth_state_ttl.total_seconds() + 1)

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.error.code == "STATE_MISMATCH"


@pytest.mark.asyncio
async def test_provider_failure_is_reported(uow, linker):
    state = await _issue_state(uow, linker)

    result = await _callback(uow, linker, "google", "unregistered-code", state)

    assert result.error.code == "PROVIDER_ERROR"


@pytest.mark.asyncio
async def test_unverified_email_is_refused(uow, linker, provider_client):
    state = await _issue_state(uow, linker)
    provider_client.register("code-1", google_identity(verified=False))

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.error.code == "EMAIL_NOT_VERIFIED"


@pytest.mark.asyncio
async def test_unknown_identity_requires_link_by_default(uow, linker, provider_client):
    state = await _issue_state(uow, linker)
    provider_client.register("code-1", google_identity())

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.error.code == "ACCOUNT_LINK_REQUIRED"


@pytest.mark.asyncio
async def test_auto_provision_creates_principal(uow, clock, provider_client):
    linker = OAuthLinker(uow, make_settings(oauth_auto_provision=True), clock, provider_client)
    state = await _issue_state(uow, linker)
    provider_client.register("code-1", google_identity(email="New.User@Acme.com"))

    result = await _callback(uow, linker, "google", "code-1", state)
    principal_id = result.value.principal.id

    assert result.value.outcome == OAuthOutcome.CREATED
    assert result.value.is_new_principal is True

    async with uow:
        principal = await uow.principals.get_by_id(principal_id)
        link = await uow.oauth.get_link("google", "g-1")
        assert principal.email == "new.user@acme.com"
        assert principal.password_hash is None
        assert link.principal_id == principal_id


@pytest.mark.asyncio
async def test_auto_provision_ignores_tenant_hint(uow, clock, provider_client):
    """The hint rides along on the state but never grants tenant membership"""
    tenant_id = uuid4()
    linker = OAuthLinker(uow, make_settings(oauth_auto_provision=True), clock, provider_client)
    state = await _issue_state(uow, linker, tenant_hint=str(tenant_id))
    provider_client.register("code-1", google_identity(email="outsider@elsewhere.example"))

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.value.outcome == OAuthOutcome.CREATED
    async with uow:
        principal = await uow.principals.get_by_id(result.value.principal.id)
        assert principal.tenant_id is None


@pytest.mark.asyncio
async def test_state_is_burned_before_the_exchange(uow, linker, provider_client):
    state = await _issue_state(uow, linker)

    async with uow:
        consumed = await linker.consume_state("google", state)
        await uow.commit()
    # A failed exchange does not give the state back
    exchanged = await linker.exchange_code("google", "unregistered-code")
    async with uow:
        replay = await linker.consume_state("google", state)

    assert consumed.is_ok()
    assert exchanged.error.code == "PROVIDER_ERROR"
    assert replay.error.code == "STATE_MISMATCH"


@pytest.mark.asyncio
async def test_missing_code(linker, provider_client):
    result = await linker.exchange_code("google", None)

    assert result.error.code == "PROVIDER_ERROR"
    assert provider_client.calls == []


def test_available_providers_lists_only_configured_ones(linker):
    # microsoft has no client credentials in the test settings
    assert [config.name for config in linker.available_providers()] == ["google", "github"]


@pytest.mark.asyncio
async def test_auto_provision_never_takes_over_existing_email(
    uow, clock, provider_client, create_principal
):
    await create_principal(email="oauth@acme.com")
    linker = OAuthLinker(uow, make_settings(oauth_auto_provision=True), clock, provider_client)
    state = await _issue_state(uow, linker)
    provider_client.register("code-1", google_identity())

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.error.code == "ACCOUNT_LINK_REQUIRED"


@pytest.mark.asyncio
async def test_link_flow_attaches_identity(uow, linker, provider_client, create_principal):
    principal = await create_principal(email="someone@acme.com")
    state = await _issue_state(uow, linker, principal_id=principal.id)
    provider_client.register("code-1", google_identity(email="other@gmail.example"))

    result = await _callback(uow, linker, "google", "code-1", state)

    assert result.value.outcome == OAuthOutcome.ACCOUNT_LINKED
    assert result.value.signs_in is False
    async with uow:
        links = await uow.oauth.list_links_by_principal_id(principal.id)
        assert [(l.provider, l.provider_user_id) for l in links] == [("google", "g-1")]


@pytest.mark.asyncio
async def test_link_conflict(uow, linker, create_principal):
    owner = await create_principal(email="owner@acme.com")
    other = await create_principal(email="other@acme.com")

    async with uow:
        await linker.link(owner.id, google_identity())
        await uow.commit()
    async with uow:
        conflict = await linker.link(other.id, google_identity())
        again = await linker.link(owner.id, google_identity())

    assert conflict.error.code == "LINK_CONFLICT"
    assert again.is_ok()
