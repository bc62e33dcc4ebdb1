from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import OperationalError

from src.api.utils.jwt import to_timestamp
from src.app.errors import ServiceUnavailableError
from src.app.services import totp
from src.app.services.oauth_provider_client import ProviderIdentity
from src.app.services.security_events import SecurityEventType
from src.app.services.session_manager import DeviceInfo
from src.app.use_cases.auth import AuthenticationOrchestrator
from src.app.use_cases.auth.authentication_orchestrator import (
    AUTHENTICATED,
    LINKED,
    MFA_REQUIRED,
)
from tests.fixtures.fakes import StubProviderClient, make_settings


PASSWORD = "Str0ng!Passw0rd"
DEVICE = DeviceInfo(user_agent="pytest-browser", ip_address="203.0.113.9")


@pytest.fixture
def orchestrator(uow, auth_context):
    return AuthenticationOrchestrator(uow, auth_context)


async def _enable_two_factor(orchestrator, clock, principal_id):
    """Enroll a principal and return its TOTP secret"""
    setup = (await orchestrator.setup_two_factor(principal_id)).value
    code = totp.code_at_step(setup.secret, totp.time_step(to_timestamp(clock.now())))
    assert (await orchestrator.confirm_two_factor(principal_id, code)).is_ok()
    clock.advance(seconds=30)
    return setup.secret


def _current_code(secret, clock):
    return totp.code_at_step(secret, totp.time_step(to_timestamp(clock.now())))


# ----------------------------------------------------------------------
# Login
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_successful_login(orchestrator, auth_context, sink, create_principal):
    """Correct credentials without 2FA yield a token pair bound to a new session"""
    # Arrange
    principal = await create_principal(email="user@acme.com")

    # Act
    result = await orchestrator.login("User@Acme.com ", PASSWORD, DEVICE)

    # Assert
    assert result.is_ok()
    response = result.value
    assert response.status == AUTHENTICATED
    assert response.challenge_id is None
    claims = auth_context.signer.verify_access_token(response.tokens.access_token).value
    assert claims.principal_id == principal.id
    assert claims.session_id == UUID(response.tokens.session_id)

    succeeded = sink.of_type(SecurityEventType.LOGIN_SUCCEEDED)
    assert succeeded[0]["principal_id"] == str(principal.id)
    assert succeeded[0]["ip_address"] == DEVICE.ip_address


@pytest.mark.asyncio
async def test_unknown_email_and_wrong_password_are_indistinguishable(
    orchestrator, sink, create_principal
):
    await create_principal(email="user@acme.com")

    unknown = await orchestrator.login("nobody@acme.com", PASSWORD, DEVICE)
    wrong = await orchestrator.login("user@acme.com", "Wr0ng!Password", DEVICE)

    assert unknown.error == wrong.error
    assert unknown.error.code == "INVALID_CREDENTIALS"
    # The audit trail still knows the difference
    reasons = [e["reason"] for e in sink.of_type(SecurityEventType.LOGIN_FAILED)]
    assert reasons == ["unknown_email", "bad_password"]


@pytest.mark.asyncio
async def test_long_password_on_unknown_email_is_plain_bad_credentials(
    orchestrator, create_principal
):
    """Inputs past bcrypt's 72-byte limit fail like any other bad password"""
    await create_principal(email="user@acme.com")
    long_password = "Aa1!" + "x" * 76

    unknown = await orchestrator.login("ghost@acme.com", long_password, DEVICE)
    known = await orchestrator.login("user@acme.com", long_password, DEVICE)

    assert unknown.error.code == "INVALID_CREDENTIALS"
    assert unknown.error == known.error


@pytest.mark.asyncio
async def test_login_inactive_account(orchestrator, create_principal):
    await create_principal(is_active=False)

    result = await orchestrator.login("user@acme.com", PASSWORD, DEVICE)

    assert result.error.code == "ACCOUNT_INACTIVE"


@pytest.mark.asyncio
async def test_inactive_account_with_wrong_password_looks_like_bad_credentials(
    orchestrator, create_principal
):
    await create_principal(is_active=False)

    result = await orchestrator.login("user@acme.com", "Wr0ng!Password", DEVICE)

    assert result.error.code == "INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_login_rate_limited_per_account(orchestrator, settings, sink, create_principal):
    await create_principal()
    for _ in range(settings.login_account_limit.limit):
        await orchestrator.login("user@acme.com", "Wr0ng!Password", DEVICE)

    # Even the right password is refused once the budget is spent
    result = await orchestrator.login("user@acme.com", PASSWORD, DEVICE)

    assert result.error.code == "RATE_LIMITED"
    assert result.error.details["retry_after"] == settings.login_account_limit.window_seconds
    assert SecurityEventType.RATE_LIMITED in sink.types()


@pytest.mark.asyncio
async def test_login_rate_limit_keys(orchestrator, rate_limiter, create_principal):
    await create_principal()

    await orchestrator.login("user@acme.com", PASSWORD, DEVICE)

    assert rate_limiter.keys == ["login:ip:203.0.113.9", "login:account:user@acme.com"]


# ----------------------------------------------------------------------
# Two-factor login
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_two_factor_login_issues_no_tokens_before_second_factor(
    orchestrator, clock, create_principal
):
    principal = await create_principal()
    await _enable_two_factor(orchestrator, clock, principal.id)

    result = await orchestrator.login("user@acme.com", PASSWORD, DEVICE)

    response = result.value
    assert response.status == MFA_REQUIRED
    assert response.tokens is None
    assert response.challenge_id is not None
    assert response.challenge_expires_at > clock.now()


@pytest.mark.asyncio
async def test_complete_two_factor(orchestrator, auth_context, clock, sink, create_principal):
    principal = await create_principal()
    secret = await _enable_two_factor(orchestrator, clock, principal.id)
    challenge = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    result = await orchestrator.complete_two_factor(
        challenge.challenge_id, _current_code(secret, clock), DeviceInfo()
    )

    assert result.value.status == AUTHENTICATED
    claims = auth_context.signer.verify_access_token(result.value.tokens.access_token).value
    assert claims.principal_id == principal.id
    # The session carries the device that submitted the password
    sessions = (await orchestrator.list_sessions(principal.id)).value
    assert sessions[0].device == DEVICE.user_agent
    assert sessions[0].ip_address == DEVICE.ip_address
    assert SecurityEventType.TWO_FACTOR_SUCCEEDED in sink.types()


@pytest.mark.asyncio
async def test_invalid_code_keeps_challenge_usable(orchestrator, clock, sink, create_principal):
    principal = await create_principal()
    secret = await _enable_two_factor(orchestrator, clock, principal.id)
    challenge = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    wrong = await orchestrator.complete_two_factor(challenge.challenge_id, "000000")
    right = await orchestrator.complete_two_factor(
        challenge.challenge_id, _current_code(secret, clock)
    )

    assert wrong.error.code == "INVALID_CODE"
    assert right.is_ok()
    failed = sink.of_type(SecurityEventType.TWO_FACTOR_FAILED)
    assert failed[-1]["principal_id"] == str(principal.id)
    assert failed[-1]["reason"] == "INVALID_CODE"


@pytest.mark.asyncio
async def test_challenge_is_single_use(orchestrator, clock, create_principal):
    principal = await create_principal()
    secret = await _enable_two_factor(orchestrator, clock, principal.id)
    challenge = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    first = await orchestrator.complete_two_factor(
        challenge.challenge_id, _current_code(secret, clock)
    )
    clock.advance(seconds=30)
    second = await orchestrator.complete_two_factor(
        challenge.challenge_id, _current_code(secret, clock)
    )

    assert first.is_ok()
    assert second.error.code == "CHALLENGE_EXPIRED"


@pytest.mark.asyncio
async def test_expired_challenge(orchestrator, settings, clock, create_principal):
    principal = await create_principal()
    secret = await _enable_two_factor(orchestrator, clock, principal.id)
    challenge = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    clock.advance(seconds=settings.challenge_ttl.total_seconds())
    result = await orchestrator.complete_two_factor(
        challenge.challenge_id, _current_code(secret, clock)
    )

    assert result.error.code == "CHALLENGE_EXPIRED"


@pytest.mark.asyncio
@pytest.mark.parametrize("challenge_id", ["not-a-uuid", str(uuid4())])
async def test_unknown_challenge(orchestrator, challenge_id):
    result = await orchestrator.complete_two_factor(challenge_id, "123456")

    assert result.error.code == "CHALLENGE_EXPIRED"


@pytest.mark.asyncio
async def test_backup_code_completes_login(orchestrator, clock, sink, create_principal):
    principal = await create_principal()
    setup = (await orchestrator.setup_two_factor(principal.id)).value
    codes = (
        await orchestrator.confirm_two_factor(principal.id, _current_code(setup.secret, clock))
    ).value.backup_codes
    challenge = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    result = await orchestrator.complete_two_factor(challenge.challenge_id, codes[0])

    assert result.value.status == AUTHENTICATED
    assert SecurityEventType.BACKUP_CODE_USED in sink.types()
    status = (await orchestrator.two_factor_status(principal.id)).value
    assert status.remaining_backup_codes == len(codes) - 1


# ----------------------------------------------------------------------
# Refresh / logout
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_refresh_and_logout(orchestrator, sink, create_principal):
    await create_principal()
    tokens = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value.tokens

    rotated = await orchestrator.refresh(tokens.refresh_token, DEVICE)
    logout = await orchestrator.logout(rotated.value.refresh_token, DEVICE)
    after = await orchestrator.refresh(rotated.value.refresh_token, DEVICE)

    assert rotated.is_ok()
    assert logout.value.ok is True
    assert after.error.code == "TOKEN_REVOKED"
    assert SecurityEventType.TOKEN_REFRESHED in sink.types()
    assert SecurityEventType.LOGOUT in sink.types()


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["", "garbage"])
async def test_logout_is_always_ok(orchestrator, token):
    result = await orchestrator.logout(token)

    assert result.is_ok()


@pytest.mark.asyncio
async def test_refresh_failure_is_recorded(orchestrator, sink):
    result = await orchestrator.refresh("garbage", DEVICE)

    assert result.error.code == "MALFORMED_TOKEN"
    failed = sink.of_type(SecurityEventType.TOKEN_REFRESH_FAILED)
    assert failed[0]["reason"] == "MALFORMED_TOKEN"


# ----------------------------------------------------------------------
# Sessions
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_revoke_foreign_session_is_forbidden(orchestrator, sink, create_principal):
    owner = await create_principal(email="owner@acme.com")
    intruder = await create_principal(email="intruder@acme.com")
    tokens = (await orchestrator.login("owner@acme.com", PASSWORD, DEVICE)).value.tokens

    result = await orchestrator.revoke_session(intruder.id, UUID(tokens.session_id))

    assert result.error.code == "FORBIDDEN"
    assert SecurityEventType.SESSION_REVOKE_DENIED in sink.types()
    still_valid = await orchestrator.refresh(tokens.refresh_token)
    assert still_valid.is_ok()
    assert owner.id != intruder.id


@pytest.mark.asyncio
async def test_revoke_all_sessions_except_current(orchestrator, create_principal):
    principal = await create_principal()
    current = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value.tokens
    await orchestrator.login("user@acme.com", PASSWORD, DEVICE)
    await orchestrator.login("user@acme.com", PASSWORD, DEVICE)

    result = await orchestrator.revoke_all_sessions(
        principal.id, current_session_id=UUID(current.session_id)
    )
    stats = (await orchestrator.session_stats(principal.id, UUID(current.session_id))).value

    assert result.value.revoked_count == 2
    assert stats.active_sessions == 1
    assert stats.total_sessions == 3
    assert stats.current_session_id == current.session_id


@pytest.mark.asyncio
async def test_suspicious_sessions_and_history(orchestrator, create_principal):
    principal = await create_principal()
    browser = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value.tokens
    scripted = (
        await orchestrator.login(
            "user@acme.com", PASSWORD, DeviceInfo(user_agent="python-requests/2.31 bot")
        )
    ).value.tokens
    await orchestrator.revoke_session(principal.id, UUID(browser.session_id))

    suspicious = (await orchestrator.detect_suspicious_sessions(principal.id)).value
    history = (await orchestrator.session_history(principal.id)).value

    assert [s.session_id for s in suspicious] == [scripted.session_id]
    assert suspicious[0].reasons == ["automated_user_agent"]
    assert {h.session_id: h.revoked for h in history} == {
        browser.session_id: True,
        scripted.session_id: False,
    }


# ----------------------------------------------------------------------
# Passwords
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_change_password_logs_out_other_sessions(orchestrator, create_principal):
    principal = await create_principal()
    current = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value.tokens
    other = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value.tokens

    result = await orchestrator.change_password(
        principal.id, PASSWORD, "N3w!Horse-Battery", current_session_id=UUID(current.session_id)
    )

    assert result.value.revoked_sessions == 1
    assert (await orchestrator.refresh(current.refresh_token)).is_ok()
    assert (await orchestrator.refresh(other.refresh_token)).error.code == "TOKEN_REVOKED"
    assert (await orchestrator.login("user@acme.com", "N3w!Horse-Battery")).is_ok()
    assert (await orchestrator.login("user@acme.com", PASSWORD)).is_err()


@pytest.mark.asyncio
async def test_change_password_requires_current_password(orchestrator, sink, create_principal):
    principal = await create_principal()

    result = await orchestrator.change_password(principal.id, "Wr0ng!Password", "N3w!Horse-Battery")

    assert result.error.code == "INVALID_CREDENTIALS"
    assert SecurityEventType.PASSWORD_CHANGE_FAILED in sink.types()


@pytest.mark.asyncio
async def test_change_password_rejects_reuse(orchestrator, create_principal):
    principal = await create_principal()

    result = await orchestrator.change_password(principal.id, PASSWORD, PASSWORD)

    assert result.error.code == "PASSWORD_POLICY_VIOLATION"
    assert result.error.details["violations"] == ["REUSED_RECENTLY"]


@pytest.mark.asyncio
async def test_change_to_long_password(orchestrator, create_principal):
    principal = await create_principal()
    long_password = "N3w!Horse-" + "b" * 70
    truncated = long_password[:72]

    result = await orchestrator.change_password(principal.id, PASSWORD, long_password)

    assert result.is_ok()
    assert (await orchestrator.login("user@acme.com", long_password, DEVICE)).is_ok()
    # The whole password counts, not just the first 72 bytes
    assert (await orchestrator.login("user@acme.com", truncated, DEVICE)).is_err()


@pytest.mark.asyncio
async def test_oauth_principal_sets_first_password(orchestrator, create_principal):
    principal = await create_principal(password=None)

    result = await orchestrator.change_password(principal.id, None, "N3w!Horse-Battery")

    assert result.is_ok()


@pytest.mark.asyncio
async def test_validate_and_generate_password(orchestrator):
    weak = (await orchestrator.validate_password("abc")).value
    generated = (await orchestrator.generate_password(20)).value
    too_short = await orchestrator.generate_password(4)

    assert weak.valid is False
    assert "TOO_SHORT" in weak.violations
    assert weak.strength.level in ("very_weak", "weak")
    assert len(generated.password) == 20
    assert (await orchestrator.validate_password(generated.password)).value.valid is True
    assert too_short.error.code == "PASSWORD_POLICY_VIOLATION"


# ----------------------------------------------------------------------
# OAuth
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_oauth_login_for_linked_principal(
    orchestrator, provider_client, auth_context, create_principal
):
    principal = await create_principal(email="user@acme.com")
    link_start = (await orchestrator.start_oauth("google", principal_id=principal.id)).value
    identity = ProviderIdentity("google", "g-77", "user@acme.com", True, "User")
    provider_client.register("link-code", identity)
    provider_client.register("login-code", identity)

    linked = await orchestrator.oauth_callback("google", "link-code", link_start.state)
    login_start = (await orchestrator.start_oauth("google")).value
    login = await orchestrator.oauth_callback("google", "login-code", login_start.state)

    assert linked.value.status == LINKED
    assert linked.value.tokens is None
    assert login.value.status == AUTHENTICATED
    claims = auth_context.signer.verify_access_token(login.value.tokens.access_token).value
    assert claims.principal_id == principal.id


@pytest.mark.asyncio
async def test_oauth_state_replay(orchestrator, provider_client, sink):
    start = (await orchestrator.start_oauth("google")).value
    provider_client.register("code", ProviderIdentity("google", "g-1", "a@acme.com", True))

    first = await orchestrator.oauth_callback("google", "code", start.state)
    second = await orchestrator.oauth_callback("google", "code", start.state)

    assert first.error.code == "ACCOUNT_LINK_REQUIRED"
    assert second.error.code == "STATE_MISMATCH"
    assert len(sink.of_type(SecurityEventType.OAUTH_LOGIN_FAILED)) == 2


@pytest.mark.asyncio
async def test_oauth_without_provider_client(uow, auth_context):
    from dataclasses import replace

    orchestrator = AuthenticationOrchestrator(uow, replace(auth_context, provider_client=None))

    result = await orchestrator.start_oauth("google")

    assert result.error.code == "NOT_IMPLEMENTED"
    assert orchestrator.oauth_providers().value.providers == []


def test_oauth_providers(orchestrator):
    providers = orchestrator.oauth_providers().value.providers

    assert [p.name for p in providers] == ["google", "github"]
    assert providers[0].scopes == ["openid", "email", "profile"]


@pytest.mark.asyncio
async def test_oauth_tenant_hint_never_reaches_the_token(uow, auth_context, provider_client):
    """A self-provisioned principal cannot pick its tenant on the start request"""
    from dataclasses import replace

    context = replace(auth_context, settings=make_settings(oauth_auto_provision=True))
    orchestrator = AuthenticationOrchestrator(uow, context)
    victim_tenant = uuid4()
    provider_client.register(
        "code", ProviderIdentity("google", "g-9", "outsider@elsewhere.example", True)
    )

    start = (await orchestrator.start_oauth("google", tenant_hint=str(victim_tenant))).value
    result = await orchestrator.oauth_callback("google", "code", start.state)

    assert result.value.status == AUTHENTICATED
    assert result.value.is_new_principal is True
    assert result.value.tenant_hint == str(victim_tenant)
    claims = context.signer.verify_access_token(result.value.tokens.access_token).value
    assert claims.tenant_id is None


class _TransactionWatchingClient(StubProviderClient):
    def __init__(self, uow):
        super().__init__()
        self.uow = uow
        self.in_transaction = []

    async def exchange_code(self, provider, code):
        self.in_transaction.append(self.uow.session.in_transaction())
        return await super().exchange_code(provider, code)


@pytest.mark.asyncio
async def test_oauth_exchange_holds_no_transaction(uow, auth_context, create_principal):
    from dataclasses import replace

    client = _TransactionWatchingClient(uow)
    orchestrator = AuthenticationOrchestrator(uow, replace(auth_context, provider_client=client))
    principal = await create_principal(email="user@acme.com")
    link_start = (await orchestrator.start_oauth("google", principal_id=principal.id)).value
    client.register("code", ProviderIdentity("google", "g-77", "user@acme.com", True))
    failing_start = (await orchestrator.start_oauth("google")).value

    linked = await orchestrator.oauth_callback("google", "code", link_start.state)
    failed = await orchestrator.oauth_callback("google", "unknown", failing_start.state)
    replay = await orchestrator.oauth_callback("google", "code", failing_start.state)

    assert linked.value.status == LINKED
    assert failed.error.code == "PROVIDER_ERROR"
    # The failed exchange still burned its state
    assert replay.error.code == "STATE_MISMATCH"
    assert client.in_transaction == [False, False]


# ----------------------------------------------------------------------
# Administration
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_deactivation_ends_sessions(orchestrator, create_principal):
    principal = await create_principal()
    tokens = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value.tokens

    result = await orchestrator.set_principal_active(principal.id, False)

    assert result.value.revoked_sessions == 1
    assert (await orchestrator.refresh(tokens.refresh_token)).error.code == "TOKEN_REVOKED"
    assert (await orchestrator.login("user@acme.com", PASSWORD)).error.code == "ACCOUNT_INACTIVE"

    await orchestrator.set_principal_active(principal.id, True)
    assert (await orchestrator.login("user@acme.com", PASSWORD)).is_ok()


@pytest.mark.asyncio
async def test_set_active_unknown_principal(orchestrator):
    result = await orchestrator.set_principal_active(uuid4(), False)

    assert result.error.code == "PRINCIPAL_NOT_FOUND"


@pytest.mark.asyncio
async def test_forced_password_change_until_new_password(
    orchestrator, sink, clock, create_principal
):
    principal = await create_principal()

    forced = await orchestrator.force_password_change(principal.id)
    flagged = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value
    await orchestrator.change_password(principal.id, PASSWORD, "N3w!Horse-Battery")
    cleared = (await orchestrator.login("user@acme.com", "N3w!Horse-Battery", DEVICE)).value

    assert forced.value.password_change_required is True
    assert flagged.status == AUTHENTICATED
    assert flagged.password_change_required is True
    assert cleared.password_change_required is False
    assert SecurityEventType.PASSWORD_CHANGE_FORCED in sink.types()


@pytest.mark.asyncio
async def test_old_password_requires_change(orchestrator, clock, create_principal):
    """Expiry is reported, never enforced by refusing the sign-in"""
    await create_principal()
    fresh = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    clock.advance(days=91)
    stale = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    assert fresh.password_change_required is False
    assert stale.status == AUTHENTICATED
    assert stale.password_change_required is True


@pytest.mark.asyncio
async def test_forced_change_reported_after_second_factor(orchestrator, clock, create_principal):
    principal = await create_principal()
    secret = await _enable_two_factor(orchestrator, clock, principal.id)
    await orchestrator.force_password_change(principal.id)
    challenge = (await orchestrator.login("user@acme.com", PASSWORD, DEVICE)).value

    result = await orchestrator.complete_two_factor(
        challenge.challenge_id, _current_code(secret, clock)
    )

    assert result.value.password_change_required is True


@pytest.mark.asyncio
async def test_force_password_change_unknown_principal(orchestrator):
    result = await orchestrator.force_password_change(uuid4())

    assert result.error.code == "PRINCIPAL_NOT_FOUND"


# ----------------------------------------------------------------------
# Infrastructure failures
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_store_failure_becomes_service_unavailable(mock_uow, auth_context):
    """A database error never escapes the orchestrator"""
    # Arrange
    mock_uow.principals = MagicMock()
    mock_uow.principals.get_by_email = AsyncMock(
        side_effect=OperationalError("SELECT", {}, Exception("database is locked"))
    )
    orchestrator = AuthenticationOrchestrator(mock_uow, auth_context)

    # Act
    result = await orchestrator.login("user@acme.com", PASSWORD, DEVICE)

    # Assert
    assert result.error.code == "SERVICE_UNAVAILABLE"
    mock_uow.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_rate_limiter_failure_becomes_service_unavailable(mock_uow, auth_context):
    from dataclasses import replace

    limiter = MagicMock()
    limiter.check_and_consume = AsyncMock(side_effect=ServiceUnavailableError("redis down"))
    orchestrator = AuthenticationOrchestrator(
        mock_uow, replace(auth_context, rate_limiter=limiter)
    )

    result = await orchestrator.login("user@acme.com", PASSWORD, DEVICE)

    assert result.error.code == "SERVICE_UNAVAILABLE"
    mock_uow.__aenter__.assert_not_awaited()
