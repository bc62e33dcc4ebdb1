import pytest
from httpx import AsyncClient

from tests.fixtures.api_helpers import bearer


@pytest.mark.asyncio
async def test_validate_lists_every_violation(client: AsyncClient):
    """Password Checklist

    When I validate a short lower-case password
    Then every failed rule is listed at once
    And a strength level is returned
    """
    response = await client.post("/auth/password/validate", json={"password": "abc"})

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert {"TOO_SHORT", "MISSING_UPPERCASE", "MISSING_DIGIT", "MISSING_SYMBOL"} <= set(
        data["violations"]
    )
    assert data["strength"]["level"] == "very_weak"


@pytest.mark.asyncio
async def test_validate_rejects_email_in_password(client: AsyncClient):
    response = await client.post(
        "/auth/password/validate",
        json={"password": "Jsmith!Passw0rd", "email": "jsmith@acme.com"},
    )

    assert "CONTAINS_PERSONAL_INFO" in response.json()["violations"]


@pytest.mark.asyncio
async def test_generate_password(client: AsyncClient):
    response = await client.get("/auth/password/generate", params={"length": 20})

    assert response.status_code == 200
    password = response.json()["password"]
    assert len(password) == 20

    check = await client.post("/auth/password/validate", json={"password": password})
    assert check.json()["valid"] is True


@pytest.mark.asyncio
async def test_generate_password_too_short(client: AsyncClient):
    response = await client.get("/auth/password/generate", params={"length": 4})

    assert response.status_code == 422
    assert response.json()["error"]["violations"] == ["TOO_SHORT"]


@pytest.mark.asyncio
async def test_change_password(client: AsyncClient, create_principal, login):
    """Change Password

    Given I am logged in on two devices
    When I change my password from one of them
    Then the other device is logged out
    And I can log in with the new password but not the old one
    """
    await create_principal()
    other = await login(user_agent="other")
    current = await login(user_agent="current")

    response = await client.post(
        "/auth/password/change",
        json={"current_password": "Str0ng!Passw0rd", "new_password": "N3w!Passphrase"},
        headers=bearer(current),
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True, "revoked_sessions": 1}

    other_refresh = await client.post(
        "/auth/refresh", json={"refresh_token": other["refresh_token"]}
    )
    assert other_refresh.status_code == 401
    current_refresh = await client.post(
        "/auth/refresh", json={"refresh_token": current["refresh_token"]}
    )
    assert current_refresh.status_code == 200

    old = await client.post(
        "/auth/login", json={"email": "user@acme.com", "password": "Str0ng!Passw0rd"}
    )
    assert old.status_code == 401
    await login(password="N3w!Passphrase")


@pytest.mark.asyncio
async def test_change_password_wrong_current(client: AsyncClient, create_principal, login):
    await create_principal()
    tokens = await login()

    response = await client.post(
        "/auth/password/change",
        json={"current_password": "Wrong!Passw0rd", "new_password": "N3w!Passphrase"},
        headers=bearer(tokens),
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_change_password_policy_violation(client: AsyncClient, create_principal, login):
    await create_principal()
    tokens = await login()

    weak = await client.post(
        "/auth/password/change",
        json={"current_password": "Str0ng!Passw0rd", "new_password": "short"},
        headers=bearer(tokens),
    )
    reused = await client.post(
        "/auth/password/change",
        json={"current_password": "Str0ng!Passw0rd", "new_password": "Str0ng!Passw0rd"},
        headers=bearer(tokens),
    )

    assert weak.status_code == 422
    assert weak.json()["error"]["code"] == "PASSWORD_POLICY_VIOLATION"
    assert "TOO_SHORT" in weak.json()["error"]["violations"]
    assert reused.status_code == 422
    assert reused.json()["error"]["violations"] == ["REUSED_RECENTLY"]
