import uuid

import pytest
from httpx import AsyncClient

from tests.fixtures.api_helpers import ADMIN_HEADERS


@pytest.mark.asyncio
async def test_deactivate_principal(client: AsyncClient, create_principal, login):
    """Deactivate Principal

    Given a principal with two open sessions
    When an admin deactivates it
    Then both sessions are revoked
    And the principal can neither refresh nor log in
    When the admin reactivates it
    Then login works again
    """
    principal = await create_principal()
    tokens = await login()
    await login()

    response = await client.post(
        f"/admin/principals/{principal.id}/deactivate", headers=ADMIN_HEADERS
    )

    assert response.status_code == 200
    assert response.json() == {
        "principal_id": str(principal.id),
        "is_active": False,
        "revoked_sessions": 2,
    }

    refresh = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refresh.status_code in (401, 403)
    blocked = await client.post(
        "/auth/login", json={"email": "user@acme.com", "password": "Str0ng!Passw0rd"}
    )
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "ACCOUNT_INACTIVE"

    reactivated = await client.post(
        f"/admin/principals/{principal.id}/activate", headers=ADMIN_HEADERS
    )
    assert reactivated.status_code == 200
    assert reactivated.json()["is_active"] is True
    await login()


@pytest.mark.asyncio
async def test_unknown_principal(client: AsyncClient):
    response = await client.post(
        f"/admin/principals/{uuid.uuid4()}/deactivate", headers=ADMIN_HEADERS
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PRINCIPAL_NOT_FOUND"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"X-Admin-API-Key": "wrong-key"},
        {"X-Admin-API-Key": "clé-secrète".encode("latin-1")},
    ],
)
async def test_admin_key_required(client: AsyncClient, create_principal, headers):
    principal = await create_principal()

    response = await client.post(f"/admin/principals/{principal.id}/deactivate", headers=headers)

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "ADMIN_KEY_INVALID"


@pytest.mark.asyncio
async def test_force_password_change(client: AsyncClient, create_principal, login):
    """Force Password Change

    Given an admin forced a password change on a principal
    When the principal logs in
    Then the login succeeds and reports that a new password is required
    When the principal changes their password
    Then the next login no longer reports it
    """
    principal = await create_principal()

    response = await client.post(
        f"/admin/principals/{principal.id}/force-password-change", headers=ADMIN_HEADERS
    )

    assert response.status_code == 200
    assert response.json() == {
        "principal_id": str(principal.id),
        "password_change_required": True,
    }

    flagged = await client.post(
        "/auth/login", json={"email": "user@acme.com", "password": "Str0ng!Passw0rd"}
    )
    assert flagged.status_code == 200
    assert flagged.json()["password_change_required"] is True

    changed = await client.post(
        "/auth/password/change",
        json={"current_password": "Str0ng!Passw0rd", "new_password": "N3w!Passphrase"},
        headers={"Authorization": f"Bearer {flagged.json()['tokens']['access_token']}"},
    )
    assert changed.status_code == 200

    cleared = await client.post(
        "/auth/login", json={"email": "user@acme.com", "password": "N3w!Passphrase"}
    )
    assert cleared.json()["password_change_required"] is False


@pytest.mark.asyncio
async def test_force_password_change_unknown_principal(client: AsyncClient):
    response = await client.post(
        f"/admin/principals/{uuid.uuid4()}/force-password-change", headers=ADMIN_HEADERS
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PRINCIPAL_NOT_FOUND"


@pytest.mark.asyncio
async def test_force_password_change_requires_admin_key(client: AsyncClient, create_principal):
    principal = await create_principal()

    response = await client.post(f"/admin/principals/{principal.id}/force-password-change")

    assert response.status_code == 401
