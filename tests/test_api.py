"""HTTP-level tests for the ZeroSend API.

Tests cover:
- Health check and request id propagation
- Problem-document error rendering (kinds, statuses, extra members)
- Rate-limit headers and refusals
- Full sender/recipient flow over HTTP
- Admin endpoints and role enforcement
"""

from __future__ import annotations

import base64
import csv
import io

import pytest
from starlette.requests import Request

from tests.conftest import FILE_HASH, PASSWORD, WRAPPED_KEY, random_public_key_b64
from zerosend.api.dependencies import UNKNOWN_CLIENT, client_ip
from zerosend.core.hashing import hash_token

PREFIX = "/api/v1"


async def _login(api_client, account) -> dict[str, str]:
    response = await api_client.post(
        f"{PREFIX}/auth/login", json={"email": account.email, "password": PASSWORD}
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def _ready_share(api_client, sender, recipient, **overrides) -> dict:
    headers = await _login(api_client, sender)
    payload = {
        "recipient_email": recipient.email,
        "file_hash_sha3": FILE_HASH,
        "file_size_bytes": 4096,
        "max_downloads": 1,
        "expires_in_hours": 72,
        **overrides,
    }
    initiated = await api_client.post(f"{PREFIX}/transfer/initiate", json=payload, headers=headers)
    assert initiated.status_code == 201, initiated.text
    body = initiated.json()

    stored = await api_client.post(
        f"{PREFIX}/transfer/{body['session_id']}/key",
        json={
            "enc_key_b64": base64.b64encode(WRAPPED_KEY).decode(),
            "cloud_file_id": body["cloud_file_id"],
        },
        headers=headers,
    )
    assert stored.status_code == 200, stored.text

    finalized = await api_client.post(f"{PREFIX}/transfer/{body['session_id']}/url", headers=headers)
    assert finalized.status_code == 200, finalized.text
    return {**body, **finalized.json(), "sender_headers": headers}


async def _verify(api_client, world, share, recipient) -> dict[str, str]:
    response = await api_client.post(
        f"{PREFIX}/auth/totp/verify",
        json={"url_token": share["url_token"], "email": recipient.email, "otp": world.code(recipient)},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['auth_token']}"}


# ---------------------------------------------------------------------------
# Plumbing
# ---------------------------------------------------------------------------


class TestPlumbing:
    @pytest.mark.asyncio
    async def test_health(self, api_client):
        response = await api_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert "X-RateLimit-Limit" not in response.headers

    @pytest.mark.asyncio
    async def test_request_id_generated(self, api_client):
        response = await api_client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 36

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, api_client):
        response = await api_client.get("/health", headers={"X-Request-ID": "trace-123"})

        assert response.headers["X-Request-ID"] == "trace-123"

    @pytest.mark.asyncio
    async def test_unsafe_request_id_replaced(self, api_client):
        response = await api_client.get("/health", headers={"X-Request-ID": "bad id with spaces"})

        assert response.headers["X-Request-ID"] != "bad id with spaces"

    @pytest.mark.asyncio
    async def test_rate_limit_headers(self, api_client):
        response = await api_client.get(f"{PREFIX}/download/unknown-token")

        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert int(response.headers["X-RateLimit-Reset"]) <= 60

    @pytest.mark.asyncio
    async def test_login_rate_limited(self, api_client):
        payload = {"email": "nobody@example.com", "password": "wrong-password"}
        statuses = []
        for _ in range(11):
            response = await api_client.post(f"{PREFIX}/auth/login", json=payload)
            statuses.append(response.status_code)

        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["type"] == "/errors/rate-limited"
        assert int(response.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_rate_limiter_outage_fails_open(self, api_client, cache):
        cache.failing.add("increment_with_ttl_on_first_write")

        response = await api_client.get(f"{PREFIX}/download/unknown-token")

        assert response.status_code == 404
        assert "X-RateLimit-Limit" not in response.headers


class TestClientIp:
    @staticmethod
    def _request(headers: dict[str, str], peer: str | None = "192.0.2.50") -> Request:
        return Request(
            {
                "type": "http",
                "method": "GET",
                "path": "/",
                "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
                "client": (peer, 4321) if peer else None,
            }
        )

    def test_first_forwarded_hop(self):
        request = self._request({"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})

        assert client_ip(request) == "198.51.100.1"

    def test_real_ip_header(self):
        assert client_ip(self._request({"X-Real-IP": " 2001:db8::1 "})) == "2001:db8::1"

    @pytest.mark.parametrize("forwarded", ["foo", "198.51.100.1:8080", "example.com, 10.0.0.1"])
    def test_unparsable_forwarded_falls_back_to_peer(self, forwarded):
        assert client_ip(self._request({"X-Forwarded-For": forwarded})) == "192.0.2.50"

    def test_nothing_valid(self):
        request = self._request({"X-Forwarded-For": "foo", "X-Real-IP": "bar"}, peer="testclient")

        assert client_ip(request) == UNKNOWN_CLIENT

    @pytest.mark.asyncio
    async def test_login_with_bogus_forwarded_header(self, api_client, store, alice):
        response = await api_client.post(
            f"{PREFIX}/auth/login",
            json={"email": alice.email, "password": PASSWORD},
            headers={"X-Forwarded-For": "foo"},
        )

        token = response.json()["access_token"]
        assert response.status_code == 200
        assert store.sender_sessions[hash_token(token)].ip_address == "127.0.0.1"
        assert store.audit_entries[-1].ip_address == "127.0.0.1"


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


class TestProblemDocuments:
    @pytest.mark.asyncio
    async def test_not_found(self, api_client):
        response = await api_client.get(
            f"{PREFIX}/download/unknown-token", headers={"X-Request-ID": "req-1"}
        )

        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json() == {
            "type": "/errors/not-found",
            "title": "Transfer not found",
            "status": 404,
            "instance": f"{PREFIX}/download/unknown-token",
            "request_id": "req-1",
        }

    @pytest.mark.asyncio
    async def test_validation_error_is_bad_request(self, api_client, alice):
        headers = await _login(api_client, alice)

        response = await api_client.post(
            f"{PREFIX}/transfer/initiate",
            json={"recipient_email": "bob@example.com", "file_hash_sha3": "nope"},
            headers=headers,
        )

        body = response.json()
        assert response.status_code == 400
        assert body["type"] == "/errors/bad-request"
        assert body["errors"]

    @pytest.mark.asyncio
    async def test_missing_bearer_is_unauthorized(self, api_client):
        response = await api_client.post(
            f"{PREFIX}/transfer/initiate",
            json={
                "recipient_email": "bob@example.com",
                "file_hash_sha3": FILE_HASH,
                "file_size_bytes": 1,
            },
        )

        assert response.status_code == 401
        assert response.json()["type"] == "/errors/unauthorized"

    @pytest.mark.asyncio
    async def test_unknown_route(self, api_client):
        response = await api_client.get(f"{PREFIX}/nothing-here")

        assert response.status_code == 404
        assert response.json()["type"] == "/errors/not-found"

    @pytest.mark.asyncio
    async def test_internal_error_hides_detail(self, api_client, world, storage, alice, bob):
        headers = await _login(api_client, alice)
        storage.fail_presign = True

        response = await api_client.post(
            f"{PREFIX}/transfer/initiate",
            json={"recipient_email": bob.email, "file_hash_sha3": FILE_HASH, "file_size_bytes": 1},
            headers=headers,
        )

        assert response.status_code == 500
        assert response.json()["type"] == "/errors/internal"
        assert response.json()["title"] == "An internal error occurred"


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class TestAuthEndpoints:
    @pytest.mark.asyncio
    async def test_register(self, api_client):
        response = await api_client.post(
            f"{PREFIX}/auth/register",
            json={
                "email": "dana@example.com",
                "display_name": "Dana",
                "password": PASSWORD,
                "public_key_b64": random_public_key_b64(),
            },
        )

        body = response.json()
        assert response.status_code == 201
        assert body["totp_provisioning_uri"].startswith("otpauth://totp/")
        assert len(body["key_fingerprint"]) == 64

    @pytest.mark.asyncio
    async def test_register_rejects_short_password(self, api_client):
        response = await api_client.post(
            f"{PREFIX}/auth/register",
            json={
                "email": "dana@example.com",
                "display_name": "Dana",
                "password": "short",
                "public_key_b64": random_public_key_b64(),
            },
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_login_and_logout(self, api_client, alice):
        login = await api_client.post(
            f"{PREFIX}/auth/login", json={"email": alice.email, "password": PASSWORD}
        )
        body = login.json()
        headers = {"Authorization": f"Bearer {body['access_token']}"}

        assert body["token_type"] == "bearer"
        assert body["user"]["display_name"] == "Alice"
        assert body["user"]["role"] == "user"

        logout = await api_client.post(f"{PREFIX}/auth/logout", headers=headers)
        assert logout.json() == {"revoked": True}

        after = await api_client.post(f"{PREFIX}/transfer/{body['user']['id']}/url", headers=headers)
        assert after.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_otp_reports_remaining_attempts(self, api_client, world, alice, bob):
        share = await _ready_share(api_client, alice, bob)

        response = await api_client.post(
            f"{PREFIX}/auth/totp/verify",
            json={"url_token": share["url_token"], "email": bob.email, "otp": world.wrong_code(bob)},
        )

        assert response.status_code == 401
        assert response.json()["type"] == "/errors/auth-failed"
        assert response.json()["remaining_attempts"] == 4

    @pytest.mark.asyncio
    async def test_locked_is_423(self, api_client, world, alice, bob):
        share = await _ready_share(api_client, alice, bob)
        for _ in range(5):
            await api_client.post(
                f"{PREFIX}/auth/totp/verify",
                json={
                    "url_token": share["url_token"],
                    "email": bob.email,
                    "otp": world.wrong_code(bob),
                },
            )

        response = await api_client.post(
            f"{PREFIX}/auth/totp/verify",
            json={"url_token": share["url_token"], "email": bob.email, "otp": world.code(bob)},
        )

        assert response.status_code == 423
        assert response.json()["type"] == "/errors/locked"


# ---------------------------------------------------------------------------
# Full flow
# ---------------------------------------------------------------------------


class TestTransferFlow:
    @pytest.mark.asyncio
    async def test_send_download_complete(self, api_client, world, storage, notifier, alice, bob):
        share = await _ready_share(api_client, alice, bob, max_downloads=2)
        assert share["email_sent"] is True
        assert share["share_url"].endswith(f"/download/{share['url_token']}")
        assert notifier.sent[0].recipient == bob.email

        info = await api_client.get(f"{PREFIX}/download/{share['url_token']}")
        assert info.json()["sender_display_name"] == "Alice"
        assert info.json()["remaining_downloads"] == 2
        assert info.json()["twofa_type"] == "totp"

        recipient_headers = await _verify(api_client, world, share, bob)
        key = await api_client.get(
            f"{PREFIX}/download/{share['url_token']}/key", headers=recipient_headers
        )
        body = key.json()
        assert key.status_code == 200
        assert base64.b64decode(body["encrypted_key_b64"]) == WRAPPED_KEY
        assert body["file_hash_sha3"] == FILE_HASH
        assert body["remaining_downloads"] == 1
        assert share["cloud_file_id"] in body["cloud_file_url"]

        done = await api_client.post(
            f"{PREFIX}/download/{share['url_token']}/complete", headers=recipient_headers
        )
        assert done.status_code == 200
        assert done.json()["deleted"] is True
        assert storage.deleted == [share["cloud_file_id"]]

        again = await api_client.get(
            f"{PREFIX}/download/{share['url_token']}/key", headers=recipient_headers
        )
        assert again.status_code == 404

        repeat = await api_client.post(
            f"{PREFIX}/download/{share['url_token']}/complete", headers=recipient_headers
        )
        assert repeat.status_code == 200

    @pytest.mark.asyncio
    async def test_budget_exhausted_is_gone(self, api_client, world, alice, bob):
        share = await _ready_share(api_client, alice, bob, max_downloads=1)
        headers = await _verify(api_client, world, share, bob)

        first = await api_client.get(f"{PREFIX}/download/{share['url_token']}/key", headers=headers)
        second = await api_client.get(f"{PREFIX}/download/{share['url_token']}/key", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 410
        assert second.json()["type"] == "/errors/gone"

    @pytest.mark.asyncio
    async def test_key_without_auth_token(self, api_client, alice, bob):
        share = await _ready_share(api_client, alice, bob)

        response = await api_client.get(f"{PREFIX}/download/{share['url_token']}/key")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_wrapped_key_encoding(self, api_client, alice, bob):
        headers = await _login(api_client, alice)
        initiated = await api_client.post(
            f"{PREFIX}/transfer/initiate",
            json={"recipient_email": bob.email, "file_hash_sha3": FILE_HASH, "file_size_bytes": 1},
            headers=headers,
        )
        body = initiated.json()

        response = await api_client.post(
            f"{PREFIX}/transfer/{body['session_id']}/key",
            json={"enc_key_b64": "%%%not-base64%%%", "cloud_file_id": body["cloud_file_id"]},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["title"] == "enc_key_b64 is not valid base64"

    @pytest.mark.asyncio
    async def test_other_sender_cannot_finalize(self, api_client, alice, bob):
        alice_headers = await _login(api_client, alice)
        bob_headers = await _login(api_client, bob)
        initiated = await api_client.post(
            f"{PREFIX}/transfer/initiate",
            json={"recipient_email": bob.email, "file_hash_sha3": FILE_HASH, "file_size_bytes": 1},
            headers=alice_headers,
        )

        response = await api_client.post(
            f"{PREFIX}/transfer/{initiated.json()['session_id']}/url", headers=bob_headers
        )

        assert response.status_code == 403
        assert response.json()["type"] == "/errors/forbidden"


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class TestAdminEndpoints:
    @pytest.mark.asyncio
    async def test_requires_admin_role(self, api_client, alice):
        headers = await _login(api_client, alice)

        response = await api_client.get(f"{PREFIX}/admin/sessions", headers=headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_sessions_and_unlock(self, api_client, world, admin, alice, bob):
        share = await _ready_share(api_client, alice, bob)
        headers = await _login(api_client, admin)
        for _ in range(5):
            await api_client.post(
                f"{PREFIX}/auth/totp/verify",
                json={
                    "url_token": share["url_token"],
                    "email": bob.email,
                    "otp": world.wrong_code(bob),
                },
            )

        listing = await api_client.get(
            f"{PREFIX}/admin/sessions", params={"status": "ready"}, headers=headers
        )
        assert listing.json()["total"] == 1
        assert "url_token" not in listing.json()["items"][0]

        detail = await api_client.get(
            f"{PREFIX}/admin/sessions/{share['session_id']}", headers=headers
        )
        assert detail.json()["locked"] is True
        assert detail.json()["wrapped_key_present"] is True
        assert "encrypted_key_b64" not in detail.text

        unlocked = await api_client.post(
            f"{PREFIX}/admin/sessions/{share['session_id']}/unlock", headers=headers
        )
        assert unlocked.json()["counter_existed"] is True

        await _verify(api_client, world, share, bob)

    @pytest.mark.asyncio
    async def test_force_delete(self, api_client, admin, alice, bob):
        share = await _ready_share(api_client, alice, bob)
        headers = await _login(api_client, admin)

        response = await api_client.delete(
            f"{PREFIX}/admin/sessions/{share['session_id']}", headers=headers
        )
        info = await api_client.get(f"{PREFIX}/download/{share['url_token']}")

        assert response.json() == {"deleted": True, "already_deleted": False, "storage_deleted": True}
        assert info.status_code == 404

    @pytest.mark.asyncio
    async def test_logs_and_export(self, api_client, admin, alice, bob):
        share = await _ready_share(api_client, alice, bob)
        headers = await _login(api_client, admin)

        logs = await api_client.get(
            f"{PREFIX}/admin/logs",
            params={"session_id": share["session_id"], "limit": 2},
            headers=headers,
        )
        export = await api_client.get(
            f"{PREFIX}/admin/logs/export",
            params={"session_id": share["session_id"]},
            headers=headers,
        )

        assert logs.json()["total"] == 3
        assert len(logs.json()["items"]) == 2
        assert export.headers["content-type"].startswith("text/csv")
        assert "attachment" in export.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(export.text)))
        assert rows[0][0] == "id"
        assert len(rows) == 4

    @pytest.mark.asyncio
    async def test_page_limit_bounds(self, api_client, admin):
        headers = await _login(api_client, admin)

        response = await api_client.get(
            f"{PREFIX}/admin/users", params={"limit": 500}, headers=headers
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_deactivate_user(self, api_client, admin, alice):
        alice_headers = await _login(api_client, alice)
        headers = await _login(api_client, admin)

        response = await api_client.delete(f"{PREFIX}/admin/users/{alice.user_id}", headers=headers)
        probe = await api_client.get(f"{PREFIX}/admin/sessions", headers=alice_headers)

        assert response.json() == {"deactivated": True}
        assert probe.status_code == 401
