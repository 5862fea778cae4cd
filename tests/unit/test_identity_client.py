"""Unit tests for the identity provider client"""

import httpx
import pytest
from referral_gateway.domain.exceptions import IdentityProviderError
from referral_gateway.infrastructure.clients.identity import IdentityProviderClient


def user_payload(status: str | None, primary: str = "email_1") -> dict:
    verification = {"status": status} if status is not None else None
    return {
        "id": "user_abc",
        "primary_email_address_id": primary,
        "email_addresses": [
            {"id": "email_0", "email_address": "old@example.com", "verification": {"status": "verified"}},
            {"id": "email_1", "email_address": "buyer@example.com", "verification": verification},
        ],
    }


def make_client(handler) -> IdentityProviderClient:
    return IdentityProviderClient(
        base_url="https://idp.test",
        secret_key="sk_test",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


async def test_verified_primary_email():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json=user_payload("verified"))

    assert await make_client(handler).is_primary_contact_verified("user_abc") is True
    assert seen["url"] == "https://idp.test/v1/users/user_abc"
    assert seen["auth"] == "Bearer sk_test"


@pytest.mark.parametrize("status", ["unverified", "expired", None])
async def test_unverified_primary_email(status):
    client = make_client(lambda request: httpx.Response(200, json=user_payload(status)))

    assert await client.is_primary_contact_verified("user_abc") is False


async def test_only_primary_email_counts():
    """A verified secondary address does not make the user verified"""
    client = make_client(lambda request: httpx.Response(200, json=user_payload("unverified", primary="email_1")))

    assert await client.is_primary_contact_verified("user_abc") is False


async def test_no_primary_email_is_unverified():
    client = make_client(lambda request: httpx.Response(200, json=user_payload("verified", primary="missing")))

    assert await client.is_primary_contact_verified("user_abc") is False


async def test_http_error_raises():
    client = make_client(lambda request: httpx.Response(503, json={"errors": []}))

    with pytest.raises(IdentityProviderError, match="503"):
        await client.is_primary_contact_verified("user_abc")


async def test_timeout_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(IdentityProviderError, match="timeout"):
        await make_client(handler).is_primary_contact_verified("user_abc")


async def test_network_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(IdentityProviderError, match="unreachable"):
        await make_client(handler).is_primary_contact_verified("user_abc")


async def test_invalid_payload_raises():
    client = make_client(lambda request: httpx.Response(200, content=b"<html>not json</html>"))

    with pytest.raises(IdentityProviderError, match="Invalid user data"):
        await client.is_primary_contact_verified("user_abc")
