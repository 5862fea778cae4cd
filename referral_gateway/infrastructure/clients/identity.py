"""Identity provider HTTP client for checking a customer's verified email"""

import httpx
from referral_gateway.domain.exceptions import IdentityProviderError
from referral_gateway.config import settings
from referral_gateway.infrastructure.observability.metrics import identity_lookup_failures_counter


class IdentityProviderClient:
    """Client for the hosted identity provider's backend user API"""

    def __init__(
        self,
        base_url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.identity_api_base).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.identity_secret_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def is_primary_contact_verified(self, identity_id: str) -> bool:
        """
        Check whether the user's primary email address has been verified.

        A user without a primary email, or whose primary email has no
        "verified" status, counts as unverified.

        Raises:
            IdentityProviderError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(
                    f"{self.base_url}/v1/users/{identity_id}",
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
                response.raise_for_status()
                data = response.json()

                primary_id = data.get("primary_email_address_id")
                for address in data.get("email_addresses") or []:
                    if address["id"] == primary_id:
                        verification = address.get("verification") or {}
                        return verification.get("status") == "verified"
                return False

            except httpx.TimeoutException as e:
                identity_lookup_failures_counter.labels(reason="timeout").inc()
                raise IdentityProviderError(f"Identity provider timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                identity_lookup_failures_counter.labels(reason="http_error").inc()
                raise IdentityProviderError(f"Identity provider error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                identity_lookup_failures_counter.labels(reason="network").inc()
                raise IdentityProviderError(f"Identity provider unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                identity_lookup_failures_counter.labels(reason="invalid_response").inc()
                raise IdentityProviderError(f"Invalid user data from identity provider: {e}") from e
