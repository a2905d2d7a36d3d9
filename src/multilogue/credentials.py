"""Credential retrieval for the inference service.

The API key is served as the plain-text body of an HTTP endpoint.  One GET
per fetch; the orchestrator decides when to call it and caches the result.
"""

from __future__ import annotations

import logging

import httpx

from multilogue.exceptions import CredentialError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds


async def fetch_credential(
    endpoint: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Fetch a credential from *endpoint*.

    Args:
        endpoint: URL whose response body is the credential.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (used to plug in mock
            transports).

    Returns:
        The trimmed response body.

    Raises:
        CredentialError: On network failure, a non-2xx status, or an empty
            body.
    """
    logger.info("Fetching credential from %s", endpoint)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(endpoint)
    except httpx.HTTPError as exc:
        logger.error("Credential request to %s failed: %s", endpoint, exc)
        raise CredentialError(f"Credential request failed: {exc}") from exc

    if not response.is_success:
        logger.error("Credential endpoint returned HTTP %d", response.status_code)
        raise CredentialError(
            f"Credential endpoint returned HTTP {response.status_code}",
            status_code=response.status_code,
        )

    credential = response.text.strip()
    if not credential:
        raise CredentialError("Credential endpoint returned an empty body", status_code=response.status_code)

    logger.info("Credential fetched (%d characters)", len(credential))
    return credential
