# FILE: contentgen/services/key_client.py
import logging
from typing import Dict, Optional

import httpx

from contentgen.core import config
from contentgen.core.errors import UpstreamKeyError

logger = logging.getLogger("content-generation.keys")

# Tests swap this for an httpx.MockTransport.
_transport: Optional[httpx.AsyncBaseTransport] = None


def _auth_headers() -> Dict[str, str]:
    return {"X-Api-Key": config.KEY_SERVICE_API_KEY} if config.KEY_SERVICE_API_KEY else {}


async def _fetch_key(path: str, params: Dict[str, str], provider: str, not_found: str) -> str:
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS, transport=_transport) as client:
        try:
            resp = await client.get(
                f"{config.KEY_SERVICE_URL}{path}",
                params=params,
                headers=_auth_headers(),
            )
        except httpx.HTTPError as e:
            raise UpstreamKeyError(f"Failed to fetch {provider} key: {e}") from e

    if resp.status_code == 404:
        raise UpstreamKeyError(not_found)
    if not resp.is_success:
        logger.warning(f"key-service {path} returned {resp.status_code}")
        raise UpstreamKeyError(f"Failed to fetch {provider} key: {resp.text[:500]}")

    try:
        data = resp.json()
    except ValueError:
        data = None
    if data is not None and not isinstance(data, dict):
        data = None
    if data is None and resp.content:
        logger.warning(f"key-service {path} returned an unreadable body")
        raise UpstreamKeyError(f"Failed to fetch {provider} key: invalid response")

    key = (data or {}).get("key")
    if not key:
        raise UpstreamKeyError(not_found)
    return key


async def get_byok_key(clerk_org_id: str, provider: str) -> str:
    """Fetch a BYOK (bring your own key) key for the organization."""
    return await _fetch_key(
        f"/internal/keys/{provider}/decrypt",
        {"clerkOrgId": clerk_org_id},
        provider,
        f"{provider} key not configured for this organization",
    )


async def get_app_key(app_id: str, provider: str) -> str:
    """Fetch the shared app-level key."""
    return await _fetch_key(
        f"/internal/app-keys/{provider}/decrypt",
        {"appId": app_id},
        provider,
        f"{provider} key not configured for app {app_id}",
    )


async def resolve_api_key(key_mode: str, clerk_org_id: str, app_id: str, provider: str) -> str:
    if key_mode == "byok":
        return await get_byok_key(clerk_org_id, provider)
    return await get_app_key(app_id, provider)
