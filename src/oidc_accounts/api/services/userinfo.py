"""Userinfo endpoint client.

Most providers serve userinfo over GET. The few that only accept POST are
listed in ``USERINFO_METHOD_OVERRIDES``; add new ones there.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import httpx

from oidc_accounts.api.services.errors import UpstreamFetchError
from oidc_accounts.api.utils.logging import sanitize_for_log

logger = logging.getLogger(__name__)

USERINFO_METHOD_OVERRIDES: Mapping[str, str] = {
    # Dropbox rejects GET on its OpenID userinfo endpoint.
    "https://api.dropboxapi.com/2/openid/userinfo": "POST",
}


def userinfo_method(url: str) -> str:
    return USERINFO_METHOD_OVERRIDES.get(url, "GET")


class UserInfoFetcher(Protocol):
    async def fetch(self, url: str, access_token: str) -> dict[str, Any]: ...


class UserInfoClient:
    HTTP_TIMEOUT_SECONDS = 30.0

    async def fetch(self, url: str, access_token: str) -> dict[str, Any]:
        method = userinfo_method(url)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

        async with httpx.AsyncClient() as client:
            try:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self.HTTP_TIMEOUT_SECONDS,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Userinfo request failed: %s %s - %s",
                    method,
                    exc.response.status_code,
                    sanitize_for_log(exc.response.text),
                )
                raise UpstreamFetchError(
                    f"Userinfo request failed: {exc.response.status_code}",
                    status_code=exc.response.status_code,
                ) from exc
            except httpx.RequestError as exc:
                logger.error("Userinfo request error: %s", sanitize_for_log(str(exc)))
                raise UpstreamFetchError(f"Userinfo request error: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamFetchError("Userinfo response is not valid JSON") from exc

        if not isinstance(data, dict):
            raise UpstreamFetchError("Userinfo response is not a JSON object")

        return data
