"""
HTTP client for the credential issuer.
"""

from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger, mask_secret
from shared.errors import RefreshFailedError
from shared.retry import retry_on_exception, RetryConfig, RetryError


DEFAULT_ISSUER_URL = "https://api.weixin.qq.com"


class IssuerClient:
    """Fetches access tokens and JS API tickets from the issuer.

    Transport errors are retried; anything the issuer itself rejects is
    raised immediately as ``RefreshFailedError`` because retrying would
    only burn rate limit.
    """

    def __init__(
        self,
        app_id: str,
        secret: str,
        base_url: str = DEFAULT_ISSUER_URL,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.app_id = app_id
        self.secret = secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("credentials.issuer")
        self._get_json = retry_on_exception(
            (httpx.TransportError,),
            config=retry_config or RetryConfig(),
            context=lambda path, params: {"issuer_path": path},
        )(self._request_json)

    async def fetch_access_token(self) -> str:
        """Request a new access token."""
        payload = await self._call(
            "/cgi-bin/token",
            {"grant_type": "client_credential", "appid": self.app_id, "secret": self.secret}
        )
        return self._extract(payload, "access_token")

    async def fetch_js_api_ticket(self, access_token: str) -> str:
        """Request a new JS API ticket using ``access_token``."""
        payload = await self._call(
            "/cgi-bin/ticket/getticket",
            {"access_token": access_token, "type": "jsapi"}
        )
        return self._extract(payload, "ticket")

    async def _call(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            return await self._get_json(path, params)
        except RetryError as e:
            self.logger.error("Issuer unreachable", path=path, error=str(e.last_exception))
            raise RefreshFailedError(
                "Issuer unreachable",
                details={"path": path, "error": str(e.last_exception), "attempts": e.attempts}
            ) from e

    async def _request_json(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}{path}", params=params)

        if response.status_code != 200:
            raise RefreshFailedError(
                f"Issuer returned HTTP {response.status_code}",
                details={"path": path, "status_code": response.status_code}
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise RefreshFailedError("Issuer returned malformed JSON", details={"path": path}) from e

        if not isinstance(payload, dict):
            raise RefreshFailedError("Issuer returned unexpected payload", details={"path": path})
        return payload

    def _extract(self, payload: Dict[str, Any], field: str) -> str:
        errcode = payload.get("errcode", 0)
        value = payload.get(field)

        if errcode not in (0, None) or not isinstance(value, str) or not value.strip():
            raise RefreshFailedError(
                f"Issuer did not return {field}",
                details={"errcode": errcode, "errmsg": payload.get("errmsg")}
            )

        self.logger.debug("Issuer returned credential", field=field, value=mask_secret(value))
        return value
