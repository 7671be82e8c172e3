"""
Credentials service: shares issuer credentials across processes.
"""

from typing import Dict, Optional

from pydantic import BaseModel

from shared.base_service import BaseService
from shared.metrics import MetricsCollector

from .issuer.client import IssuerClient
from .manager import CredentialManager, ACCESS_TOKEN, JS_API_TICKET
from .settings import CredentialSettings
from .store.base import SharedStore
from .store.redis_store import RedisSharedStore


class RefreshRequest(BaseModel):
    """Body of a forced refresh; ``rejected`` is the token the issuer refused."""

    rejected: Optional[str] = None


class CredentialsService(BaseService):
    """Credentials service implementation."""

    def __init__(
        self,
        settings: Optional[CredentialSettings] = None,
        store: Optional[SharedStore] = None,
        issuer: Optional[IssuerClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        settings = settings or CredentialSettings()
        super().__init__(settings.service_name, settings, metrics)

        self.store: Optional[SharedStore] = None
        if settings.shared_mode:
            self.store = store or RedisSharedStore(
                settings.redis_url,
                max_connections=settings.redis_max_connections,
                socket_timeout=settings.redis_socket_timeout,
            )

        self.manager = CredentialManager.from_settings(
            settings,
            store=self.store,
            issuer=issuer,
            metrics=self.metrics,
        )

        self._setup_credential_routes()

    def _setup_credential_routes(self):
        """Set up credential routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "owner_id": self.manager.owner_id,
                "mode": "shared" if self.config.shared_mode else "local",
                "js_api_enabled": self.manager.enable_js_api,
                "version": "1.0.0"
            }

        @self.app.get("/credentials/access-token")
        async def get_access_token():
            """Return the owner's current access token."""
            value = await self.manager.get_access_token()
            return self._credential_body(ACCESS_TOKEN, value)

        @self.app.get("/credentials/js-api-ticket")
        async def get_js_api_ticket():
            """Return the owner's current JS API ticket."""
            value = await self.manager.get_js_api_ticket()
            return self._credential_body(JS_API_TICKET, value)

        @self.app.post("/credentials/access-token/refresh")
        async def refresh_access_token(request: Optional[RefreshRequest] = None):
            """Force a new access token, optionally naming the rejected one."""
            rejected = request.rejected if request else None
            value = await self.manager.force_refresh_access_token(rejected)
            return self._credential_body(ACCESS_TOKEN, value)

    def _credential_body(self, field: str, value: str) -> Dict[str, str]:
        return {"owner_id": self.manager.owner_id, "field": field, "value": value}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check credentials service dependencies."""
        if self.store is None:
            return {}
        return {"redis": "ok" if await self.store.health_check() else "error"}

    async def start(self):
        """Open the shared store."""
        if self.store is not None:
            await self.store.start()
        self.logger.info("Credentials service started", owner_id=self.manager.owner_id)

    async def stop(self):
        """Close the shared store."""
        if self.store is not None:
            await self.store.stop()
        self.logger.info("Credentials service stopped")

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )


def create_app(
    settings: Optional[CredentialSettings] = None,
    store: Optional[SharedStore] = None,
    issuer: Optional[IssuerClient] = None,
):
    """Create credentials service application."""
    service = CredentialsService(settings, store=store, issuer=issuer)
    return service.app


if __name__ == "__main__":
    service = CredentialsService()
    service.run()
