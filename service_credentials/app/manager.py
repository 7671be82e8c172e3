"""
Per-owner credential facade.
"""

from typing import Optional

from shared.logging import get_logger, set_owner_context
from shared.errors import ValidationError
from shared.metrics import MetricsCollector
from .coordinator.sources import CredentialSource, LocalOnlySource, SharedViaLockSource
from .events.notifier import Observer
from .issuer.client import IssuerClient
from .settings import CredentialSettings
from .store.base import SharedStore


ACCESS_TOKEN = "access_token"
JS_API_TICKET = "js_api_ticket"


class CredentialManager:
    """Hands out an owner's access token and JS API ticket.

    Both values come from the configured ``CredentialSource``; the
    issuer is only contacted on a miss, by whichever process wins the
    refresh lock.
    """

    def __init__(self, source: CredentialSource, issuer: IssuerClient, enable_js_api: bool = False):
        self.source = source
        self.issuer = issuer
        self.enable_js_api = enable_js_api
        self.logger = get_logger("credentials.manager")

    @classmethod
    def from_settings(
        cls,
        settings: CredentialSettings,
        store: Optional[SharedStore] = None,
        issuer: Optional[IssuerClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "CredentialManager":
        options = dict(
            namespace=settings.namespace,
            cache_ttl=settings.cache_ttl_seconds,
            stale_ttl=settings.stale_ttl_seconds,
            lease_ms=settings.lock_lease_ms,
            poll_interval=settings.lock_poll_interval,
            renew_lease=settings.renew_lease,
            metrics=metrics,
        )
        if settings.shared_mode:
            if store is None:
                raise ValueError("shared_mode requires a shared store")
            source = SharedViaLockSource(
                settings.owner_id,
                store,
                acquire_timeout=settings.lock_acquire_timeout,
                **options
            )
        else:
            source = LocalOnlySource(settings.owner_id, **options)

        issuer = issuer or IssuerClient(
            settings.app_id,
            settings.app_secret,
            base_url=settings.issuer_base_url,
            timeout=settings.issuer_timeout,
        )
        return cls(source, issuer, enable_js_api=settings.enable_js_api)

    @property
    def owner_id(self) -> str:
        return self.source.owner_id

    async def get_access_token(self) -> str:
        set_owner_context(self.owner_id)
        return await self.source.get(ACCESS_TOKEN, self.issuer.fetch_access_token)

    async def get_js_api_ticket(self) -> str:
        if not self.enable_js_api:
            raise ValidationError("JS API is not enabled for this owner", details={"owner_id": self.owner_id})

        set_owner_context(self.owner_id)
        access_token = await self.get_access_token()

        async def fetch_ticket() -> str:
            return await self.issuer.fetch_js_api_ticket(access_token)

        return await self.source.get(JS_API_TICKET, fetch_ticket)

    async def force_refresh_access_token(self, rejected: Optional[str] = None) -> str:
        """Replace an access token the issuer reported as invalid."""
        set_owner_context(self.owner_id)
        self.logger.info("Forcing access token refresh")
        return await self.source.refresh(ACCESS_TOKEN, self.issuer.fetch_access_token, current=rejected)

    def subscribe(self, observer: Observer) -> None:
        self.source.notifier.subscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self.source.notifier.unsubscribe(observer)
