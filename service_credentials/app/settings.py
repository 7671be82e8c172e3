"""
Configuration for the credentials service.
"""

from pydantic import Field

from shared.config import BaseConfig


class CredentialSettings(BaseConfig):
    """Credentials service settings, read from ``CRED_*`` variables."""

    service_name: str = Field(default="credentials")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8020)

    # Owner and issuer
    namespace: str = Field(default="cred")
    owner_id: str = Field(default="default")
    app_id: str = Field(default="")
    app_secret: str = Field(default="")
    enable_js_api: bool = Field(default=False)
    issuer_base_url: str = Field(default="https://api.weixin.qq.com")
    issuer_timeout: float = Field(default=10.0)

    # Cache and lock
    shared_mode: bool = Field(default=True)
    cache_ttl_seconds: int = Field(default=7100, gt=0)
    stale_ttl_seconds: int = Field(default=7200, gt=0)
    lock_lease_ms: int = Field(default=10000, gt=0)
    lock_acquire_timeout: float = Field(default=0.0, ge=0)
    lock_poll_interval: float = Field(default=0.05, gt=0)
    renew_lease: bool = Field(default=True)
