"""
Credential cache package.

Stores credentials under ``<namespace>:<owner>:<field>`` keys with a TTL
shorter than the issuer's own expiry.
"""

from .credential_cache import CredentialCache, CredentialKey

__all__ = ["CredentialCache", "CredentialKey"]
