"""
Credential issuer package.

Wraps the remote issuer's token and ticket endpoints. The coordinator
never calls it directly; it only sees the refresh functions built from it.
"""

from .client import IssuerClient, DEFAULT_ISSUER_URL

__all__ = ["IssuerClient", "DEFAULT_ISSUER_URL"]
