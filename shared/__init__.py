"""
Shared utilities for the credential refresh service.

This package aggregates the ambient building blocks used by the
service package:

- config: Base configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for issuer calls
- base_service: FastAPI service skeleton (health, metrics, error handlers)

Do not import from service_* packages into shared/.
"""
