"""
Shared utilities for the Newsfeed Access Layer.

This package aggregates common building blocks consumed by the gateway:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Backoff helper for idempotent downstream reads
- circuit_breaker: Resilient external call protection
- base_service: FastAPI service skeleton (middleware, health, error handlers)

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into newsfeed_shared/.
"""
