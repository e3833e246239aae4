"""
Shared utilities for the geolocation caching proxy.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for remote calls
- circuit_breaker: Resilient upstream call protection
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
