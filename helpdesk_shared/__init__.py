"""
Shared utilities for the helpdesk portal core.

This package aggregates common building blocks consumed by the portal:

- config: Portal configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Fixed-delay retry helpers

Any cross-cutting logic should live here to avoid import cycles. Do not
import from helpdesk_portal into helpdesk_shared.
"""
