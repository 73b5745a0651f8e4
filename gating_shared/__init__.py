"""
Shared utilities for the feature gating engine.

This package aggregates the cross-cutting building blocks consumed by
``feature_gating``:

- config: Runtime configuration via pydantic-settings
- logging: Structured logging with structlog
- errors: Canonical error types and responses
- metrics: Prometheus metrics for evaluation and caching

Domain logic must not live here. Do not import from ``feature_gating``
into this package.
"""
