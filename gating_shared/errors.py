"""
Shared error handling for the feature gating engine.

Every error raised here is a usage error: it signals a bug in how features
were declared or wired, never a runtime condition. Unknown purchase or
toggle state is expressed as an indeterminate result, not an exception.
"""

from typing import Dict, Any, Optional


class FeatureGatingError(Exception):
    """Base exception for the feature gating engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class PreconditionMismatchError(FeatureGatingError):
    """An evaluator was handed a precondition variant it does not handle."""

    def __init__(self, message: str = "Incorrect precondition type", details: Optional[Dict[str, Any]] = None):
        super().__init__("PRECONDITION_MISMATCH", message, details)


class UnsupportedProductError(FeatureGatingError):
    """A product variant cannot take part in a purchase requirement."""

    def __init__(self, message: str = "Unsupported product", details: Optional[Dict[str, Any]] = None):
        super().__init__("UNSUPPORTED_PRODUCT", message, details)


class ConflictingConstraintsError(FeatureGatingError):
    """A feature was registered twice with different constraints."""

    def __init__(self, message: str = "Conflicting constraints", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICTING_CONSTRAINTS", message, details)


class MissingEvaluatorError(FeatureGatingError):
    """A precondition needs a collaborator that was not supplied."""

    def __init__(self, message: str = "No evaluator for precondition", details: Optional[Dict[str, Any]] = None):
        super().__init__("MISSING_EVALUATOR", message, details)


class InvalidVersionError(FeatureGatingError):
    """A platform version could not be parsed."""

    def __init__(self, message: str = "Invalid platform version", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_VERSION", message, details)


class FeatureGraphError(FeatureGatingError):
    """The feature hierarchy was declared inconsistently."""

    def __init__(self, message: str = "Invalid feature graph", details: Optional[Dict[str, Any]] = None):
        super().__init__("FEATURE_GRAPH", message, details)
