"""
Precondition evaluators.

One evaluator per precondition kind, each answering whether a single
precondition currently holds for a feature. Evaluators hold no state of
their own beyond the collaborator they were given.
"""

from typing import TYPE_CHECKING

from gating_shared.errors import PreconditionMismatchError
from gating_shared.logging import get_logger
from ..purchases.trackers import PurchaseTracker
from .preconditions import FeaturePreconditionConstraint, PreconditionKind
from .tristate import Tristate

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..features.graph import Feature
    from ..features.toggles import UserFeatureToggles


class FeaturePreconditionEvaluator:
    """Evaluates one kind of precondition."""

    handles: PreconditionKind

    def __init__(self):
        self.logger = get_logger("feature_gating.evaluators")

    def is_fulfilled(self, precondition: FeaturePreconditionConstraint, feature: "Feature") -> Tristate:
        raise NotImplementedError

    def _check(self, precondition: FeaturePreconditionConstraint) -> None:
        if precondition.kind != self.handles:
            self.logger.error(
                "Incorrect precondition type passed to evaluator",
                evaluator=type(self).__name__,
                precondition=str(precondition)
            )
            raise PreconditionMismatchError(
                f"Incorrect precondition type '{precondition}' passed to {type(self).__name__}",
                {"expected": self.handles.value, "received": precondition.kind.value}
            )


class RuntimePreconditionEvaluator(FeaturePreconditionEvaluator):
    """Checks the feature's own ``is_enabled`` flag."""

    handles = PreconditionKind.RUNTIME_ENABLED

    def is_fulfilled(self, precondition: FeaturePreconditionConstraint, feature: "Feature") -> Tristate:
        self._check(precondition)
        return Tristate.from_optional(bool(feature.is_enabled))


class UserTogglePreconditionEvaluator(FeaturePreconditionEvaluator):
    """Checks the user's toggle, falling back to the declared default."""

    handles = PreconditionKind.USER_TOGGLED

    def __init__(self, user_toggles: "UserFeatureToggles"):
        super().__init__()
        self.user_toggles = user_toggles

    def is_fulfilled(self, precondition: FeaturePreconditionConstraint, feature: "Feature") -> Tristate:
        self._check(precondition)
        enabled = self.user_toggles.is_enabled(feature)
        if enabled is None:
            enabled = precondition.default_value
        return Tristate.from_optional(enabled)


class PurchasePreconditionEvaluator(FeaturePreconditionEvaluator):
    """Evaluates a purchase requirement tree against the purchase tracker."""

    handles = PreconditionKind.PURCHASE_REQUIRED

    def __init__(self, purchase_tracker: PurchaseTracker):
        super().__init__()
        self.purchase_tracker = purchase_tracker

    def is_fulfilled(self, precondition: FeaturePreconditionConstraint, feature: "Feature") -> Tristate:
        self._check(precondition)
        return precondition.requirement.is_fulfilled(self.purchase_tracker, feature)
