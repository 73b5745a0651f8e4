"""
Feature availability checks built on top of the constraints evaluator.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from gating_shared.logging import get_logger
from ..constraints.engine import ConstraintsEvaluator
from ..constraints.permissions import PermissionStatus, SystemPermission
from ..constraints.preconditions import PreconditionKind
from ..constraints.tristate import Tristate
from ..purchases.requirements import PurchaseRequirement
from .graph import Feature, FeatureGraph


@dataclass(frozen=True)
class FeaturePurchaseRequirements:
    """Purchase requirements of a feature, split by current state."""
    all: FrozenSet[PurchaseRequirement] = field(default_factory=frozenset)
    required_to_unlock: FrozenSet[PurchaseRequirement] = field(default_factory=frozenset)
    purchased: FrozenSet[PurchaseRequirement] = field(default_factory=frozenset)


@dataclass(frozen=True)
class FeaturePermissionRequirements:
    """Permissions of a feature, split by current authorisation status."""
    all: FrozenSet[SystemPermission] = field(default_factory=frozenset)
    not_determined: FrozenSet[SystemPermission] = field(default_factory=frozenset)
    denied: FrozenSet[SystemPermission] = field(default_factory=frozenset)
    restricted: FrozenSet[SystemPermission] = field(default_factory=frozenset)


class AvailabilityChecker:
    """Answers whether features can be used right now."""

    def __init__(self, graph: FeatureGraph, evaluator: ConstraintsEvaluator):
        self.logger = get_logger("feature_gating.features.availability")
        self.graph = graph
        self.evaluator = evaluator

    def is_available(self, feature: Feature) -> Optional[bool]:
        """
        Return whether ``feature`` is available.

        A feature is only available when its own constraints and those of
        every ancestor are satisfied. ``None`` means the answer is not known
        yet and callers should treat the feature as unavailable for now.
        """
        outcomes = []
        for candidate in [feature] + self.graph.ancestors(feature):
            result = self.evaluator.evaluate(candidate)
            outcomes.append(Tristate.from_optional(result.available))
            if outcomes[-1] is Tristate.FALSE:
                break

        available = Tristate.all_of(outcomes).to_optional()
        self.logger.debug("Feature availability", feature=str(feature.path), available=available)
        return available

    def purchase_requirements(self, feature: Feature) -> FeaturePurchaseRequirements:
        result = self.evaluator.evaluate(feature)

        def _requirements(results) -> FrozenSet[PurchaseRequirement]:
            return frozenset(
                item.constraint.requirement for item in results
                if item.constraint.kind == PreconditionKind.PURCHASE_REQUIRED
            )

        return FeaturePurchaseRequirements(
            all=_requirements(result.preconditions.all),
            required_to_unlock=_requirements(result.preconditions.not_satisfied),
            purchased=_requirements(result.preconditions.satisfied)
        )

    def permission_requirements(self, feature: Feature) -> FeaturePermissionRequirements:
        result = self.evaluator.evaluate(feature)
        checker = self.evaluator.permission_checker

        def _with_status(results, status: PermissionStatus) -> FrozenSet[SystemPermission]:
            return frozenset(item.constraint for item in results if checker.status(item.constraint) == status)

        return FeaturePermissionRequirements(
            all=frozenset(item.constraint for item in result.permissions.all),
            not_determined=_with_status(result.permissions.not_determined, PermissionStatus.NOT_DETERMINED),
            denied=_with_status(result.permissions.not_satisfied, PermissionStatus.DENIED),
            restricted=_with_status(result.permissions.not_satisfied, PermissionStatus.RESTRICTED)
        )
