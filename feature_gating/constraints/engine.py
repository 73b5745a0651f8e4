"""
Constraints evaluation engine.

``ConstraintsEvaluator`` owns the registry of feature constraints and the
result cache. It runs the evaluator for every applicable constraint,
combines the outcomes with three-valued AND and memoizes the answer when
nothing it depends on can change without the engine being told.
"""

import threading
import time
from typing import Dict, List, Optional, Set

from gating_shared.config import GatingConfig, get_config
from gating_shared.errors import ConflictingConstraintsError, MissingEvaluatorError
from gating_shared.logging import get_logger
from gating_shared.metrics import GatingMetrics
from ..cache.result_cache import EvaluationResultCache
from ..features.graph import Feature, FeaturePath
from ..features.toggles import JsonFileFeatureToggles, UserFeatureToggles
from ..purchases.trackers import PurchaseTracker
from .builder import FeatureConstraints
from .evaluators import (
    FeaturePreconditionEvaluator, PurchasePreconditionEvaluator,
    RuntimePreconditionEvaluator, UserTogglePreconditionEvaluator
)
from .permissions import PermissionChecker, PermissionStatus, SystemPermission, permission_fulfilment
from .platforms import RuntimeEnvironment
from .preconditions import PreconditionKind
from .results import ConstraintResult, ConstraintResults, EvaluationStatus, FeatureEvaluationResult
from .tristate import Tristate


# Collaborators the engine can hold a change subscription to
PURCHASES = "purchases"
TOGGLES = "toggles"
PERMISSIONS = "permissions"


class ConstraintsEvaluator:
    """Registry and combinator for feature constraints.

    Thread-safe: the registration map and the cache are only touched under
    ``self._lock``. Evaluation itself reads immutable constraint values and
    runs outside the lock.
    """

    def __init__(
        self,
        environment: RuntimeEnvironment,
        purchase_tracker: Optional[PurchaseTracker] = None,
        user_toggles: Optional[UserFeatureToggles] = None,
        permission_checker: Optional[PermissionChecker] = None,
        cache: Optional[EvaluationResultCache] = None,
        metrics: Optional[GatingMetrics] = None,
        cache_results: bool = True
    ):
        self.logger = get_logger("feature_gating.engine")
        self.environment = environment
        self.purchase_tracker = purchase_tracker
        self.user_toggles = user_toggles
        self.permission_checker = permission_checker
        self.cache = cache if cache is not None else EvaluationResultCache()
        self.metrics = metrics
        self.cache_results = cache_results

        self._lock = threading.RLock()
        self._constraints: Dict[FeaturePath, FeatureConstraints] = {}
        self._subscriptions: Set[str] = set()

        self._evaluators: Dict[PreconditionKind, FeaturePreconditionEvaluator] = {
            PreconditionKind.RUNTIME_ENABLED: RuntimePreconditionEvaluator()
        }
        if purchase_tracker is not None:
            self._evaluators[PreconditionKind.PURCHASE_REQUIRED] = PurchasePreconditionEvaluator(purchase_tracker)
            if purchase_tracker.supports_observers:
                purchase_tracker.add_observer(self._purchase_status_changed)
                self._subscriptions.add(PURCHASES)
        if user_toggles is not None:
            self._evaluators[PreconditionKind.USER_TOGGLED] = UserTogglePreconditionEvaluator(user_toggles)
            if user_toggles.supports_observers:
                user_toggles.add_observer(self._toggle_changed)
                self._subscriptions.add(TOGGLES)
        if permission_checker is not None and permission_checker.supports_observers:
            permission_checker.add_observer(self._permission_changed)
            self._subscriptions.add(PERMISSIONS)

        self.logger.info(
            "Constraints evaluator created",
            platform=environment.platform.value,
            os_version=str(environment.os_version),
            subscriptions=sorted(self._subscriptions),
            cache_results=cache_results
        )

    def register(self, constraints: FeatureConstraints, feature: Feature) -> None:
        """Register the constraints of a feature.

        Registering the same constraints again is a no-op. Registering
        different constraints for an already registered feature raises
        ``ConflictingConstraintsError``.
        """
        self._check_evaluators(constraints, feature)
        path = feature.path

        with self._lock:
            existing = self._constraints.get(path)
            if existing is not None:
                if existing == constraints:
                    return
                self.logger.error("Conflicting constraints registration", feature=str(path))
                raise ConflictingConstraintsError(
                    f"Constraints for {path} are already registered and differ",
                    {
                        "feature": str(path),
                        "registered": existing.describe(),
                        "received": constraints.describe()
                    }
                )

            self._constraints[path] = constraints

        self.logger.info("Feature constraints registered", feature=str(path))

    def constraints_for(self, feature: Feature) -> Optional[FeatureConstraints]:
        with self._lock:
            return self._constraints.get(feature.path)

    def description(self, feature: Feature) -> str:
        """Human-readable summary of a feature's constraints."""
        constraints = self.constraints_for(feature)
        if constraints is None:
            return "<none>"
        return constraints.describe()

    def can_cache_result(self, feature: Feature) -> bool:
        """Whether the result for ``feature`` can be memoized.

        Only true when every input to the evaluation either cannot change
        for the lifetime of the process or is backed by a live change
        subscription.
        """
        with self._lock:
            constraints = self._constraints.get(feature.path)
            if constraints is None:
                return False
            return self._is_cacheable(constraints)

    def evaluate(self, feature: Feature) -> FeatureEvaluationResult:
        """Evaluate all constraints of a feature.

        Unregistered features have no constraints and are satisfied.
        """
        path = feature.path

        with self._lock:
            constraints = self._constraints.get(path)
            cacheable = constraints is not None and self._is_cacheable(constraints)
            if cacheable:
                cached = self.cache.get(path)
                if cached is not None:
                    self._record_cache("hit")
                    return cached
                self._record_cache("miss")
            generation = self.cache.generation

        start_time = time.time()
        result = self._evaluate(feature, constraints or FeatureConstraints.EMPTY)
        if self.metrics:
            self.metrics.record_evaluation(result.status.value, time.time() - start_time)

        self.logger.debug(
            "Feature evaluated",
            feature=str(path),
            status=result.status.value,
            cacheable=cacheable
        )

        if cacheable:
            with self._lock:
                stored = self.cache.store(path, result, generation)
            self._record_cache("store" if stored else "skip")

        return result

    def invalidate(self, feature: Optional[Feature] = None, reason: str = "manual") -> None:
        """Drop cached results for one feature, or for all features."""
        with self._lock:
            if feature is None:
                self.cache.invalidate_all()
            else:
                self.cache.invalidate(feature.path)

        self.logger.info(
            "Evaluation cache invalidated",
            feature=str(feature.path) if feature is not None else "*",
            reason=reason
        )
        if self.metrics:
            self.metrics.record_invalidation(reason)

    def close(self) -> None:
        """Unsubscribe from collaborators and drop every cached result."""
        with self._lock:
            subscriptions = set(self._subscriptions)
            self._subscriptions.clear()
            self.cache.invalidate_all()

        if PURCHASES in subscriptions:
            self.purchase_tracker.remove_observer(self._purchase_status_changed)
        if TOGGLES in subscriptions:
            self.user_toggles.remove_observer(self._toggle_changed)
        if PERMISSIONS in subscriptions:
            self.permission_checker.remove_observer(self._permission_changed)

        self.logger.info("Constraints evaluator closed")

    def _evaluate(self, feature: Feature, constraints: FeatureConstraints) -> FeatureEvaluationResult:
        platforms = []
        for constraint in constraints.platforms:
            is_active = self.environment.is_active(constraint)
            # Inactive constraints never block the feature.
            is_fulfilled = self.environment.is_compatible(constraint) if is_active else True
            platforms.append(ConstraintResult(
                constraint=constraint,
                is_active=is_active,
                is_fulfilled=is_fulfilled,
                parameters_description=constraint.parameters_description
            ))

        preconditions = []
        for precondition in constraints.preconditions:
            evaluator = self._evaluators[precondition.kind]
            outcome = evaluator.is_fulfilled(precondition, feature)
            preconditions.append(ConstraintResult(
                constraint=precondition,
                is_active=True,
                is_fulfilled=outcome.to_optional(),
                parameters_description=precondition.parameters_description
            ))

        permissions = []
        for permission in constraints.permissions:
            outcome = permission_fulfilment(self.permission_checker.status(permission))
            permissions.append(ConstraintResult(
                constraint=permission,
                is_active=True,
                is_fulfilled=outcome.to_optional(),
                parameters_description=permission.parameters_description
            ))

        overall = Tristate.all_of(
            result.outcome
            for result in platforms + preconditions + permissions
            if result.is_active
        )

        return FeatureEvaluationResult(
            feature=str(feature.path),
            status=EvaluationStatus.from_tristate(overall),
            platforms=ConstraintResults(tuple(platforms)),
            preconditions=ConstraintResults(tuple(preconditions)),
            permissions=ConstraintResults(tuple(permissions))
        )

    def _is_cacheable(self, constraints: FeatureConstraints) -> bool:
        if not self.cache_results:
            return False
        for precondition in constraints.preconditions:
            if precondition.kind == PreconditionKind.RUNTIME_ENABLED:
                # The application flips the flag without telling the engine.
                return False
            if precondition.kind == PreconditionKind.USER_TOGGLED and TOGGLES not in self._subscriptions:
                return False
            if precondition.kind == PreconditionKind.PURCHASE_REQUIRED and PURCHASES not in self._subscriptions:
                return False
        if constraints.permissions and PERMISSIONS not in self._subscriptions:
            return False
        return True

    def _check_evaluators(self, constraints: FeatureConstraints, feature: Feature) -> None:
        missing: List[str] = [
            precondition.kind.value
            for precondition in constraints.preconditions
            if precondition.kind not in self._evaluators
        ]
        if constraints.permissions and self.permission_checker is None:
            missing.append(PERMISSIONS)

        if missing:
            self.logger.error("No evaluator for constraints", feature=str(feature.path), missing=missing)
            raise MissingEvaluatorError(
                f"Cannot evaluate constraints of {feature.path}: nothing handles {', '.join(missing)}",
                {"feature": str(feature.path), "missing": missing}
            )

    def _invalidate_paths(self, paths: Set[FeaturePath], reason: str) -> None:
        with self._lock:
            for path in paths:
                self.cache.invalidate(path)

        if paths:
            self.logger.info(
                "Evaluation cache invalidated",
                features=sorted(str(path) for path in paths),
                reason=reason
            )
            if self.metrics:
                self.metrics.record_invalidation(reason)

    def _purchase_status_changed(self, product_id: str, is_purchased: Optional[bool]) -> None:
        # Any purchase can change past-purchase unlocks, not only the products a tree names.
        with self._lock:
            paths = self._paths_where(lambda c: c.has_precondition(PreconditionKind.PURCHASE_REQUIRED))
            self._invalidate_paths(paths, "purchase")

    def _toggle_changed(self, path: FeaturePath) -> None:
        with self._lock:
            paths = self._paths_where(lambda c: c.has_precondition(PreconditionKind.USER_TOGGLED))
            self._invalidate_paths(paths, "toggle")

    def _permission_changed(self, permission: SystemPermission, status: PermissionStatus) -> None:
        with self._lock:
            paths = self._paths_where(lambda c: permission in c.permissions)
            self._invalidate_paths(paths, "permission")

    def _paths_where(self, predicate) -> Set[FeaturePath]:
        return {path for path, constraints in self._constraints.items() if predicate(constraints)}

    def _record_cache(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_cache(outcome)


def create_evaluator(
    config: Optional[GatingConfig] = None,
    purchase_tracker: Optional[PurchaseTracker] = None,
    user_toggles: Optional[UserFeatureToggles] = None,
    permission_checker: Optional[PermissionChecker] = None,
    metrics: Optional[GatingMetrics] = None
) -> ConstraintsEvaluator:
    """Build an evaluator from configuration.

    The runtime environment honours the configured platform overrides and a
    file-backed toggle store is used when ``toggles_file`` is set and no
    store was passed in.
    """
    config = config or get_config()
    if user_toggles is None:
        user_toggles = JsonFileFeatureToggles.from_config(config)

    return ConstraintsEvaluator(
        environment=RuntimeEnvironment.detect(config),
        purchase_tracker=purchase_tracker,
        user_toggles=user_toggles,
        permission_checker=permission_checker,
        metrics=metrics,
        cache_results=config.cache_results
    )
