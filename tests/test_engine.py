"""
Unit tests for the constraints evaluator.
"""

import threading
from unittest.mock import patch

import pytest

from gating_shared.config import GatingConfig
from gating_shared.errors import ConflictingConstraintsError, MissingEvaluatorError
from feature_gating.cache.result_cache import EvaluationResultCache
from feature_gating.constraints.builder import FeatureConstraints, FeatureConstraintsBuilder
from feature_gating.constraints.engine import ConstraintsEvaluator, create_evaluator
from feature_gating.constraints.permissions import PermissionStatus, SystemPermission
from feature_gating.constraints.platforms import Platform
from feature_gating.constraints.preconditions import RuntimeEnabled
from feature_gating.constraints.results import ConstraintStatus, EvaluationStatus
from feature_gating.features.graph import Feature
from feature_gating.features.toggles import JsonFileFeatureToggles
from feature_gating.purchases.requirements import PurchaseRequirement

from conftest import FakePurchaseTracker


def build(declare) -> FeatureConstraints:
    builder = FeatureConstraintsBuilder()
    declare(builder)
    return builder.build()


class TestRegistration:
    """Test constraint registration."""

    def test_register_and_describe(self, evaluator, feature, product_a):
        """Test registered constraints are retrievable and described."""
        constraints = build(lambda b: b.purchase(product_a))

        assert evaluator.description(feature) == "<none>"
        evaluator.register(constraints, feature)

        assert evaluator.constraints_for(feature) == constraints
        assert "Preconditions: Purchase com.example.a" in evaluator.description(feature)

    def test_identical_registration_is_idempotent(self, evaluator, feature):
        """Test registering equal constraints twice is allowed."""
        evaluator.register(build(lambda b: b.user_toggled(True)), feature)
        evaluator.register(build(lambda b: b.user_toggled(True)), feature)

    def test_conflicting_registration_raises(self, evaluator, feature):
        """Test different constraints for the same feature are a usage error."""
        evaluator.register(build(lambda b: b.user_toggled(True)), feature)

        with pytest.raises(ConflictingConstraintsError) as exc_info:
            evaluator.register(build(lambda b: b.user_toggled(False)), feature)
        assert exc_info.value.details["feature"] == "Photos"

    def test_registration_is_by_path(self, evaluator):
        """Test two feature objects at the same path share constraints."""
        evaluator.register(build(lambda b: b.runtime_enabled()), Feature("Photos"))
        assert evaluator.constraints_for(Feature("Photos")) is not None

    def test_missing_purchase_tracker(self, environment, feature, product_a):
        """Test purchase preconditions need a tracker."""
        engine = ConstraintsEvaluator(environment)
        with pytest.raises(MissingEvaluatorError) as exc_info:
            engine.register(build(lambda b: b.purchase(product_a)), feature)
        assert exc_info.value.details["missing"] == ["purchase_required"]

    def test_missing_toggles_and_permissions(self, environment, feature):
        """Test toggle and permission constraints need their collaborators."""
        engine = ConstraintsEvaluator(environment)

        def declare(builder):
            builder.user_toggled()
            builder.permission(SystemPermission.CAMERA)

        with pytest.raises(MissingEvaluatorError) as exc_info:
            engine.register(build(declare), feature)
        assert exc_info.value.details["missing"] == ["user_toggled", "permissions"]


class TestEvaluation:
    """Test evaluation and combination of constraints."""

    def test_unregistered_feature_is_satisfied(self, evaluator, feature):
        """Test a feature without constraints is available."""
        result = evaluator.evaluate(feature)
        assert result.status == EvaluationStatus.SATISFIED
        assert not evaluator.can_cache_result(feature)

    def test_inactive_platforms_never_block(self, evaluator, feature):
        """Test constraints for other platforms are reported as passed."""
        evaluator.register(build(lambda b: b.platform(Platform.MACOS, "unsupported")), feature)
        result = evaluator.evaluate(feature)

        assert result.status == EvaluationStatus.SATISFIED
        mac = [r for r in result.platforms if r.constraint.platform == Platform.MACOS][0]
        assert mac.is_active is False
        assert mac.is_fulfilled is True
        assert mac.status == ConstraintStatus.NOT_ACTIVE
        assert len(result.platforms.active) == 1

    def test_running_platform_version(self, evaluator):
        """Test the active platform constraint is checked against the OS version."""
        supported = Feature("Supported")
        too_new = Feature("TooNew")
        evaluator.register(build(lambda b: b.only(Platform.IOS, "11.0.0")), supported)
        evaluator.register(build(lambda b: b.only(Platform.IOS, "13")), too_new)

        assert evaluator.evaluate(supported).status == EvaluationStatus.SATISFIED
        result = evaluator.evaluate(too_new)
        assert result.status == EvaluationStatus.NOT_SATISFIED
        assert [r.name for r in result.platforms.not_satisfied] == ["ios >= 13.0.0"]

    def test_unknown_purchase_is_indeterminate_and_not_cached(self, evaluator, tracker, product_a):
        """Test purchase pending plus runtime enabled gives an indeterminate result."""
        feature = Feature("Export", is_enabled=True)
        evaluator.register(build(lambda b: (b.purchase(product_a), b.runtime_enabled())), feature)

        result = evaluator.evaluate(feature)

        assert result.status == EvaluationStatus.INDETERMINATE
        assert result.available is None
        assert result.has_not_determined_constraints
        assert len(evaluator.cache) == 0

    def test_purchased_is_satisfied_and_eligible_for_caching(self, evaluator, tracker, product_a):
        """Test the same feature once the purchase is known."""
        feature = Feature("Export", is_enabled=True)
        evaluator.register(build(lambda b: (b.purchase(product_a), b.runtime_enabled())), feature)
        tracker.set_status(product_a.product_id, True)

        result = evaluator.evaluate(feature)

        assert result.status == EvaluationStatus.SATISFIED
        assert EvaluationResultCache().store(feature.path, result)
        # The runtime flag can change without notice so this feature is never memoized.
        assert not evaluator.can_cache_result(feature)

    def test_false_beats_unknown(self, evaluator, product_a):
        """Test a definite failure wins over a pending answer."""
        feature = Feature("Export", is_enabled=False)
        evaluator.register(build(lambda b: (b.purchase(product_a), b.runtime_enabled())), feature)
        assert evaluator.evaluate(feature).status == EvaluationStatus.NOT_SATISFIED

    def test_permissions(self, evaluator, permission_checker, feature):
        """Test permission statuses feed into the overall result."""
        evaluator.register(build(lambda b: b.permission(SystemPermission.CAMERA)), feature)
        assert evaluator.evaluate(feature).status == EvaluationStatus.INDETERMINATE

        permission_checker.set_status(SystemPermission.CAMERA, PermissionStatus.DENIED)
        assert evaluator.evaluate(feature).status == EvaluationStatus.NOT_SATISFIED

        permission_checker.set_status(SystemPermission.CAMERA, PermissionStatus.AUTHORIZED)
        assert evaluator.evaluate(feature).status == EvaluationStatus.SATISFIED

    def test_report(self, evaluator, feature, toggles):
        """Test the diagnostic report lists every constraint."""
        evaluator.register(build(lambda b: (b.only(Platform.IOS, 11), b.user_toggled(True))), feature)
        report = evaluator.evaluate(feature).to_report()

        assert report.feature == "Photos"
        assert report.status == EvaluationStatus.SATISFIED
        assert len(report.constraints) == len(Platform) + 1
        toggled = [c for c in report.constraints if c.category == "precondition"][0]
        assert toggled.name == "User toggled (default: true)"
        assert toggled.model_dump()["is_fulfilled"] is True


class TestCaching:
    """Test caching and invalidation."""

    def test_platform_only_results_are_memoized(self, evaluator, feature):
        """Test two evaluations return the same result and evaluate once."""
        evaluator.register(build(lambda b: b.only(Platform.IOS, 11)), feature)

        with patch.object(evaluator, "_evaluate", wraps=evaluator._evaluate) as spy:
            first = evaluator.evaluate(feature)
            second = evaluator.evaluate(feature)

        assert first is second
        assert spy.call_count == 1
        assert evaluator.can_cache_result(feature)

    def test_runtime_enabled_is_never_cached(self, evaluator):
        """Test the runtime flag is read on every evaluation."""
        feature = Feature("Beta", is_enabled=False)
        evaluator.register(build(lambda b: b.runtime_enabled()), feature)

        assert evaluator.evaluate(feature).status == EvaluationStatus.NOT_SATISFIED
        feature.is_enabled = True
        assert evaluator.evaluate(feature).status == EvaluationStatus.SATISFIED

    def test_purchase_change_invalidates(self, evaluator, tracker, feature, product_a):
        """Test a purchase notification drops the cached result."""
        tracker.statuses[product_a.product_id] = False
        evaluator.register(build(lambda b: b.purchase(product_a)), feature)

        assert evaluator.evaluate(feature).status == EvaluationStatus.NOT_SATISFIED
        assert feature.path in evaluator.cache

        tracker.set_status(product_a.product_id, True)
        assert feature.path not in evaluator.cache
        assert evaluator.evaluate(feature).status == EvaluationStatus.SATISFIED

    def test_unrelated_purchase_can_unlock_by_past_purchases(self, evaluator, tracker, feature, product_a):
        """Test buying a product outside the tree still drops results that past purchases may unlock."""
        tracker.statuses[product_a.product_id] = False
        evaluator.register(build(lambda b: b.purchase(product_a)), feature)
        assert evaluator.evaluate(feature).status == EvaluationStatus.NOT_SATISFIED

        tracker.unlocked_features.add("Photos")
        tracker.set_status("com.example.legacy", True)

        assert feature.path not in evaluator.cache
        assert evaluator.evaluate(feature).status == EvaluationStatus.SATISFIED

    def test_purchase_change_keeps_results_without_purchases(self, evaluator, tracker, feature, product_a):
        """Test features without purchase preconditions keep their cached result."""
        platform_only = Feature("PlatformOnly")
        tracker.statuses[product_a.product_id] = True
        evaluator.register(build(lambda b: b.purchase(product_a)), feature)
        evaluator.register(build(lambda b: b.only(Platform.IOS)), platform_only)
        evaluator.evaluate(feature)
        evaluator.evaluate(platform_only)

        tracker.set_status("com.example.legacy", True)

        assert feature.path not in evaluator.cache
        assert platform_only.path in evaluator.cache

    def test_unobservable_tracker_disables_caching(self, environment, feature, product_a):
        """Test nothing depending on a silent tracker is cached."""
        tracker = FakePurchaseTracker({product_a.product_id: True}, observable=False)
        engine = ConstraintsEvaluator(environment, purchase_tracker=tracker)
        engine.register(build(lambda b: b.purchase(product_a)), feature)

        engine.evaluate(feature)
        engine.evaluate(feature)

        assert not engine.can_cache_result(feature)
        assert tracker.lookups == 2
        assert len(tracker._observers) == 0

    def test_toggle_change_invalidates(self, evaluator, toggles, feature):
        """Test a toggle notification drops cached toggle results."""
        evaluator.register(build(lambda b: b.user_toggled(default_value=False)), feature)
        assert evaluator.evaluate(feature).status == EvaluationStatus.NOT_SATISFIED
        assert evaluator.can_cache_result(feature)

        toggles.set_enabled(feature, True)
        assert evaluator.evaluate(feature).status == EvaluationStatus.SATISFIED

    def test_permission_change_invalidates(self, evaluator, permission_checker, feature):
        """Test a permission notification drops results using that permission."""
        other = Feature("Voice")
        permission_checker.set_status(SystemPermission.CAMERA, PermissionStatus.DENIED)
        permission_checker.set_status(SystemPermission.MICROPHONE, PermissionStatus.DENIED)
        evaluator.register(build(lambda b: b.permission(SystemPermission.CAMERA)), feature)
        evaluator.register(build(lambda b: b.permission(SystemPermission.MICROPHONE)), other)
        evaluator.evaluate(feature)
        evaluator.evaluate(other)

        permission_checker.set_status(SystemPermission.CAMERA, PermissionStatus.AUTHORIZED)

        assert feature.path not in evaluator.cache
        assert other.path in evaluator.cache
        assert evaluator.evaluate(feature).status == EvaluationStatus.SATISFIED

    def test_caching_disabled(self, environment, feature):
        """Test cache_results=False evaluates every time."""
        engine = ConstraintsEvaluator(environment, cache_results=False)
        engine.register(build(lambda b: b.only(Platform.IOS)), feature)

        assert engine.evaluate(feature) is not engine.evaluate(feature)
        assert not engine.can_cache_result(feature)

    def test_manual_invalidation(self, evaluator, feature, registry):
        """Test invalidate() for one feature and for all."""
        evaluator.register(build(lambda b: b.only(Platform.IOS)), feature)
        evaluator.evaluate(feature)

        evaluator.invalidate(feature)
        assert feature.path not in evaluator.cache

        evaluator.evaluate(feature)
        evaluator.invalidate()
        assert len(evaluator.cache) == 0
        assert registry.get_sample_value("feature_cache_invalidations_total", {"reason": "manual"}) == 2.0

    def test_metrics(self, evaluator, feature, registry):
        """Test evaluations and cache activity are counted."""
        evaluator.register(build(lambda b: b.only(Platform.IOS)), feature)
        evaluator.evaluate(feature)
        evaluator.evaluate(feature)

        assert registry.get_sample_value("feature_evaluations_total", {"status": "satisfied"}) == 1.0
        assert registry.get_sample_value("feature_evaluation_cache_total", {"outcome": "miss"}) == 1.0
        assert registry.get_sample_value("feature_evaluation_cache_total", {"outcome": "store"}) == 1.0
        assert registry.get_sample_value("feature_evaluation_cache_total", {"outcome": "hit"}) == 1.0
        assert registry.get_sample_value("feature_evaluation_duration_seconds_count") == 1.0

    def test_close_unsubscribes(self, environment, tracker, toggles, permission_checker):
        """Test close() removes every observer it added."""
        engine = ConstraintsEvaluator(
            environment,
            purchase_tracker=tracker,
            user_toggles=toggles,
            permission_checker=permission_checker
        )
        assert len(tracker._observers) == 1

        engine.close()

        assert len(tracker._observers) == 0
        assert len(toggles._observers) == 0
        assert len(permission_checker._observers) == 0


class TestInvalidationOrdering:
    """Test a notification is never lost to a concurrent evaluation."""

    def test_result_computed_before_invalidation_is_not_stored(self, evaluator, tracker, feature, product_a):
        """Test a stale result is discarded when a change lands mid-evaluation."""
        tracker.statuses[product_a.product_id] = True
        evaluator.register(build(lambda b: b.purchase(product_a)), feature)
        original = evaluator._evaluate

        def racing(*args):
            result = original(*args)
            tracker.set_status(product_a.product_id, False)
            return result

        with patch.object(evaluator, "_evaluate", side_effect=racing):
            stale = evaluator.evaluate(feature)

        assert stale.status == EvaluationStatus.SATISFIED
        assert feature.path not in evaluator.cache
        assert evaluator.evaluate(feature).status == EvaluationStatus.NOT_SATISFIED

    def test_concurrent_evaluation_sees_last_change(self, evaluator, tracker, feature, product_a):
        """Test readers on other threads never pin an outdated result."""
        tracker.statuses[product_a.product_id] = False
        evaluator.register(build(lambda b: b.purchase(product_a)), feature)
        stop = threading.Event()
        errors = []

        def reader():
            try:
                while not stop.is_set():
                    evaluator.evaluate(feature)
            except Exception as exc:  # pragma: no cover - surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()

        for index in range(200):
            tracker.set_status(product_a.product_id, index % 2 == 0)
        tracker.set_status(product_a.product_id, True)

        stop.set()
        for thread in threads:
            thread.join()

        assert errors == []
        assert evaluator.evaluate(feature).status == EvaluationStatus.SATISFIED


class TestCreateEvaluator:
    """Test building an evaluator from configuration."""

    def test_from_config(self, tmp_path):
        """Test configured overrides, caching switch and toggle file."""
        config = GatingConfig(
            platform="macos",
            os_version="10.15",
            cache_results=False,
            toggles_file=tmp_path / "toggles.json"
        )
        engine = create_evaluator(config)

        assert engine.environment.platform is Platform.MACOS
        assert str(engine.environment.os_version) == "10.15.0"
        assert engine.cache_results is False
        assert isinstance(engine.user_toggles, JsonFileFeatureToggles)
        engine.close()

    def test_runtime_enabled_needs_nothing(self, environment, feature):
        """Test the runtime evaluator is always available."""
        engine = ConstraintsEvaluator(environment)
        engine.register(FeatureConstraints(preconditions=(RuntimeEnabled(),)), feature)
        assert engine.evaluate(feature).is_satisfied
