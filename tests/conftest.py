"""
Shared fixtures for the feature gating tests.

Organization:
    - Collaborators: purchase trackers, toggle stores, permission checkers
    - Products and features used across scenarios
    - Engine: runtime environment, metrics and the constraints evaluator
"""

from typing import Dict, Optional, Set

import pytest
from prometheus_client import CollectorRegistry

from gating_shared.metrics import GatingMetrics
from feature_gating.constraints.engine import ConstraintsEvaluator
from feature_gating.constraints.permissions import StaticPermissionChecker
from feature_gating.constraints.platforms import OperatingSystemVersion, Platform, RuntimeEnvironment
from feature_gating.features.graph import Feature, FeatureGraph
from feature_gating.features.toggles import InMemoryFeatureToggles
from feature_gating.purchases.products import Product
from feature_gating.purchases.trackers import PurchaseTracker


class FakePurchaseTracker(PurchaseTracker):
    """Purchase tracker driven by a dict of product id to status."""

    def __init__(self, statuses: Optional[Dict[str, Optional[bool]]] = None, observable: bool = True):
        super().__init__()
        self.statuses: Dict[str, Optional[bool]] = dict(statuses or {})
        self.unlocked_features: Set[str] = set()
        self.lookups = 0
        self.supports_observers = observable

    def set_status(self, product_id: str, status: Optional[bool]) -> None:
        self.statuses[product_id] = status
        self.notify_observers(product_id, status)

    def is_purchased(self, product: Product) -> Optional[bool]:
        self.lookups += 1
        return self.statuses.get(product.product_id)

    def is_subscription_active(self, product: Product) -> Optional[bool]:
        self.lookups += 1
        return self.statuses.get(product.product_id)

    def is_feature_enabled_by_past_purchases(self, feature: Feature) -> bool:
        return str(feature.path) in self.unlocked_features


# ============================================================================
# Collaborators
# ============================================================================


@pytest.fixture
def tracker():
    """Observable fake purchase tracker with nothing known yet."""
    return FakePurchaseTracker()


@pytest.fixture
def toggles():
    """In-memory user toggles."""
    return InMemoryFeatureToggles()


@pytest.fixture
def permission_checker():
    """Permission checker where nothing has been asked yet."""
    return StaticPermissionChecker()


# ============================================================================
# Products and features
# ============================================================================


@pytest.fixture
def product_a():
    return Product.non_consumable("com.example.a", "Product A")


@pytest.fixture
def product_b():
    return Product.non_consumable("com.example.b", "Product B")


@pytest.fixture
def subscription():
    return Product.subscription("com.example.pro.monthly", "Pro Monthly")


@pytest.fixture
def credits():
    return Product.consumable("com.example.credits", "Credits", quantity=10)


@pytest.fixture
def feature():
    return Feature("Photos")


# ============================================================================
# Engine
# ============================================================================


@pytest.fixture
def registry():
    """Fresh Prometheus registry so metrics never collide between tests."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return GatingMetrics(registry)


@pytest.fixture
def environment():
    """iOS 12.3.1."""
    return RuntimeEnvironment(platform=Platform.IOS, os_version=OperatingSystemVersion(12, 3, 1))


@pytest.fixture
def evaluator(environment, tracker, toggles, permission_checker, metrics):
    """Constraints evaluator wired to every collaborator."""
    engine = ConstraintsEvaluator(
        environment,
        purchase_tracker=tracker,
        user_toggles=toggles,
        permission_checker=permission_checker,
        metrics=metrics
    )
    yield engine
    engine.close()


@pytest.fixture
def graph(evaluator):
    return FeatureGraph(evaluator)
