"""
Purchase tracker contract and an in-memory debug implementation.

The engine never talks to a store directly. It asks a ``PurchaseTracker``
whether products are owned and listens for change notifications so it can
drop cached evaluation results.
"""

import threading
from enum import Enum
from typing import Callable, Dict, Optional, TYPE_CHECKING

from gating_shared.logging import get_logger
from gating_shared.errors import UnsupportedProductError
from ..observers import ObserverSet
from .products import Product, ProductKind

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..features.graph import Feature


# (product_id, is_purchased) where is_purchased may be None while unknown
PurchaseObserver = Callable[[str, Optional[bool]], None]


class PurchaseTracker:
    """Base class for purchase trackers.

    Subclasses answer the three status questions. ``None`` means the status
    is not known yet, for example because receipts are still loading.

    Observers are plain callables. Implementations must call
    ``notify_observers`` whenever a product's status changes. A tracker that
    cannot do that must set ``supports_observers = False`` so that nothing
    relying on its answers is ever cached.
    """

    supports_observers = True

    def __init__(self):
        self._observers = ObserverSet()

    def add_observer(self, observer: PurchaseObserver) -> None:
        """Register a callable for purchase status changes."""
        self._observers.add(observer)

    def remove_observer(self, observer: PurchaseObserver) -> None:
        """Unregister a callable."""
        self._observers.remove(observer)

    def notify_observers(self, product_id: str, is_purchased: Optional[bool]) -> None:
        """Synchronously deliver a status change to every observer."""
        self._observers.notify(product_id, is_purchased)

    def is_purchased(self, product: Product) -> Optional[bool]:
        """Return whether a non-consumable product has been paid for."""
        raise NotImplementedError

    def is_subscription_active(self, product: Product) -> Optional[bool]:
        """Return whether there is an active subscription for the product."""
        raise NotImplementedError

    def is_feature_enabled_by_past_purchases(self, feature: "Feature") -> bool:
        """Return ``True`` when past purchases unlock the feature regardless of products.

        This is the hook for grandfathering, credits spent on a feature or
        custom cross-device unlocks.
        """
        return False


class OverrideStatus(str, Enum):
    """Debug override values."""
    PURCHASED = "purchased"
    NOT_PURCHASED = "not_purchased"
    UNKNOWN = "unknown"


_OVERRIDE_VALUES: Dict[OverrideStatus, Optional[bool]] = {
    OverrideStatus.PURCHASED: True,
    OverrideStatus.NOT_PURCHASED: False,
    OverrideStatus.UNKNOWN: None,
}


class DebugPurchaseTracker(PurchaseTracker):
    """A purchase tracker whose answers can be overridden at runtime.

    Used on its own it is an in-memory fake where every product is unknown
    until overridden. Given a ``target`` tracker it proxies that tracker and
    only answers from overrides for the products that have one. Change
    notifications from the target are forwarded only for products that are
    not overridden.
    """

    def __init__(self, target: Optional[PurchaseTracker] = None):
        super().__init__()
        self.logger = get_logger("feature_gating.purchases.debug_tracker")
        self.target = target
        self._overrides: Dict[str, OverrideStatus] = {}
        self._overridden_products: Dict[str, Product] = {}
        self._lock = threading.Lock()

        if target is not None:
            target.add_observer(self._target_status_changed)

    @property
    def supports_observers(self) -> bool:  # type: ignore[override]
        return self.target is None or self.target.supports_observers

    @property
    def overrides(self) -> Dict[str, OverrideStatus]:
        with self._lock:
            return dict(self._overrides)

    def close(self) -> None:
        """Stop listening to the target tracker."""
        if self.target is not None:
            self.target.remove_observer(self._target_status_changed)

    def override_purchase(self, product: Product, status: OverrideStatus) -> None:
        """Force the status of a product, whatever the real history says."""
        self._check_product(product)
        with self._lock:
            self._overrides[product.product_id] = status
            self._overridden_products[product.product_id] = product

        self.logger.info("Purchase override set", product_id=product.product_id, status=status.value)
        self.notify_observers(product.product_id, self._status(product))

    def remove_override(self, product: Product) -> None:
        """Return a product to its real status."""
        with self._lock:
            removed = self._overrides.pop(product.product_id, None)
            self._overridden_products.pop(product.product_id, None)

        if removed is not None:
            self.logger.info("Purchase override removed", product_id=product.product_id)
            self.notify_observers(product.product_id, self._status(product))

    def remove_all_overrides(self) -> None:
        """Remove every override in effect."""
        with self._lock:
            products = list(self._overridden_products.values())
            self._overrides.clear()
            self._overridden_products.clear()

        if products:
            self.logger.info("Purchase overrides removed", count=len(products))
        for product in products:
            self.notify_observers(product.product_id, self.real_status(product))

    def overridden_status(self, product: Product) -> Optional[OverrideStatus]:
        """Return the override for a product, if any."""
        with self._lock:
            return self._overrides.get(product.product_id)

    def real_status(self, product: Product) -> Optional[bool]:
        """Return the target tracker's answer, ignoring overrides."""
        if self.target is None:
            return None
        if product.kind == ProductKind.SUBSCRIPTION:
            return self.target.is_subscription_active(product)
        return self.target.is_purchased(product)

    def is_purchased(self, product: Product) -> Optional[bool]:
        override = self.overridden_status(product)
        if override is not None:
            return _OVERRIDE_VALUES[override]
        if self.target is None:
            return None
        return self.target.is_purchased(product)

    def is_subscription_active(self, product: Product) -> Optional[bool]:
        override = self.overridden_status(product)
        if override is not None:
            return _OVERRIDE_VALUES[override]
        if self.target is None:
            return None
        return self.target.is_subscription_active(product)

    def is_feature_enabled_by_past_purchases(self, feature: "Feature") -> bool:
        if self.target is None:
            return False
        return self.target.is_feature_enabled_by_past_purchases(feature)

    def _status(self, product: Product) -> Optional[bool]:
        if product.kind == ProductKind.SUBSCRIPTION:
            return self.is_subscription_active(product)
        return self.is_purchased(product)

    def _check_product(self, product: Product) -> None:
        if product.is_consumable:
            raise UnsupportedProductError(
                "Consumable products cannot be overridden",
                {"product_id": product.product_id}
            )

    def _target_status_changed(self, product_id: str, is_purchased: Optional[bool]) -> None:
        with self._lock:
            overridden = product_id in self._overrides
        if not overridden:
            self.notify_observers(product_id, is_purchased)
