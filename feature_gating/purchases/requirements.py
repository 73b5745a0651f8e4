"""
Purchase requirement trees.

A ``PurchaseRequirement`` is a node in a boolean expression over products:

* Feature X needs product A
* Feature X needs A or B or C
* Feature X needs A and B
* Feature X needs A and (B or C), expressed as a node for A with a
  dependency on an ``ANY`` node for B and C

Evaluation is three-valued. The algorithm, for one node:

1. Each product is looked up in the tracker according to its kind, and a
   non-true answer is upgraded to TRUE when the tracker reports that past
   purchases enable the feature.
2. Products are combined with ANY (Kleene OR) or ALL (Kleene AND). Unknown
   propagates from this step.
3. Dependencies are consulted only when step 2 gave TRUE or the node has no
   products. Any dependency that is not strictly TRUE makes the node FALSE,
   so an unresolved child never yields "waiting" here.
"""

from enum import Enum
from typing import FrozenSet, Iterable, Iterator, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from gating_shared.errors import UnsupportedProductError
from gating_shared.logging import get_logger
from ..constraints.tristate import Tristate
from .products import Product, ProductKind
from .trackers import PurchaseTracker

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..features.graph import Feature


logger = get_logger("feature_gating.purchases.requirements")


class MatchingCriteria(str, Enum):
    """How the products of one requirement node are matched."""
    ANY = "any"
    ALL = "all"


class PurchaseRequirement:
    """An immutable node of a purchase requirement tree."""

    __slots__ = ("_products", "_matching_criteria", "_dependencies")

    def __init__(
        self,
        products: Iterable[Product] = (),
        matching_criteria: MatchingCriteria = MatchingCriteria.ALL,
        dependencies: Optional[Sequence["PurchaseRequirement"]] = None
    ):
        products = frozenset(products)
        consumables = sorted(p.product_id for p in products if p.is_consumable)
        if consumables:
            raise UnsupportedProductError(
                "Consumable products cannot be used as purchase requirements",
                {"product_ids": consumables}
            )

        self._products: FrozenSet[Product] = products
        self._matching_criteria = MatchingCriteria(matching_criteria)
        self._dependencies: Tuple[PurchaseRequirement, ...] = tuple(dependencies or ())

    @classmethod
    def single(cls, product: Product) -> "PurchaseRequirement":
        """Require one product."""
        return cls([product], MatchingCriteria.ALL)

    @classmethod
    def any_of(cls, *products: Product) -> "PurchaseRequirement":
        """Require at least one of the products."""
        return cls(products, MatchingCriteria.ANY)

    @classmethod
    def all_of(cls, *products: Product) -> "PurchaseRequirement":
        """Require every one of the products."""
        return cls(products, MatchingCriteria.ALL)

    @property
    def products(self) -> FrozenSet[Product]:
        return self._products

    @property
    def matching_criteria(self) -> MatchingCriteria:
        return self._matching_criteria

    @property
    def dependencies(self) -> Tuple["PurchaseRequirement", ...]:
        return self._dependencies

    def all_products(self) -> Set[Product]:
        """Return every product mentioned anywhere in this tree."""
        found = set(self._products)
        for dependency in self._dependencies:
            found |= dependency.all_products()
        return found

    def is_fulfilled(self, tracker: PurchaseTracker, feature: "Feature") -> Tristate:
        """Evaluate this requirement and its dependencies against a tracker."""
        if self._products:
            matched = self._match_products(tracker, feature)
            if matched is not Tristate.TRUE:
                return matched

        for dependency in self._dependencies:
            if dependency.is_fulfilled(tracker, feature) is not Tristate.TRUE:
                return Tristate.FALSE

        return Tristate.TRUE

    def _match_products(self, tracker: PurchaseTracker, feature: "Feature") -> Tristate:
        statuses = self._product_statuses(tracker, feature)
        if self._matching_criteria == MatchingCriteria.ANY:
            return Tristate.any_of(statuses)
        return Tristate.all_of(statuses)

    def _product_statuses(self, tracker: PurchaseTracker, feature: "Feature") -> Iterator[Tristate]:
        # Sorted so that short-circuiting and logs are reproducible.
        for product in sorted(self._products, key=lambda p: p.product_id):
            yield establish_fulfilment(product, tracker, feature)

    def describe(self) -> str:
        """Human readable form of the tree, e.g. ``(A OR B) AND C``."""
        parts = []
        if self._products:
            joiner = " OR " if self._matching_criteria == MatchingCriteria.ANY else " AND "
            names = sorted(p.product_id for p in self._products)
            text = joiner.join(names)
            parts.append(f"({text})" if len(names) > 1 else text)

        for dependency in self._dependencies:
            text = dependency.describe()
            parts.append(f"[{text}]")

        return " AND ".join(parts) if parts else "nothing"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PurchaseRequirement):
            return NotImplemented
        return (
            self._products == other._products and
            self._matching_criteria == other._matching_criteria and
            self._dependencies == other._dependencies
        )

    def __hash__(self) -> int:
        return hash((self._products, self._matching_criteria, self._dependencies))

    def __repr__(self) -> str:
        return f"PurchaseRequirement({self.describe()})"

    def __str__(self) -> str:
        return self.describe()


def establish_fulfilment(product: Product, tracker: PurchaseTracker, feature: "Feature") -> Tristate:
    """Work out whether one product counts as purchased for a feature."""
    if product.kind == ProductKind.NON_CONSUMABLE:
        status = Tristate.from_optional(tracker.is_purchased(product))
    elif product.kind == ProductKind.SUBSCRIPTION:
        status = Tristate.from_optional(tracker.is_subscription_active(product))
    else:
        raise UnsupportedProductError(
            f"Cannot evaluate {product.kind.value} product as a purchase requirement",
            {"product_id": product.product_id, "kind": product.kind.value}
        )

    if status is not Tristate.TRUE and tracker.is_feature_enabled_by_past_purchases(feature):
        logger.debug(
            "Product unlocked by past purchases",
            product_id=product.product_id,
            feature=str(feature),
            status=status.value
        )
        return Tristate.TRUE

    return status
