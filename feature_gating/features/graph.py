"""
Feature graph: the hierarchy of declared features.

Features form a tree. A feature's path (``Parent/Child``) is its identity
for constraint registration and lookup. Declaring a feature with
constraints also registers those constraints with the evaluator.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union, TYPE_CHECKING

from gating_shared.errors import FeatureGraphError
from gating_shared.logging import get_logger
from ..constraints.builder import FeatureConstraints, FeatureConstraintsBuilder

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..constraints.engine import ConstraintsEvaluator


@dataclass(frozen=True)
class FeaturePath:
    """The identity of a feature, from the root of the graph."""
    components: Tuple[str, ...]

    @classmethod
    def parse(cls, value: str) -> "FeaturePath":
        return cls(tuple(part for part in value.split("/") if part))

    @property
    def parent(self) -> Optional["FeaturePath"]:
        if len(self.components) < 2:
            return None
        return FeaturePath(self.components[:-1])

    def child(self, name: str) -> "FeaturePath":
        return FeaturePath(self.components + (name,))

    def __str__(self) -> str:
        return "/".join(self.components)


class Feature:
    """A named, independently gateable unit of application capability.

    ``is_enabled`` is the runtime switch consulted by the ``RuntimeEnabled``
    precondition; the application may flip it at any time.
    """

    def __init__(
        self,
        name: str,
        parent: Optional["Feature"] = None,
        description: Optional[str] = None,
        is_enabled: bool = True
    ):
        if not name or "/" in name:
            raise FeatureGraphError(f"Invalid feature name '{name}'", {"name": name})
        self.name = name
        self.parent = parent
        self.description = description
        self.is_enabled = is_enabled

        parent_path = parent.path.components if parent is not None else ()
        self.path = FeaturePath(parent_path + (name,))

    def __repr__(self) -> str:
        return f"Feature({self.path})"

    def __str__(self) -> str:
        return str(self.path)


ConstraintsDeclaration = Union[FeatureConstraints, Callable[[FeatureConstraintsBuilder], None]]


class FeatureGraph:
    """Registry of declared features."""

    def __init__(self, evaluator: Optional["ConstraintsEvaluator"] = None):
        self.logger = get_logger("feature_gating.features.graph")
        self.evaluator = evaluator
        self._features: Dict[FeaturePath, Feature] = {}
        self._children: Dict[Optional[FeaturePath], List[Feature]] = {None: []}
        self._lock = threading.Lock()

    def declare(self, feature: Feature, constraints: Optional[ConstraintsDeclaration] = None) -> Feature:
        """Add a feature and register its constraints.

        ``constraints`` is either a built ``FeatureConstraints`` or a callable
        that receives a ``FeatureConstraintsBuilder``. Parents must be
        declared before their children.
        """
        parent_path = feature.parent.path if feature.parent is not None else None

        with self._lock:
            existing = self._features.get(feature.path)
            if existing is not None and existing is not feature:
                raise FeatureGraphError(
                    f"A different feature is already declared at {feature.path}",
                    {"feature": str(feature.path)}
                )
            if parent_path is not None and self._features.get(parent_path) is not feature.parent:
                raise FeatureGraphError(
                    f"Parent of {feature.path} has not been declared",
                    {"feature": str(feature.path), "parent": str(parent_path)}
                )
            if existing is None:
                self._features[feature.path] = feature
                self._children[parent_path].append(feature)
                self._children[feature.path] = []
                self.logger.info("Feature declared", feature=str(feature.path))

        if constraints is not None:
            if callable(constraints):
                builder = FeatureConstraintsBuilder()
                constraints(builder)
                constraints = builder.build()
            if self.evaluator is None:
                raise FeatureGraphError(
                    f"Cannot register constraints for {feature.path} without an evaluator",
                    {"feature": str(feature.path)}
                )
            self.evaluator.register(constraints, feature)

        return feature

    def get(self, path: Union[FeaturePath, str]) -> Optional[Feature]:
        if isinstance(path, str):
            path = FeaturePath.parse(path)
        with self._lock:
            return self._features.get(path)

    def children(self, feature: Optional[Feature] = None) -> List[Feature]:
        """Direct children of ``feature``, or the root features."""
        key = feature.path if feature is not None else None
        with self._lock:
            return list(self._children.get(key, ()))

    def ancestors(self, feature: Feature) -> List[Feature]:
        """Parents of ``feature``, nearest first."""
        result = []
        parent = feature.parent
        while parent is not None:
            result.append(parent)
            parent = parent.parent
        return result

    def walk(self) -> Iterator[Feature]:
        """Depth-first iteration in declaration order."""
        stack = list(reversed(self.children()))
        while stack:
            feature = stack.pop()
            yield feature
            stack.extend(reversed(self.children(feature)))

    def __contains__(self, feature: Feature) -> bool:
        with self._lock:
            return self._features.get(feature.path) is feature

    def __len__(self) -> int:
        with self._lock:
            return len(self._features)
