"""
In-process cache of feature evaluation results.
"""

import threading
from typing import Any, Dict, Optional

from gating_shared.logging import get_logger
from ..constraints.results import EvaluationStatus, FeatureEvaluationResult
from ..features.graph import FeaturePath


class EvaluationResultCache:
    """
    Thread-safe map of feature path to its last evaluation result.

    Every invalidation bumps ``generation``. A caller that evaluated a feature
    passes the generation it read before evaluating to ``store``; the result
    is dropped if an invalidation happened in between, so a stale answer can
    never outlive the change that made it stale.
    """

    def __init__(self):
        self.logger = get_logger("feature_gating.cache")
        self._lock = threading.RLock()
        self._results: Dict[FeaturePath, FeatureEvaluationResult] = {}
        self._generation = 0
        self._hits = 0
        self._misses = 0
        self._stores = 0
        self._rejected = 0
        self._invalidations = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, path: FeaturePath) -> Optional[FeatureEvaluationResult]:
        with self._lock:
            result = self._results.get(path)
            if result is None:
                self._misses += 1
            else:
                self._hits += 1
            return result

    def store(self, path: FeaturePath, result: FeatureEvaluationResult, generation: Optional[int] = None) -> bool:
        """Store a result. Returns ``False`` when the result was refused."""
        if result.status == EvaluationStatus.INDETERMINATE:
            return False

        with self._lock:
            if generation is not None and generation != self._generation:
                self._rejected += 1
                self.logger.debug(
                    "Discarding stale evaluation result",
                    feature=str(path),
                    generation=generation,
                    current_generation=self._generation
                )
                return False
            self._results[path] = result
            self._stores += 1
            return True

    def invalidate(self, path: FeaturePath) -> bool:
        with self._lock:
            self._generation += 1
            self._invalidations += 1
            return self._results.pop(path, None) is not None

    def invalidate_all(self) -> int:
        with self._lock:
            self._generation += 1
            self._invalidations += 1
            count = len(self._results)
            self._results.clear()
            return count

    def __contains__(self, path: FeaturePath) -> bool:
        with self._lock:
            return path in self._results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "entries": len(self._results),
                "hits": self._hits,
                "misses": self._misses,
                "hit_ratio": self._hits / total if total else 0.0,
                "stores": self._stores,
                "rejected": self._rejected,
                "invalidations": self._invalidations,
                "generation": self._generation,
            }
