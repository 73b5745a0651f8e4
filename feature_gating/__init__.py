"""
Feature gating engine.

Answers "can this feature be used right now?" for features declared with
platform, precondition and permission constraints. It provides:

- feature_gating.purchases: Products, purchase requirement trees and trackers.
- feature_gating.constraints: Tri-state logic, constraint declarations,
  evaluators and the ``ConstraintsEvaluator`` engine.
- feature_gating.cache: In-process memoization of evaluation results.
- feature_gating.features: The feature graph, user toggles and availability.

Guidelines:
- Unknown external state is an indeterminate result, never an exception.
- Exceptions raised by this package are usage errors in feature declaration.
"""
