"""
Constraint declarations and their evaluation.

- tristate: Three-valued logic used by every evaluation.
- platforms: Platform families, OS versions and version constraints.
- preconditions: Runtime, user toggle and purchase preconditions.
- permissions: System permissions and permission checkers.
- builder: The declaration DSL producing ``FeatureConstraints``.
- evaluators: One evaluator per precondition kind.
- results: Evaluation result models and diagnostic reports.
- engine: ``ConstraintsEvaluator``, registration and cached evaluation.
"""
