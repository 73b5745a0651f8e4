"""
Evaluation result models.

Internal results are frozen dataclasses. ``FeatureEvaluationResult.to_report``
turns one into pydantic models for diagnostics output.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

from .tristate import Tristate


class EvaluationStatus(str, Enum):
    """Overall outcome for a feature."""
    SATISFIED = "satisfied"
    NOT_SATISFIED = "not_satisfied"
    INDETERMINATE = "indeterminate"

    @classmethod
    def from_tristate(cls, value: Tristate) -> "EvaluationStatus":
        if value is Tristate.TRUE:
            return cls.SATISFIED
        if value is Tristate.FALSE:
            return cls.NOT_SATISFIED
        return cls.INDETERMINATE


class ConstraintStatus(str, Enum):
    """Outcome for a single constraint."""
    NOT_ACTIVE = "not_active"
    NOT_DETERMINED = "not_determined"
    NOT_SATISFIED = "not_satisfied"
    SATISFIED = "satisfied"


@dataclass(frozen=True)
class ConstraintResult:
    """The evaluated state of one declared constraint."""
    constraint: Any
    is_active: bool
    is_fulfilled: Optional[bool]
    parameters_description: str

    @property
    def name(self) -> str:
        return str(self.constraint)

    @property
    def outcome(self) -> Tristate:
        return Tristate.from_optional(self.is_fulfilled)

    @property
    def status(self) -> ConstraintStatus:
        if not self.is_active:
            return ConstraintStatus.NOT_ACTIVE
        if self.is_fulfilled is None:
            return ConstraintStatus.NOT_DETERMINED
        if self.is_fulfilled:
            return ConstraintStatus.SATISFIED
        return ConstraintStatus.NOT_SATISFIED


@dataclass(frozen=True)
class ConstraintResults:
    """Results for one kind of constraint."""
    all: Tuple[ConstraintResult, ...] = ()

    def _with_status(self, status: ConstraintStatus) -> Tuple[ConstraintResult, ...]:
        return tuple(result for result in self.all if result.status == status)

    @property
    def active(self) -> Tuple[ConstraintResult, ...]:
        return tuple(result for result in self.all if result.is_active)

    @property
    def satisfied(self) -> Tuple[ConstraintResult, ...]:
        return self._with_status(ConstraintStatus.SATISFIED)

    @property
    def not_satisfied(self) -> Tuple[ConstraintResult, ...]:
        return self._with_status(ConstraintStatus.NOT_SATISFIED)

    @property
    def not_determined(self) -> Tuple[ConstraintResult, ...]:
        return self._with_status(ConstraintStatus.NOT_DETERMINED)

    def __iter__(self) -> Iterator[ConstraintResult]:
        return iter(self.all)

    def __len__(self) -> int:
        return len(self.all)


class ConstraintResultReport(BaseModel):
    """Diagnostic view of one constraint result."""
    category: str = Field(..., description="platform, precondition or permission")
    name: str = Field(..., description="Constraint name")
    status: ConstraintStatus = Field(..., description="Constraint status")
    is_active: bool = Field(..., description="Whether the constraint applies at runtime")
    is_fulfilled: Optional[bool] = Field(None, description="None while not determined")
    parameters: str = Field("", description="Constraint parameters")


class FeatureEvaluationReport(BaseModel):
    """Diagnostic view of a feature evaluation."""
    feature: str = Field(..., description="Feature path")
    status: EvaluationStatus = Field(..., description="Overall outcome")
    constraints: List[ConstraintResultReport] = Field(default_factory=list)


@dataclass(frozen=True)
class FeatureEvaluationResult:
    """The answer to "is this feature usable right now?"."""
    feature: str
    status: EvaluationStatus
    platforms: ConstraintResults = ConstraintResults()
    preconditions: ConstraintResults = ConstraintResults()
    permissions: ConstraintResults = ConstraintResults()

    @property
    def is_satisfied(self) -> bool:
        return self.status == EvaluationStatus.SATISFIED

    @property
    def is_indeterminate(self) -> bool:
        return self.status == EvaluationStatus.INDETERMINATE

    @property
    def available(self) -> Optional[bool]:
        """``True``/``False``, or ``None`` while indeterminate."""
        if self.is_indeterminate:
            return None
        return self.is_satisfied

    @property
    def has_not_satisfied_constraints(self) -> bool:
        return any(r.not_satisfied for r in (self.platforms, self.preconditions, self.permissions))

    @property
    def has_not_determined_constraints(self) -> bool:
        return any(r.not_determined for r in (self.platforms, self.preconditions, self.permissions))

    def to_report(self) -> FeatureEvaluationReport:
        constraints = []
        for category, results in (
            ("platform", self.platforms),
            ("precondition", self.preconditions),
            ("permission", self.permissions)
        ):
            for result in results:
                constraints.append(ConstraintResultReport(
                    category=category,
                    name=result.name,
                    status=result.status,
                    is_active=result.is_active,
                    is_fulfilled=result.is_fulfilled,
                    parameters=result.parameters_description
                ))

        return FeatureEvaluationReport(feature=self.feature, status=self.status, constraints=constraints)
