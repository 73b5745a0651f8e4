"""
Feature precondition constraints.

Preconditions are the atomic runtime conditions a feature can declare:

- ``RuntimeEnabled``: the feature's own ``is_enabled`` flag must be set.
- ``UserToggled``: the user's toggle for the feature must be on, falling
  back to ``default_value`` when the user has never set it.
- ``PurchaseRequired``: a purchase requirement tree must be fulfilled.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..purchases.requirements import PurchaseRequirement


class PreconditionKind(str, Enum):
    """Precondition variants."""
    RUNTIME_ENABLED = "runtime_enabled"
    USER_TOGGLED = "user_toggled"
    PURCHASE_REQUIRED = "purchase_required"


@dataclass(frozen=True)
class RuntimeEnabled:
    kind = PreconditionKind.RUNTIME_ENABLED

    @property
    def parameters_description(self) -> str:
        return ""

    def __str__(self) -> str:
        return "Runtime enabled"


@dataclass(frozen=True)
class UserToggled:
    default_value: bool = False

    kind = PreconditionKind.USER_TOGGLED

    @property
    def parameters_description(self) -> str:
        return f"defaultValue: {str(self.default_value).lower()}"

    def __str__(self) -> str:
        return f"User toggled (default: {str(self.default_value).lower()})"


@dataclass(frozen=True)
class PurchaseRequired:
    requirement: PurchaseRequirement

    kind = PreconditionKind.PURCHASE_REQUIRED

    @property
    def parameters_description(self) -> str:
        return f"requirement: {self.requirement.describe()}"

    def __str__(self) -> str:
        return f"Purchase {self.requirement.describe()}"


FeaturePreconditionConstraint = Union[RuntimeEnabled, UserToggled, PurchaseRequired]
