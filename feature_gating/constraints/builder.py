"""
Declaring the constraints of a feature.

``FeatureConstraintsBuilder`` is the declaration DSL. It starts with every
platform allowed at any version and records platform, precondition and
permission requirements until ``build()`` freezes them into a
``FeatureConstraints`` value::

    builder = FeatureConstraintsBuilder()
    builder.only(Platform.IOS, "11")
    builder.user_toggled(default_value=True)
    builder.purchase_any_of(pro_monthly, pro_lifetime)
    builder.permission(SystemPermission.CAMERA)
    constraints = builder.build()
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from ..purchases.products import Product
from ..purchases.requirements import PurchaseRequirement
from .permissions import SystemPermission
from .platforms import OperatingSystemVersion, Platform, PlatformConstraint, PlatformVersionConstraint
from .preconditions import (
    FeaturePreconditionConstraint, PreconditionKind, PurchaseRequired, RuntimeEnabled, UserToggled
)


VersionSpec = Union[int, str, OperatingSystemVersion, PlatformVersionConstraint]


@dataclass(frozen=True)
class FeatureConstraints:
    """The declared constraints of one feature, in declaration order."""
    platforms: Tuple[PlatformConstraint, ...] = ()
    preconditions: Tuple[FeaturePreconditionConstraint, ...] = ()
    permissions: Tuple[SystemPermission, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.platforms or self.preconditions or self.permissions)

    @property
    def purchase_requirements(self) -> Tuple[PurchaseRequirement, ...]:
        return tuple(
            p.requirement for p in self.preconditions
            if p.kind == PreconditionKind.PURCHASE_REQUIRED
        )

    def has_precondition(self, kind: PreconditionKind) -> bool:
        return any(p.kind == kind for p in self.preconditions)

    def platform_constraint(self, platform: Platform) -> Optional[PlatformConstraint]:
        for constraint in self.platforms:
            if constraint.platform == platform:
                return constraint
        return None

    def describe(self) -> str:
        platforms = ", ".join(str(p) for p in self.platforms)
        preconditions = ", ".join(str(p) for p in self.preconditions)
        permissions = ", ".join(str(p) for p in self.permissions)
        return (
            f"Platforms: {platforms}\n"
            f"Preconditions: {preconditions}\n"
            f"Permissions: {permissions}"
        )


FeatureConstraints.EMPTY = FeatureConstraints()


class FeatureConstraintsBuilder:
    """Collects constraint declarations for one feature."""

    def __init__(self):
        self._platforms: Dict[Platform, PlatformConstraint] = {
            platform: PlatformConstraint(platform, PlatformVersionConstraint.any())
            for platform in Platform
        }
        self._preconditions: List[FeaturePreconditionConstraint] = []
        self._permissions: List[SystemPermission] = []

    def platform(self, platform: Platform, version: VersionSpec = "*") -> None:
        """Constrain one platform, e.g. ``platform(Platform.IOS, "11.2")``."""
        platform = Platform.parse(platform)
        self._platforms[platform] = PlatformConstraint(platform, PlatformVersionConstraint.parse(version))

    def only(self, platform: Platform, version: VersionSpec = "*") -> None:
        """Support only ``platform``; every other platform becomes unsupported."""
        platform = Platform.parse(platform)
        for other in Platform:
            if other != platform:
                self._platforms[other] = PlatformConstraint(other, PlatformVersionConstraint.unsupported())
        self.platform(platform, version)

    def precondition(self, precondition: FeaturePreconditionConstraint) -> None:
        if precondition not in self._preconditions:
            self._preconditions.append(precondition)

    def preconditions(self, *preconditions: FeaturePreconditionConstraint) -> None:
        for precondition in preconditions:
            self.precondition(precondition)

    def runtime_enabled(self) -> None:
        self.precondition(RuntimeEnabled())

    def user_toggled(self, default_value: bool = False) -> None:
        self.precondition(UserToggled(default_value))

    def purchase(self, requirement: Union[PurchaseRequirement, Product]) -> None:
        """Require a purchase requirement, or a single product."""
        if isinstance(requirement, Product):
            requirement = PurchaseRequirement.single(requirement)
        self.precondition(PurchaseRequired(requirement))

    def purchases(self, *requirements: Union[PurchaseRequirement, Product]) -> None:
        for requirement in requirements:
            self.purchase(requirement)

    def purchase_any_of(self, *products: Product) -> None:
        self.purchase(PurchaseRequirement.any_of(*products))

    def purchase_all_of(self, *products: Product) -> None:
        self.purchase(PurchaseRequirement.all_of(*products))

    def permission(self, permission: SystemPermission) -> None:
        if permission not in self._permissions:
            self._permissions.append(permission)

    def permissions(self, *permissions: SystemPermission) -> None:
        for permission in permissions:
            self.permission(permission)

    def build(self) -> FeatureConstraints:
        return FeatureConstraints(
            platforms=tuple(self._platforms[platform] for platform in Platform),
            preconditions=tuple(self._preconditions),
            permissions=tuple(self._permissions)
        )
