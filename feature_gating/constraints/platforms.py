"""
Platform and operating system version constraints.

A feature declares, per platform family, which OS versions it supports.
Only the constraint for the platform the process is running on is active;
the others are reported but never block availability. The running OS
version cannot change during the life of the process, so platform results
are always safe to cache.
"""

import platform as host_platform
import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from gating_shared.config import GatingConfig, get_config
from gating_shared.errors import FeatureGatingError, InvalidVersionError


class Platform(str, Enum):
    """Platform families a feature can be constrained on."""
    IOS = "ios"
    MACOS = "macos"
    TVOS = "tvos"
    WATCHOS = "watchos"
    LINUX = "linux"
    WINDOWS = "windows"

    @classmethod
    def parse(cls, value: Union[str, "Platform"]) -> "Platform":
        if isinstance(value, Platform):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise FeatureGatingError("INVALID_PLATFORM", f"Unknown platform '{value}'", {"platform": value})


@dataclass(frozen=True, order=True)
class OperatingSystemVersion:
    """An OS version, compared as (major, minor, patch)."""
    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, value: Union[int, str, "OperatingSystemVersion"]) -> "OperatingSystemVersion":
        """Parse ``11``, ``"10.13"`` or ``"10.13.2"``."""
        if isinstance(value, OperatingSystemVersion):
            return value
        if isinstance(value, bool):
            raise InvalidVersionError("Platform versions cannot be booleans", {"version": value})
        if isinstance(value, int):
            if value < 0:
                raise InvalidVersionError("Platform versions must not be negative", {"version": value})
            return cls(value)

        parts = str(value).strip().split(".")
        if not 1 <= len(parts) <= 3:
            raise InvalidVersionError(
                f"Platform versions must have between one and three parts. This has {len(parts)}: {value}",
                {"version": value}
            )
        if not all(part.isdigit() for part in parts):
            raise InvalidVersionError(
                f"Platform versions must have only integer parts: {value}",
                {"version": value}
            )

        numbers = [int(part) for part in parts] + [0, 0]
        return cls(numbers[0], numbers[1], numbers[2])

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class VersionConstraintKind(str, Enum):
    ANY = "any"
    AT_LEAST = "at_least"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class PlatformVersionConstraint:
    """Which versions of one platform a feature supports."""
    kind: VersionConstraintKind
    version: Optional[OperatingSystemVersion] = None

    @classmethod
    def any(cls) -> "PlatformVersionConstraint":
        return cls(VersionConstraintKind.ANY)

    @classmethod
    def at_least(cls, version: Union[int, str, OperatingSystemVersion]) -> "PlatformVersionConstraint":
        return cls(VersionConstraintKind.AT_LEAST, OperatingSystemVersion.parse(version))

    @classmethod
    def unsupported(cls) -> "PlatformVersionConstraint":
        return cls(VersionConstraintKind.UNSUPPORTED)

    @classmethod
    def parse(cls, value: Union[int, str, OperatingSystemVersion, "PlatformVersionConstraint"]) -> "PlatformVersionConstraint":
        """Accept a constraint, ``"*"``, ``"unsupported"`` or a minimum version."""
        if isinstance(value, PlatformVersionConstraint):
            return value
        if value == "*":
            return cls.any()
        if value == "unsupported":
            return cls.unsupported()
        return cls.at_least(value)

    def is_compatible(self, os_version: OperatingSystemVersion) -> bool:
        if self.kind == VersionConstraintKind.ANY:
            return True
        if self.kind == VersionConstraintKind.UNSUPPORTED:
            return False
        return os_version >= self.version

    @property
    def description(self) -> str:
        if self.kind == VersionConstraintKind.ANY:
            return "*"
        if self.kind == VersionConstraintKind.UNSUPPORTED:
            return "unsupported"
        return f">= {self.version}"

    def __str__(self) -> str:
        return self.description


@dataclass(frozen=True)
class PlatformConstraint:
    """A version constraint bound to one platform family."""
    platform: Platform
    version: PlatformVersionConstraint

    @property
    def parameters_description(self) -> str:
        return self.version.description

    def __str__(self) -> str:
        return f"{self.platform.value} {self.version.description}"


_RELEASE_PATTERN = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


@dataclass(frozen=True)
class RuntimeEnvironment:
    """The platform family and OS version the process is running on."""
    platform: Platform
    os_version: OperatingSystemVersion

    @classmethod
    def detect(cls, config: Optional[GatingConfig] = None) -> "RuntimeEnvironment":
        """Read the host platform, honouring configured overrides."""
        config = config or get_config()

        detected_platform, detected_version = _host_platform()
        platform = Platform.parse(config.platform) if config.platform else detected_platform
        if config.os_version:
            os_version = OperatingSystemVersion.parse(config.os_version)
        else:
            os_version = detected_version

        return cls(platform=platform, os_version=os_version)

    def is_active(self, constraint: PlatformConstraint) -> bool:
        return constraint.platform == self.platform

    def is_compatible(self, constraint: PlatformConstraint) -> bool:
        return constraint.version.is_compatible(self.os_version)


def _host_platform():
    if sys.platform == "darwin":
        return Platform.MACOS, _parse_release(host_platform.mac_ver()[0])
    if sys.platform.startswith("win"):
        return Platform.WINDOWS, _parse_release(host_platform.version())
    return Platform.LINUX, _parse_release(host_platform.release())


def _parse_release(release: str) -> OperatingSystemVersion:
    # Kernel releases look like "6.1.0-18-amd64", keep the leading numbers.
    match = _RELEASE_PATTERN.match(release or "")
    if not match:
        return OperatingSystemVersion(0)
    return OperatingSystemVersion(*(int(group) for group in match.groups() if group is not None))
