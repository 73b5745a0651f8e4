"""
System permission constraints.

A feature can require the user to have granted system permissions. The
checker reports a ``PermissionStatus`` per permission, which maps onto the
tri-state used by the engine: authorised is TRUE, not yet asked is UNKNOWN
(the prompt may still be answered), anything else is FALSE.
"""

import threading
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from gating_shared.logging import get_logger
from ..observers import ObserverSet
from .tristate import Tristate


class SystemPermission(str, Enum):
    """Permissions a feature can require."""
    CAMERA = "camera"
    MICROPHONE = "microphone"
    PHOTOS = "photos"
    CONTACTS = "contacts"
    CALENDAR_EVENTS = "calendar_events"
    REMINDERS = "reminders"
    MOTION = "motion"
    SPEECH_RECOGNITION = "speech_recognition"
    MEDIA_LIBRARY = "media_library"
    BLUETOOTH = "bluetooth"
    HOME_KIT = "home_kit"
    SIRI_KIT = "siri_kit"
    LOCATION_WHEN_IN_USE = "location_when_in_use"
    LOCATION_ALWAYS = "location_always"

    @property
    def name_for_display(self) -> str:
        return self.value.replace("_", " ").capitalize()

    @property
    def parameters_description(self) -> str:
        if self is SystemPermission.LOCATION_WHEN_IN_USE:
            return "usage whenInUse"
        if self is SystemPermission.LOCATION_ALWAYS:
            return "usage always"
        return ""

    def __str__(self) -> str:
        return self.name_for_display


class PermissionStatus(str, Enum):
    """Authorisation state of one permission."""
    NOT_DETERMINED = "not_determined"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    RESTRICTED = "restricted"
    UNSUPPORTED = "unsupported"


def permission_fulfilment(status: PermissionStatus) -> Tristate:
    """Map a permission status to a tri-state outcome."""
    if status == PermissionStatus.AUTHORIZED:
        return Tristate.TRUE
    if status == PermissionStatus.NOT_DETERMINED:
        return Tristate.UNKNOWN
    return Tristate.FALSE


# (permission, new_status)
PermissionObserver = Callable[[SystemPermission, PermissionStatus], None]


class PermissionChecker:
    """Base class for permission checkers.

    Implementations must call ``notify_observers`` when a status changes,
    or set ``supports_observers = False``.
    """

    supports_observers = True

    def __init__(self):
        self._observers = ObserverSet()

    def add_observer(self, observer: PermissionObserver) -> None:
        self._observers.add(observer)

    def remove_observer(self, observer: PermissionObserver) -> None:
        self._observers.remove(observer)

    def notify_observers(self, permission: SystemPermission, status: PermissionStatus) -> None:
        self._observers.notify(permission, status)

    def status(self, permission: SystemPermission) -> PermissionStatus:
        """Return the current status of a permission."""
        raise NotImplementedError

    def is_authorised(self, permissions: Iterable[SystemPermission]) -> bool:
        """Return ``True`` only if every permission is authorised."""
        return all(self.status(p) == PermissionStatus.AUTHORIZED for p in permissions)


class StaticPermissionChecker(PermissionChecker):
    """An in-memory permission checker, set explicitly by the application."""

    def __init__(
        self,
        statuses: Optional[Dict[SystemPermission, PermissionStatus]] = None,
        default: PermissionStatus = PermissionStatus.NOT_DETERMINED
    ):
        super().__init__()
        self.logger = get_logger("feature_gating.permissions")
        self._statuses: Dict[SystemPermission, PermissionStatus] = dict(statuses or {})
        self._default = default
        self._lock = threading.Lock()

    def status(self, permission: SystemPermission) -> PermissionStatus:
        with self._lock:
            return self._statuses.get(permission, self._default)

    def set_status(self, permission: SystemPermission, status: PermissionStatus) -> None:
        """Record a new status and notify observers if it changed."""
        with self._lock:
            previous = self._statuses.get(permission, self._default)
            self._statuses[permission] = status

        if previous != status:
            self.logger.info(
                "Permission status changed",
                permission=permission.value,
                previous=previous.value,
                status=status.value
            )
            self.notify_observers(permission, status)
