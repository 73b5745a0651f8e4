"""
User feature toggles.

A toggle store answers whether the user has switched a feature on. ``None``
means the user never expressed a preference, in which case the
precondition's declared default applies.
"""

import json
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from gating_shared.config import GatingConfig
from gating_shared.logging import get_logger
from ..observers import ObserverSet
from .graph import Feature, FeaturePath


# Called with the path of the feature whose toggle changed
ToggleObserver = Callable[[FeaturePath], None]


class UserFeatureToggles:
    """Base class for toggle stores.

    Implementations must call ``notify_observers`` when a toggle changes,
    or set ``supports_observers = False``.
    """

    supports_observers = True

    def __init__(self):
        self._observers = ObserverSet()

    def add_observer(self, observer: ToggleObserver) -> None:
        self._observers.add(observer)

    def remove_observer(self, observer: ToggleObserver) -> None:
        self._observers.remove(observer)

    def notify_observers(self, path: FeaturePath) -> None:
        self._observers.notify(path)

    def is_enabled(self, feature: Feature) -> Optional[bool]:
        raise NotImplementedError


class InMemoryFeatureToggles(UserFeatureToggles):
    """Toggles held in a dict for the lifetime of the process."""

    def __init__(self, values: Optional[Dict[Union[FeaturePath, str], bool]] = None):
        super().__init__()
        self.logger = get_logger("feature_gating.features.toggles")
        self._lock = threading.Lock()
        self._values: Dict[FeaturePath, bool] = {
            _as_path(key): bool(value) for key, value in (values or {}).items()
        }

    def is_enabled(self, feature: Feature) -> Optional[bool]:
        with self._lock:
            return self._values.get(feature.path)

    def set_enabled(self, feature: Feature, enabled: bool) -> None:
        with self._lock:
            previous = self._values.get(feature.path)
            self._values[feature.path] = enabled
        if previous != enabled:
            self.logger.info("Feature toggled", feature=str(feature.path), enabled=enabled)
            self.notify_observers(feature.path)

    def clear(self, feature: Feature) -> None:
        """Forget the user's choice so the declared default applies again."""
        with self._lock:
            removed = self._values.pop(feature.path, None)
        if removed is not None:
            self.logger.info("Feature toggle cleared", feature=str(feature.path))
            self.notify_observers(feature.path)


class JsonFileFeatureToggles(UserFeatureToggles):
    """
    Toggles persisted to a JSON object of ``{"Parent/Child": true}``.

    A missing or unreadable file is treated as an empty store. ``refresh``
    reloads from disk and notifies observers for every path whose value
    changed.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.logger = get_logger("feature_gating.features.toggles")
        self._path = Path(path)
        self._lock = threading.Lock()
        self._values = self._load()

    @classmethod
    def from_config(cls, config: GatingConfig) -> Optional["JsonFileFeatureToggles"]:
        """Build a store from ``toggles_file`` when one is configured."""
        if config.toggles_file is None:
            return None
        return cls(config.toggles_file)

    @property
    def path(self) -> Path:
        return self._path

    def is_enabled(self, feature: Feature) -> Optional[bool]:
        with self._lock:
            return self._values.get(feature.path)

    def set_enabled(self, feature: Feature, enabled: bool) -> None:
        with self._lock:
            previous = self._values.get(feature.path)
            self._values[feature.path] = enabled
            self._save()
        if previous != enabled:
            self.logger.info("Feature toggled", feature=str(feature.path), enabled=enabled)
            self.notify_observers(feature.path)

    def clear(self, feature: Feature) -> None:
        with self._lock:
            removed = self._values.pop(feature.path, None)
            if removed is not None:
                self._save()
        if removed is not None:
            self.notify_observers(feature.path)

    def refresh(self) -> None:
        """Reload toggles from disk."""
        with self._lock:
            previous = self._values
            self._values = self._load()
            current = self._values

        changed = [
            path for path in set(previous) | set(current)
            if previous.get(path) != current.get(path)
        ]
        for path in sorted(changed, key=str):
            self.notify_observers(path)

    def _load(self) -> Dict[FeaturePath, bool]:
        """Read toggles from disk. Returns an empty store on failure."""
        if not self._path.exists():
            return {}

        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (ValueError, OSError) as exc:
            self.logger.warning("Failed to load feature toggles", path=str(self._path), error=str(exc))
            return {}

        if not isinstance(payload, dict):
            self.logger.warning("Ignoring malformed feature toggles file", path=str(self._path))
            return {}

        return {
            FeaturePath.parse(key): value
            for key, value in payload.items()
            if isinstance(value, bool)
        }

    def _save(self) -> None:
        payload = {str(path): value for path, value in sorted(self._values.items(), key=lambda item: str(item[0]))}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True)


def _as_path(value: Union[FeaturePath, str]) -> FeaturePath:
    if isinstance(value, FeaturePath):
        return value
    return FeaturePath.parse(value)
