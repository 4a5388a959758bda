"""Reactive state store shared by every view of the gallery."""

import copy
import json
import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path

from guest_gallery.domain.photos import ALL_CATEGORIES, Photo, PhotoTag
from guest_gallery.domain.uploads import Notification, UploadPhase, UploadProgress

_logger = logging.getLogger(__name__)

WILDCARD = "*"
PERSISTENT_KEYS = ("selected_tag", "uploader_name")

Listener = Callable[[object, object], None]
WildcardListener = Callable[[str, object, object], None]


@dataclass
class StoreState:
    """Flat map of named application fields."""

    photos: list[Photo] = field(default_factory=list)
    filtered_photos: list[Photo] = field(default_factory=list)
    current_filter: str = ALL_CATEGORIES
    selected_person: str = ""
    selected_tag: PhotoTag = PhotoTag.WEDDING
    uploader_name: str = ""
    upload_phase: UploadPhase = UploadPhase.IDLE
    upload_in_progress: bool = False
    upload_progress: UploadProgress | None = None
    notification: Notification | None = None
    face_detection_in_progress: bool = False
    online: bool = True
    app_ready: bool = False
    debug_mode: bool = False


STATE_KEYS = frozenset(f.name for f in fields(StoreState))


@dataclass(frozen=True)
class StateChange:
    """One entry in the change history."""

    timestamp: float
    key: str
    old_value: object
    new_value: object


class Store:
    """Typed key/value container with synchronous subscriptions.

    Every mutation goes through :meth:`set`, which records the change in a
    bounded history and notifies the key's listeners, then wildcard listeners,
    before returning. :meth:`update` is a loop over :meth:`set` and is not
    atomic: a listener fired for the first key observes the old value of the
    keys that follow it.
    """

    def __init__(self, history_limit: int = 100) -> None:
        self._state = StoreState()
        self._listeners: dict[str, list[Callable[..., None]]] = defaultdict(list)
        self._history: deque[StateChange] = deque(maxlen=history_limit)

    def get(self, key: str | None = None) -> object:
        """Return one field, or a shallow snapshot of the whole state."""
        if key is None:
            return copy.copy(self._state)
        _check_key(key)
        return getattr(self._state, key)

    def set(self, key: str, value: object) -> None:
        """Store a value and notify subscribers before returning."""
        _check_key(key)
        old_value = getattr(self._state, key)
        setattr(self._state, key, value)
        self._history.append(
            StateChange(
                timestamp=time.time(),
                key=key,
                old_value=old_value,
                new_value=value,
            )
        )
        self._notify(key, value, old_value)

    def update(self, values: Mapping[str, object]) -> None:
        """Set each field in iteration order (one notification per field)."""
        for key, value in values.items():
            self.set(key, value)

    def subscribe(
        self, key: str, listener: Listener | WildcardListener
    ) -> Callable[[], None]:
        """Register a listener and return its unsubscribe function."""
        if key != WILDCARD:
            _check_key(key)
        self._listeners[key].append(listener)
        subscribed = True

        def unsubscribe() -> None:
            nonlocal subscribed
            if not subscribed:
                return
            subscribed = False
            callbacks = self._listeners.get(key, [])
            if listener in callbacks:
                callbacks.remove(listener)

        return unsubscribe

    def get_history(self, limit: int = 10) -> list[StateChange]:
        """Return the most recent state changes, oldest first."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def clear_history(self) -> None:
        self._history.clear()

    def reset(self) -> None:
        """Restore every field to its initial value, notifying listeners."""
        initial = StoreState()
        self.update({name: getattr(initial, name) for name in sorted(STATE_KEYS)})

    def save_persistent_state(self, path: str | Path) -> None:
        """Write user preferences to a JSON file."""
        payload = {key: str(getattr(self._state, key)) for key in PERSISTENT_KEYS}
        try:
            Path(path).write_text(json.dumps(payload), encoding="utf-8")
        except OSError:
            _logger.warning("Failed to save persistent state to %s", path)

    def load_persistent_state(self, path: str | Path) -> None:
        """Restore user preferences written by :meth:`save_persistent_state`."""
        state_path = Path(path)
        if not state_path.exists():
            return
        try:
            payload = json.loads(state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.warning("Failed to load persistent state from %s", path)
            return
        if not isinstance(payload, dict):
            return
        tag = PhotoTag.parse(payload.get("selected_tag"))
        if tag is not None:
            self.set("selected_tag", tag)
        uploader_name = payload.get("uploader_name")
        if isinstance(uploader_name, str):
            self.set("uploader_name", uploader_name)

    def _notify(self, key: str, new_value: object, old_value: object) -> None:
        for listener in list(self._listeners.get(key, [])):
            try:
                listener(new_value, old_value)
            except Exception:
                _logger.exception("Error in state listener for %s", key)
        for listener in list(self._listeners.get(WILDCARD, [])):
            try:
                listener(key, new_value, old_value)
            except Exception:
                _logger.exception("Error in wildcard state listener for %s", key)


def _check_key(key: str) -> None:
    if key not in STATE_KEYS:
        raise KeyError(f"Unknown state key: {key}")
