"""In-memory shared config with get/set/subscribe APIs."""

import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import fields, is_dataclass
from typing import Any, Callable, DefaultDict, Iterator, List, Optional, Tuple

import gaze_core.calibration.calibration_types as ct
import gaze_core.config_service.config_modules as config_modules
from gaze_core.config_service.config_modules import RootConfig
from gaze_core.errors import ConfigError
from gaze_core.selection.selection_types import SelectionMode
from gaze_core.selection.zones import build_zones
from gaze_core.utilities.logger_setup import setup_logger


class Config:
    """
    Shared, in-memory config:
      - set("dwell.dwell_time_s", 1.2)
      - get("zone.yaw_threshold_deg") -> 8.0
      - subscribe("dwell", cb) -> unsubscribe()
    Thread-safe, updates happen in-place on dataclass instances so components
    holding a section object see new values on their next frame.
    """
    def __init__(self, root: Optional[RootConfig] = None) -> None:
        self.logger = setup_logger("Config")

        self._lock = threading.RLock()
        self._root = root if root is not None else RootConfig()
        self._subs_by_key: DefaultDict[
            str,
            List[Callable[[str, Any, Any], None]]
        ] = defaultdict(list)
        self._validators: DefaultDict[
            str,
            List[Callable[[Any], Any]]
        ] = defaultdict(list)

        # fields whose values name an enum member or a fixed layout
        self.add_validator("calibration.point_mode", ct.PointMode)
        self.add_validator("calibration.gate_reference", ct.GateReference)
        self.add_validator("pipeline.selection_mode", SelectionMode)
        self.add_validator("zone.grid_size", build_zones)


    # --- direct accessors ---
    @property
    def face(self) -> config_modules.Face:
        """Direct access to face config."""
        return self._root.face
    @property
    def head_pose(self) -> config_modules.HeadPose:
        """Direct access to head pose config."""
        return self._root.head_pose
    @property
    def pupil(self) -> config_modules.Pupil:
        """Direct access to pupil config."""
        return self._root.pupil
    @property
    def stabilizer(self) -> config_modules.Stabilizer:
        """Direct access to stabilizer config."""
        return self._root.stabilizer
    @property
    def gate(self) -> config_modules.Gate:
        """Direct access to stability gate config."""
        return self._root.gate
    @property
    def calibration(self) -> config_modules.Calibration:
        """Direct access to calibration config."""
        return self._root.calibration
    @property
    def dwell(self) -> config_modules.Dwell:
        """Direct access to dwell config."""
        return self._root.dwell
    @property
    def zone(self) -> config_modules.Zone:
        """Direct access to zone config."""
        return self._root.zone
    @property
    def baseline(self) -> config_modules.Baseline:
        """Direct access to eye baseline config."""
        return self._root.baseline
    @property
    def learning(self) -> config_modules.LearningLog:
        """Direct access to learning log config."""
        return self._root.learning
    @property
    def pipeline(self) -> config_modules.Pipeline:
        """Direct access to pipeline config."""
        return self._root.pipeline


    @contextmanager
    def read(self) -> Iterator[RootConfig]:
        """Hold the lock while reading config (strong typing preserved)."""
        with self._lock:
            yield self._root


    #-- get/set API ---
    def get(self, path: str) -> Any:
        """Get a config value."""
        with self._lock:
            obj, attr = self._traverse(path)
            return getattr(obj, attr)


    def set(
        self,
        path: str,
        value: Any
    ) -> None:
        """Set a config value.

        Arguments:
            path: The config path to set (e.g., "dwell.dwell_time_s").
            value: The new value; strings are coerced to the field's type.

        Raises:
            ConfigError: unknown path, a value that cannot be coerced or
                one rejected by a validator. Nothing is committed then.
        """

        with self._lock:
            obj, attr = self._traverse(path)
            old = getattr(obj, attr)
            target_type = type(old)

            new: Any
            try:
                # handle bool specially because bool("0") is True
                if target_type is bool and isinstance(value, str):
                    v = value.strip().lower()
                    if v in ("1", "true", "yes", "on"):
                        new = True
                    elif v in ("0", "false", "no", "off"):
                        new = False
                    else:
                        raise ValueError(f"cannot parse bool from '{value}'")
                elif target_type is int and isinstance(value, str) and value.isdigit():
                    new = int(value)
                elif target_type in (int, float) and isinstance(value, str):
                    new = target_type(float(value))
                elif target_type is str:
                    new = str(value)
                else:
                    new = target_type(value)

            except (ValueError, TypeError) as e:
                self.logger.error("Failed to set %s to %r (expected %s): %s",
                    path, value, target_type.__name__, e)
                raise ConfigError(f"cannot set {path} to {value!r}") from e

            for check in self._validators.get(path, []):
                try:
                    check(new)
                except (ValueError, TypeError) as e:
                    self.logger.error("Rejected %s = %r: %s", path, new, e)
                    raise ConfigError(f"invalid value for {path}: {new!r}") from e

            if new == old:
                return
            setattr(obj, attr, new)

        self.logger.info("%s: %r -> %r", path, old, new)
        self._notify(path, old, new)


    def update(self, section: str, **values: Any) -> None:
        """Set several fields of one section, notifying once per field."""
        for key, value in values.items():
            self.set(f"{section}.{key}", value)


    # --- subscribe API ---
    def subscribe(
        self,
        key: str,
        callback: Callable[[str, Any, Any], None]
    ) -> Callable[[], None]:
        """
        Subscribe to changes on a section ("dwell") or a specific field ("dwell.dwell_time_s").
        Callback signature: (path, old_value, new_value).
        Returns an unsubscribe function.
        """
        with self._lock:
            self._subs_by_key[key].append(callback)

        def _unsub() -> None:
            with self._lock:
                lst = self._subs_by_key.get(key, [])
                if callback in lst:
                    lst.remove(callback)

        return _unsub


    def add_validator(
        self,
        path: str,
        check: Callable[[Any], Any]
    ) -> Callable[[], None]:
        """
        Run `check(value)` on every coerced value for `path` before it is stored.
        The check rejects a value by raising ValueError or TypeError.
        Returns a function that removes the check.
        """
        self._traverse(path)
        with self._lock:
            self._validators[path].append(check)

        def _remove() -> None:
            with self._lock:
                lst = self._validators.get(path, [])
                if check in lst:
                    lst.remove(check)

        return _remove


    # --- helpers ---
    def _notify(
        self,
        path: str,
        old_val: Any,
        new_val: Any
    ) -> None:
        """Notify both section-level and exact-path subscribers."""
        section = path.split(".", 1)[0]

        with self._lock:
            # copies so callbacks may unsubscribe while being notified
            targets = list(self._subs_by_key.get(section, [])) + list(self._subs_by_key.get(path, []))

        for cb in targets:
            try:
                cb(path, old_val, new_val)
            except (RuntimeError, ValueError, TypeError) as e:
                self.logger.error("Notify subscriber %s failed: %s",
                    getattr(cb, "__name__", repr(cb)), e)


    def _traverse(
        self,
        path: str
    ) -> Tuple[Any, str]:
        """
        Returns (parent_object, attribute_name) for a dotted path like 'dwell.dwell_time_s'.
        """
        parts = path.split(".")

        if len(parts) < 2:
            self.logger.error("Config: invalid path '%s'", path)
            raise ConfigError("Use dotted path like 'dwell.dwell_time_s'")

        node: Any = self._root

        for p in parts[:-1]:
            if not is_dataclass(node) or p not in {f.name for f in fields(node)}:
                self.logger.error("Config: unknown section '%s' in '%s'", p, path)
                raise ConfigError(f"unknown config path '{path}'")
            node = getattr(node, p)

        if not is_dataclass(node) or parts[-1] not in {f.name for f in fields(node)}:
            self.logger.error("Config: unknown field '%s'", path)
            raise ConfigError(f"unknown config path '{path}'")

        return node, parts[-1]
