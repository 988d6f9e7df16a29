"""Screening parameters with simple JSON persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional, Union, get_args, get_origin, get_type_hints

logger = logging.getLogger(__name__)


def _convert(raw, field_type):
    """Convert a JSON value to a field's declared type (bool, int, float or Optional of those)."""
    if get_origin(field_type) is Union:
        if raw is None:
            return None
        field_type = next(t for t in get_args(field_type) if t is not type(None))

    if field_type is bool:
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no"):
                return False
            raise ValueError(f"Not a boolean: {raw!r}")
        return bool(raw)
    if field_type is int:
        value = float(raw)
        if not value.is_integer():
            raise ValueError(f"Not an integer: {raw!r}")
        return int(value)
    if field_type is float:
        return float(raw)
    return raw


@dataclass
class ScreeningConfig:
    # Arc sampling
    ARC_STEP_DEG: float = 2.0

    # Head disk
    DISK_OFFSET_MM: float = 400.0
    DISK_POINT_COUNT: int = 36
    DISK_RADIUS_MM: float = 390.0
    INCLUDE_DISK_CENTER: bool = False

    # Point-in-volume tests
    Z_TOLERANCE_MM: Optional[float] = None  # None: half-spacing slab
    MAX_WORKERS: Optional[int] = None

    @staticmethod
    def default_path() -> Path:
        return Path.home() / ".arc_screening_config.json"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ScreeningConfig":
        path = Path(path) if path is not None else cls.default_path()
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read config %s: %s", path, exc)
            return cls()

        cfg = cls()
        if not isinstance(data, dict):
            logger.warning("Config %s does not hold a JSON object; using defaults", path)
            return cfg

        known = {f.name for f in fields(cfg)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(unknown))

        hints = get_type_hints(cls)
        for f in fields(cfg):
            if f.name not in data:
                continue
            try:
                setattr(cfg, f.name, _convert(data[f.name], hints[f.name]))
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid config value for %s: %r", f.name, data[f.name])
        return cfg

    def save(self, path: Optional[Path] = None) -> None:
        path = Path(path) if path is not None else self.default_path()
        try:
            path.write_text(json.dumps(asdict(self), indent=2))
        except OSError as exc:
            logger.error("Failed to save config %s: %s", path, exc)
            raise
