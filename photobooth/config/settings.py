"""Configuration dataclass and loading utilities.

Provides a strongly-typed configuration object that is injected into the
session services instead of relying on a global module-level dictionary.
Values come from, in increasing priority: built-in defaults, a JSON file and
``PHOTOBOOTH_*`` environment variables.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Mapping, Optional, Tuple
import json, os, logging
from .defaults import DEFAULT_CONFIG, GEOMETRY_POLICIES

logger = logging.getLogger(__name__)

ENV_PREFIX = "PHOTOBOOTH_"


@dataclass(slots=True)
class Config:
    # Camera settings
    camera_index: int = DEFAULT_CONFIG["camera_index"]
    camera_width: int = DEFAULT_CONFIG["camera_width"]
    camera_height: int = DEFAULT_CONFIG["camera_height"]
    camera_fps: int = DEFAULT_CONFIG["camera_fps"]
    mirror_preview: bool = DEFAULT_CONFIG["mirror_preview"]
    rotation: int = DEFAULT_CONFIG["rotation"]

    # Geometry & mask settings
    geometry_policy: str = DEFAULT_CONFIG["geometry_policy"]
    oval_width_ratio: float = DEFAULT_CONFIG["oval_width_ratio"]
    oval_height_ratio: float = DEFAULT_CONFIG["oval_height_ratio"]
    oval_offset_y: float = DEFAULT_CONFIG["oval_offset_y"]
    overlay_margin_px: float = DEFAULT_CONFIG["overlay_margin_px"]
    mask_threshold: float = DEFAULT_CONFIG["mask_threshold"]
    cutout_mode: str = DEFAULT_CONFIG["cutout_mode"]

    # Oracle settings
    min_detection_confidence: float = DEFAULT_CONFIG["min_detection_confidence"]
    min_tracking_confidence: float = DEFAULT_CONFIG["min_tracking_confidence"]
    segmentation_model_selection: int = DEFAULT_CONFIG["segmentation_model_selection"]
    segmentation_input_size: int = DEFAULT_CONFIG["segmentation_input_size"]

    # Session timing
    rearm_delay_s: float = DEFAULT_CONFIG["rearm_delay_s"]
    completion_reset_delay_s: Optional[float] = DEFAULT_CONFIG["completion_reset_delay_s"]

    # Compositing and output
    background_color: Tuple[int, int, int] = tuple(DEFAULT_CONFIG["background_color"])
    produce_grayscale: bool = DEFAULT_CONFIG["produce_grayscale"]
    output_dir: str = DEFAULT_CONFIG["output_dir"]
    image_format: str = DEFAULT_CONFIG["image_format"]

    # Debug and logging
    debug: bool = DEFAULT_CONFIG["debug"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]
    enable_file_logging: bool = DEFAULT_CONFIG["enable_file_logging"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        # merge extra keys at top-level for saving
        extra = d.pop("extra", {})
        d.update(extra)
        d["background_color"] = list(self.background_color)
        return d

    def get(self, key: str, default: Any = None) -> Any:
        if key in Config.__dataclass_fields__ and key != "extra":
            return getattr(self, key)
        return self.extra.get(key, default)

    @property
    def camera_size(self) -> Tuple[int, int]:
        return (self.camera_width, self.camera_height)


def load_config(path: str = "config.json", environ: Optional[Mapping[str, str]] = None) -> Config:
    """Load configuration from a JSON file, then apply environment overrides.

    A missing, empty or malformed file is logged and replaced by defaults;
    this function never raises for bad input.

    Args:
        path: Path to the JSON configuration file
        environ: Environment mapping to read overrides from (defaults to ``os.environ``)

    Returns:
        Config: Loaded and sanitised configuration
    """
    data: Dict[str, Any] = {}

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded_data = json.load(f)
            if loaded_data is None:
                logger.warning(f"Configuration file '{path}' is empty, using defaults")
            elif not isinstance(loaded_data, dict):
                logger.error(f"Configuration file '{path}' does not contain a JSON object, using defaults")
            else:
                data = loaded_data
                logger.info(f"Loaded configuration from '{path}'")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON configuration file '{path}': {e}. Using defaults.")
        except OSError as e:
            logger.error(f"Could not read configuration file '{path}': {e}. Using defaults.")
    else:
        logger.info(f"Configuration file '{path}' does not exist. Using defaults.")

    merged = {**DEFAULT_CONFIG, **data}
    merged = _apply_environment_overrides(merged, os.environ if environ is None else environ)
    merged = _sanitize_config_values(merged)

    known = set(Config.__dataclass_fields__) - {"extra"}
    extra = {k: v for k, v in merged.items() if k not in known}
    if extra:
        logger.info(f"Found extra configuration keys: {list(extra.keys())}")

    values = {k: merged[k] for k in known if k in merged}
    values["background_color"] = tuple(int(c) for c in values["background_color"])
    return Config(**values, extra=extra)


def save_config(cfg: Config, path: str = "config.json") -> bool:
    """Save configuration to a JSON file. Returns False when the write fails."""
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(cfg.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info(f"Configuration saved to '{path}'")
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Failed to save configuration file '{path}': {e}")
        return False


def _coerce(raw: str, template: Any) -> Any:
    """Convert an environment string to the type of the default value."""
    if isinstance(template, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(template, int):
        return int(raw)
    if isinstance(template, float):
        return float(raw)
    if isinstance(template, list):
        return [int(part) for part in raw.split(",")]
    if template is None:
        return None if raw.strip().lower() in ("", "none", "null") else float(raw)
    return raw


def _apply_environment_overrides(config_dict: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Apply ``PHOTOBOOTH_<KEY>`` overrides for every known key."""
    result = dict(config_dict)
    for key, default in DEFAULT_CONFIG.items():
        env_key = ENV_PREFIX + key.upper()
        if env_key not in environ:
            continue
        template = default
        if key == "completion_reset_delay_s":
            template = None
        try:
            result[key] = _coerce(environ[env_key], template)
            logger.debug(f"Applied environment override {env_key}")
        except ValueError as e:
            logger.warning(f"Ignoring invalid environment override {env_key}: {e}")

    if result.get("debug"):
        result["log_level"] = "DEBUG"
    return result


def _sanitize_config_values(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Replace out-of-range or mistyped values with defaults."""
    sanitized = config_dict.copy()

    numeric_validations = {
        'camera_index': (0, 64),
        'camera_width': (64, 8192),
        'camera_height': (64, 8192),
        'camera_fps': (1, 240),
        'oval_width_ratio': (0.05, 1.0),
        'oval_height_ratio': (0.05, 1.0),
        'oval_offset_y': (-4096.0, 4096.0),
        'overlay_margin_px': (0.0, 1000.0),
        'mask_threshold': (0.0, 1.0),
        'min_detection_confidence': (0.0, 1.0),
        'min_tracking_confidence': (0.0, 1.0),
        'segmentation_model_selection': (0, 1),
        'segmentation_input_size': (32, 4096),
        'rearm_delay_s': (0.0, 60.0),
    }

    for key, (min_val, max_val) in numeric_validations.items():
        value = sanitized.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not (min_val <= value <= max_val):
            logger.warning(f"Value {key}={value!r} invalid or out of range [{min_val}, {max_val}], using default")
            sanitized[key] = DEFAULT_CONFIG[key]

    delay = sanitized.get("completion_reset_delay_s")
    if delay is not None and (isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0):
        logger.warning(f"Value completion_reset_delay_s={delay!r} invalid, using default")
        sanitized["completion_reset_delay_s"] = DEFAULT_CONFIG["completion_reset_delay_s"]

    if sanitized.get("rotation") not in (0, 90, 180, 270):
        logger.warning(f"Rotation {sanitized.get('rotation')!r} is not a multiple of 90, using 0")
        sanitized["rotation"] = DEFAULT_CONFIG["rotation"]

    if sanitized.get("geometry_policy") not in GEOMETRY_POLICIES:
        logger.warning(f"Unknown geometry policy {sanitized.get('geometry_policy')!r}, "
                       f"expected one of {GEOMETRY_POLICIES}")
        sanitized["geometry_policy"] = DEFAULT_CONFIG["geometry_policy"]

    if sanitized.get("cutout_mode") not in ("darken", "blur"):
        sanitized["cutout_mode"] = DEFAULT_CONFIG["cutout_mode"]

    color = sanitized.get("background_color")
    if (not isinstance(color, (list, tuple)) or len(color) != 3
            or not all(isinstance(c, int) and 0 <= c <= 255 for c in color)):
        logger.warning(f"Invalid background_color {color!r}, using white")
        sanitized["background_color"] = DEFAULT_CONFIG["background_color"]

    level = str(sanitized.get("log_level", "INFO")).upper()
    sanitized["log_level"] = level if level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL") else "INFO"

    return sanitized
