from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

PRESET_SCHEMA_VERSION = "1.0"

# Keys that are internal/CLI-only and should not be saved in presets
_INTERNAL_KEYS = {"cache_dir", "_source"}


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class ConfigFieldError:
    """A single validation error for one configuration field.

    Attributes:
        key:     The config key that failed validation.
        value:   The offending value.
        message: Human-readable explanation of what is wrong.
    """
    key: str
    value: Any
    message: str


@dataclass(frozen=True)
class ParamSpec:
    """Declarative specification for a single configuration parameter.

    Used by the extractor, the silence detector and the cache to describe
    their parameters: type, default, valid range, allowed values and
    human-readable labels.
    """
    key: str
    type: type | tuple              # expected Python type(s)
    default: Any
    label: str                       # short UI label
    description: str = ""            # longer tooltip / help text
    min: float | int | None = None   # inclusive lower bound (unless min_exclusive)
    max: float | int | None = None   # inclusive upper bound (unless max_exclusive)
    min_exclusive: bool = False
    max_exclusive: bool = False
    choices: list | None = None      # allowed string values
    nullable: bool = False           # True if None is valid


# ---------------------------------------------------------------------------
# Parameter sections
# ---------------------------------------------------------------------------

EXTRACTION_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="lod_level_count", type=int, default=6, min=1, max=16,
        label="LOD levels",
        description=(
            "Number of resolution levels in the pyramid. Level 0 is the "
            "finest; each further level halves the sample density."
        ),
    ),
    ParamSpec(
        key="base_samples_per_second", type=int, default=1000, min=1,
        label="LOD0 density (samples/s)",
        description="Peak buckets per second of audio at level 0 (1000 = 1 ms).",
    ),
    ParamSpec(
        key="chunk_frames", type=int, default=65536, min=1,
        label="Read chunk (frames)",
        description="Frames decoded per read while streaming the source.",
    ),
    ParamSpec(
        key="normalize_floor", type=(int, float), default=0.001, min=0.0,
        label="Normalization floor",
        description=(
            "If the loudest peak is below this linear amplitude the source "
            "is treated as silent and level 0 is left all-zero."
        ),
    ),
    ParamSpec(
        key="peak_channel", type=str, default="first",
        choices=["first", "max"],
        label="Peak channel",
        description=(
            "'first' analyzes channel 0 only. 'max' takes the loudest "
            "channel magnitude per frame."
        ),
    ),
]

SILENCE_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="silence_threshold_db", type=(int, float), default=-55.0, max=0.0,
        label="Silence threshold (dBFS)",
        description="Windowed RMS at or below this level counts as silent.",
    ),
    ParamSpec(
        key="silence_hysteresis_db", type=(int, float), default=5.0, min=0.0,
        label="Hysteresis (dB)",
        description=(
            "Silence is only left once the level rises above "
            "threshold + hysteresis."
        ),
    ),
    ParamSpec(
        key="silence_min_duration", type=(int, float), default=0.5, min=0.0,
        label="Minimum silence (s)",
        description="Ranges shorter than this after pre/post roll are dropped.",
    ),
    ParamSpec(
        key="silence_window_ms", type=(int, float), default=30.0,
        min=0.0, min_exclusive=True,
        label="RMS window (ms)",
    ),
    ParamSpec(
        key="silence_hop_ms", type=(int, float), default=10.0,
        min=0.0, min_exclusive=True,
        label="RMS hop (ms)",
    ),
    ParamSpec(
        key="silence_enter_hold_ms", type=(int, float), default=80.0, min=0.0,
        label="Enter hold (ms)",
        description="Level must stay below threshold this long to enter silence.",
    ),
    ParamSpec(
        key="silence_exit_hold_ms", type=(int, float), default=30.0, min=0.0,
        label="Exit hold (ms)",
        description="Level must stay above the exit threshold this long to leave silence.",
    ),
    ParamSpec(
        key="silence_merge_gap_ms", type=(int, float), default=40.0, min=0.0,
        label="Merge gap (ms)",
        description="Silences separated by gaps up to this long are joined.",
    ),
    ParamSpec(
        key="silence_pre_roll_ms", type=(int, float), default=50.0, min=0.0,
        label="Pre-roll (ms)",
        description="Each range start is moved later by this much (protects consonants).",
    ),
    ParamSpec(
        key="silence_post_roll_ms", type=(int, float), default=50.0, min=0.0,
        label="Post-roll (ms)",
        description="Each range end is moved earlier by this much (protects transients).",
    ),
    ParamSpec(
        key="silence_floor_db", type=(int, float), default=-96.0, max=0.0,
        label="dBFS floor",
        description="Level reported for windows with (near) zero RMS.",
    ),
]

CACHE_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="cache_dir", type=str, default=None, nullable=True,
        label="Cache directory",
        description="Where waveform artifacts are stored. Empty = platform cache dir.",
    ),
    ParamSpec(
        key="disk_cache", type=bool, default=True,
        label="Persist to disk",
        description="Write extracted waveforms and silence ranges to the cache directory.",
    ),
]

_SECTIONS: dict[str, list[ParamSpec]] = {
    "extraction": EXTRACTION_PARAMS,
    "silence": SILENCE_PARAMS,
    "cache": CACHE_PARAMS,
}


def default_config() -> dict[str, Any]:
    """Returns the built-in default configuration."""
    config: dict[str, Any] = {}
    for params in _SECTIONS.values():
        for p in params:
            config[p.key] = p.default
    return config


def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge multiple config dicts left-to-right.  Later values win."""
    result: dict[str, Any] = {}
    for cfg in configs:
        result.update(cfg)
    return result


def load_preset(path: str) -> dict[str, Any]:
    """
    Load a JSON preset file. Returns a partial config dict.
    Raises ConfigError if the file cannot be read or parsed.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Preset file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in preset file {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read preset file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Preset file must contain a JSON object, got {type(data).__name__}")

    # Metadata keys are informational, not config
    return {k: v for k, v in data.items() if k not in ("schema_version", "_description")}


def save_preset(config: dict[str, Any], path: str, *, description: str | None = None) -> None:
    """
    Save a config dict as a JSON preset file.
    Internal keys and values equal to the defaults are left out.
    """
    preset: dict[str, Any] = {"schema_version": PRESET_SCHEMA_VERSION}
    if description:
        preset["_description"] = description

    defaults = default_config()
    for k, v in config.items():
        if k in _INTERNAL_KEYS or k.startswith("_"):
            continue
        if k in defaults and defaults[k] == v:
            continue
        preset[k] = v

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(preset, f, indent=4, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Validation  (ParamSpec-driven)
# ---------------------------------------------------------------------------

def validate_param_values(
    params: list[ParamSpec],
    values: dict[str, Any],
) -> list[ConfigFieldError]:
    """Validate *values* against a list of :class:`ParamSpec` definitions.

    Returns a (possibly empty) list of :class:`ConfigFieldError` objects.
    Only keys present in *values* are checked; missing keys are not errors
    (they will receive their default).
    """
    errors: list[ConfigFieldError] = []

    for spec in params:
        if spec.key not in values:
            continue

        value = values[spec.key]

        if value is None:
            if spec.nullable:
                continue
            errors.append(ConfigFieldError(
                spec.key, value,
                f"{spec.label} must not be empty.",
            ))
            continue

        # bool is an int subclass; only accept it where bool is expected
        expected = spec.type
        if expected is not bool and isinstance(value, bool):
            errors.append(ConfigFieldError(
                spec.key, value,
                f"{spec.label} must be {_type_label(expected)}, got boolean.",
            ))
            continue
        if not isinstance(value, expected):
            errors.append(ConfigFieldError(
                spec.key, value,
                f"{spec.label} must be {_type_label(expected)}, "
                f"got {type(value).__name__}.",
            ))
            continue

        if spec.choices is not None and value not in spec.choices:
            opts = ", ".join(repr(c) for c in spec.choices)
            errors.append(ConfigFieldError(
                spec.key, value,
                f"{spec.label} must be one of {opts}.",
            ))
            continue

        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if spec.min is not None:
                if spec.min_exclusive and value <= spec.min:
                    errors.append(ConfigFieldError(
                        spec.key, value,
                        f"{spec.label} must be greater than {spec.min}.",
                    ))
                    continue
                if not spec.min_exclusive and value < spec.min:
                    errors.append(ConfigFieldError(
                        spec.key, value,
                        f"{spec.label} must be at least {spec.min}.",
                    ))
                    continue
            if spec.max is not None:
                if spec.max_exclusive and value >= spec.max:
                    errors.append(ConfigFieldError(
                        spec.key, value,
                        f"{spec.label} must be less than {spec.max}.",
                    ))
                    continue
                if not spec.max_exclusive and value > spec.max:
                    errors.append(ConfigFieldError(
                        spec.key, value,
                        f"{spec.label} must be at most {spec.max}.",
                    ))
                    continue

    return errors


def all_param_specs() -> list[ParamSpec]:
    """Every known :class:`ParamSpec`, across all sections."""
    specs: list[ParamSpec] = []
    for params in _SECTIONS.values():
        specs.extend(params)
    return specs


def validate_config_fields(config: dict[str, Any]) -> list[ConfigFieldError]:
    """Validate a **flat** config dict.  Returns structured errors, never raises."""
    return validate_param_values(all_param_specs(), config)


def validate_config(config: dict[str, Any]) -> None:
    """Validate a flat config dict.

    Raises :class:`ConfigError` listing every invalid field.
    """
    errors = validate_config_fields(config)
    if errors:
        raise_for_errors(errors)


def raise_for_errors(errors: list[ConfigFieldError]) -> None:
    lines = [e.message for e in errors]
    raise ConfigError(
        "Configuration has invalid values:\n  • " + "\n  • ".join(lines)
    )


# ---------------------------------------------------------------------------
# Structured config
# ---------------------------------------------------------------------------

def build_structured_defaults() -> dict[str, Any]:
    """Build a structured config dict with all defaults, organized by section.

    Returns::

        {
            "extraction": { ... },
            "silence": { ... },
            "cache": { ... },
        }
    """
    return {
        name: {p.key: p.default for p in params}
        for name, params in _SECTIONS.items()
    }


def flatten_structured_config(structured: dict[str, Any]) -> dict[str, Any]:
    """Flatten a structured config into the flat dict components read from."""
    flat: dict[str, Any] = {}
    for name in _SECTIONS:
        section = structured.get(name, {})
        if isinstance(section, dict):
            flat.update(section)
    return flat


def validate_structured_config(
    structured: dict[str, Any],
) -> list[ConfigFieldError]:
    """Validate a structured config dict section by section.

    Error keys are prefixed with the section name, e.g.
    ``"silence.silence_hop_ms"``.
    """
    errors: list[ConfigFieldError] = []
    for name, params in _SECTIONS.items():
        section = structured.get(name, {})
        if not isinstance(section, dict):
            continue
        for err in validate_param_values(params, section):
            errors.append(ConfigFieldError(
                f"{name}.{err.key}", err.value, err.message,
            ))
    return errors


def _type_label(t) -> str:
    """Human-readable label for an expected type or tuple of types."""
    if isinstance(t, tuple):
        return " or ".join(x.__name__ for x in t)
    return t.__name__
