"""TOML run configuration and input loading."""

from __future__ import annotations

import copy
import json
import tomllib
from pathlib import Path
from typing import Any

import pandas as pd

from rtcast.posterior import Draw, Settings

CONFIG_SUFFIX = ".rtcast.toml"

# Known keys per section and the type an override value is coerced to.
CONFIG_SCHEMA: dict[str, dict[str, type]] = {
    "data": {"cases": str, "draws": str},
    "model": {"seeding_time": int, "max_gt": int, "max_delay": int, "model_type": int},
    "forecast": {"horizon": int, "target_date": str},
    "output": {"dir": str, "samples": bool, "return_fit": bool},
    "input": {"seed": int},
}

_MODEL_KEYS = set(CONFIG_SCHEMA["model"])


def load_toml(path: Path) -> dict[str, Any]:
    """Read a run file, naming the file in any parse error."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> None:
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _load_single_config(config: str | Path | dict[str, Any]) -> dict[str, Any]:
    if isinstance(config, (str, Path)):
        path = Path(config)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        loaded = load_toml(path)
        return resolve_paths(loaded, path.parent)
    elif isinstance(config, dict):
        return copy.deepcopy(config)
    else:
        raise TypeError(
            f"config must be a str, Path, or dict, got {type(config).__name__}"
        )


def load_config(
    *configs: str | Path | dict[str, Any],
    overrides: list[str] | None = None,
) -> dict[str, Any]:
    """Load and deep-merge configs (later wins), then apply --set overrides."""
    if not configs:
        raise ValueError("At least one config is required")

    result = _load_single_config(configs[0])
    for layer in configs[1:]:
        _deep_merge(result, _load_single_config(layer))

    if overrides:
        result = apply_overrides(result, overrides)

    return result


def apply_overrides(config: dict[str, Any], overrides: list[str]) -> dict[str, Any]:
    """Apply ``--set section.key=value`` overrides.

    Each key must name a known section and key (see ``CONFIG_SCHEMA``);
    the value is coerced to that key's type.

    Raises:
        ValueError: If an override is malformed, names an unknown section
            or key, or has a value of the wrong type.
    """
    config = copy.deepcopy(config)
    for override in overrides:
        key, _, value = override.partition("=")
        if not value:
            raise ValueError(f"Invalid override (missing '='): {override}")

        section, _, name = key.strip().partition(".")
        if section not in CONFIG_SCHEMA:
            raise ValueError(
                f"Unknown config section {section!r} in {override!r}; "
                f"expected one of: {', '.join(CONFIG_SCHEMA)}"
            )
        keys = CONFIG_SCHEMA[section]
        if name not in keys:
            raise ValueError(
                f"Unknown key {name!r} for [{section}] in {override!r}; "
                f"expected one of: {', '.join(keys)}"
            )

        try:
            parsed = parse_value(value.strip(), keys[name])
        except ValueError as e:
            raise ValueError(f"{section}.{name}: {e}") from e
        config.setdefault(section, {})[name] = parsed

    return config


def parse_value(value: str, kind: type = str) -> Any:
    """Coerce an override string to ``kind`` (bool, int or str)."""
    if kind is bool:
        if value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise ValueError(f"expected true or false, got {value!r}")
    if kind is int:
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"expected an integer, got {value!r}") from None
    return value


def resolve_paths(config: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Make relative [data] paths relative to the config file's directory."""
    data = config.get("data")
    if not data:
        return config
    config = copy.deepcopy(config)
    for key, raw in data.items():
        path = Path(raw)
        if not path.is_absolute():
            config["data"][key] = str(base_dir / path)
    return config


def build_settings(config: dict[str, Any]) -> Settings:
    """Settings from the [model] section."""
    model = config.get("model", {})
    unknown = set(model) - _MODEL_KEYS
    if unknown:
        raise ValueError(f"Unknown [model] key(s): {', '.join(sorted(unknown))}")
    if "seeding_time" not in model:
        raise ValueError("[model] seeding_time is required")
    return Settings(**model)


def load_cases(path: str | Path) -> pd.DataFrame:
    """Read a reported cases CSV with date and confirm columns."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cases file not found: {path}")
    return pd.read_csv(path, parse_dates=["date"])


def load_draws(path: str | Path) -> list[Draw]:
    """Read posterior draws from a JSON list of draw objects."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Draws file not found: {path}")
    with open(path) as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain a JSON list of draws")
    return [Draw.from_dict(item) for item in raw]
