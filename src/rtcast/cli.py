"""CLI entry point: rtcast run."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from rtcast.config import (
    CONFIG_SCHEMA,
    CONFIG_SUFFIX,
    build_settings,
    load_cases,
    load_config,
    load_draws,
)
from rtcast.output import nowcast


def _resolve_config_path(raw: str) -> Path:
    """Config file for a CLI argument.

    An existing file or a ``.toml`` path is used as given. Anything else is
    a run name: "region" (or "configs/region") means
    "region.rtcast.toml" in that directory.
    """
    path = Path(raw)
    if path.exists() or path.suffix == ".toml":
        return path
    return path.with_name(path.name + CONFIG_SUFFIX)


_SUBCOMMANDS = {"run"}


def main(argv: list[str] | None = None) -> int:
    # Default command: treat bare `rtcast <config> ...` as `rtcast run <config> ...`
    effective = argv if argv is not None else sys.argv[1:]
    if effective and effective[0] not in _SUBCOMMANDS and not effective[0].startswith("-"):
        effective = ["run", *effective]

    parser = argparse.ArgumentParser(
        prog="rtcast", description="Rt, growth rate and report forecasts from posterior draws"
    )
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Process posterior draws from a TOML config")
    run_parser.add_argument(
        "config", type=_resolve_config_path, help="Config file or name ([name].rtcast.toml)"
    )
    run_parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="SECTION.KEY=VALUE",
        help=(
            "Override one config value, e.g. --set forecast.horizon=14; repeatable. "
            f"Sections: {', '.join(CONFIG_SCHEMA)}"
        ),
    )
    run_parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Override output directory",
    )
    run_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for report sampling (overrides input.seed)",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log progress to stderr",
    )

    args = parser.parse_args(effective)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        try:
            return _run(args)
        except (FileNotFoundError, TypeError, ValueError) as e:
            print(f"FAILED: {e}", file=sys.stderr)
            return 1

    return 0


def _log_inputs(config: dict[str, Any], config_path: Path) -> None:
    """Log resolved settings to stderr."""
    print(f"Running with settings from {config_path}", file=sys.stderr)
    for section in ("data", "model", "forecast", "output"):
        values = config.get(section, {})
        if values:
            print(f"  [{section}]", file=sys.stderr)
            for key, value in values.items():
                print(f"    {key}: {value!r}", file=sys.stderr)


def _run(args: argparse.Namespace) -> int:
    config = load_config(args.config, overrides=args.overrides or None)
    _log_inputs(config, args.config)

    settings = build_settings(config)
    data = config.get("data", {})
    missing = [key for key in ("cases", "draws") if key not in data]
    if missing:
        raise ValueError(f"[data] is missing: {', '.join(missing)}")

    forecast = config.get("forecast", {})
    output = config.get("output", {})
    seed = args.seed if args.seed is not None else config.get("input", {}).get("seed", 0)

    result = nowcast(
        load_cases(data["cases"]),
        load_draws(data["draws"]),
        settings,
        horizon=int(forecast.get("horizon", 7)),
        target_date=forecast.get("target_date"),
        target_dir=args.output_dir or output.get("dir"),
        samples=bool(output.get("samples", True)),
        return_fit=bool(output.get("return_fit", True)),
        seed=int(seed),
    )

    if result["summary"] is not None:
        sys.stdout.write(result["summary"].to_string(index=False) + "\n")

    print("Run completed successfully", file=sys.stderr)
    return 0
