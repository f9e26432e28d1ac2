"""Command-line interface for running the femtoscopy trigger filter on event inputs."""

from __future__ import annotations

import argparse
import importlib.util
import logging
from pathlib import Path
from typing import Any

from .calibration import JsonCalibrationProvider
from .config import FilterConfig, load_config_json
from .filter import FemtoFilter
from .io import load_events_json, write_collisions_table, write_metrics_table, write_particles_table
from .metrics import RecordingMetrics
from .models import FilterOutput

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="femto-filter",
        description="Select protons and deuterons for femtoscopic correlation studies.",
    )
    parser.add_argument("--events", required=True, help="Input JSON with key 'events'.")
    parser.add_argument(
        "--config",
        default=None,
        help="JSON configuration (scalars by name, tables by row/column label). Defaults apply if omitted.",
    )
    parser.add_argument(
        "--calibration-dir",
        default=None,
        help="Directory holding Bethe-Bloch calibration objects as <path>.json files.",
    )
    parser.add_argument(
        "--out-particles",
        required=True,
        help="Output particle table (.parquet, .csv, .pkl).",
    )
    parser.add_argument("--out-collisions", default=None, help="Optional output collision table.")
    parser.add_argument("--metrics-out", default=None, help="Optional table of diagnostic entries.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    parser.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(output, context) function.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load inputs, run the filter, write tables, optional custom hook."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = load_config_json(args.config) if args.config else FilterConfig()
    provider = JsonCalibrationProvider(args.calibration_dir) if args.calibration_dir else None
    if config.manual_pid_enabled and provider is None:
        logger.warning("Manual PID is enabled but no --calibration-dir was given; default scores are used.")
    metrics = RecordingMetrics()
    events = load_events_json(args.events)

    output = FemtoFilter(config, provider=provider, metrics=metrics).process_events(events)

    write_particles_table(args.out_particles, output.particles)
    if args.out_collisions:
        write_collisions_table(args.out_collisions, output.collisions)
    if args.metrics_out:
        write_metrics_table(args.metrics_out, metrics)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            output=output,
            context={
                "events_path": args.events,
                "config_path": args.config,
                "config": config,
                "metrics": metrics,
                "output_path": args.out_particles,
            },
        )
    return 0


def run_custom_script(script_path: str, output: FilterOutput, context: dict[str, Any]) -> None:
    """Execute user-supplied post-processing callback `process(output, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(output, context)."
        )
    process(output, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())
