"""CLI for replaying recorded signals and inspecting generation prompts."""

from __future__ import annotations

import json
import sys
from dataclasses import asdict
from pathlib import Path

import click
from pydantic import ValidationError

from .config import Config
from .fatigue_detector import (
    FatigueDebug,
    FatigueDetector,
    FatigueDetectorConfig,
    FatigueSample,
    PhaseTransition,
    phase_label,
)
from .insight_models import InsightContext
from .insight_prompt import build_prompt
from .logging import setup_logging


def _load_json(path: Path):
    with path.open() as f:
        return json.load(f)


@click.group()
def main():
    """Symmetric coach developer tools."""
    setup_logging(Config.from_env().log_format)


@main.command()
@click.argument("samples_file", type=click.Path(exists=True, path_type=Path))
@click.option("--alpha", type=float, default=None, help="Override the EWMA smoothing factor.")
@click.option(
    "--no-mdf-confirmation",
    is_flag=True,
    help="Declare falling without waiting for the MDF slope to confirm.",
)
@click.option("--debug", "show_debug", is_flag=True, help="Also print slope/curvature per sample.")
def replay(samples_file: Path, alpha: float | None, no_mdf_confirmation: bool, show_debug: bool):
    """Feed a JSON list of samples through the fatigue estimator.

    Each sample is {"time_sec": float, "raw_value": float, "secondary_value": float|null}.
    """
    data = _load_json(samples_file)
    if not isinstance(data, list):
        click.echo("Error: samples file must contain a JSON list.", err=True)
        sys.exit(1)

    overrides: dict = {}
    if alpha is not None:
        overrides["ewma_alpha"] = alpha
    if no_mdf_confirmation:
        overrides["require_mdf_confirmation"] = False
    try:
        config = FatigueDetectorConfig(**overrides)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    detector = FatigueDetector(config)
    transitions: list[PhaseTransition] = []
    current_time = {"t": 0.0}

    def on_transition(event: PhaseTransition) -> None:
        transitions.append(event)
        click.echo(
            f"{current_time['t']:8.2f}s  {phase_label(event.previous_phase)} -> "
            f"{phase_label(event.phase)}  (confidence {event.confidence:.2f}, "
            f"{event.time_in_previous_phase_sec:.2f}s in previous)"
        )

    def on_debug(event: FatigueDebug) -> None:
        click.echo(f"{current_time['t']:8.2f}s  debug {json.dumps(asdict(event))}")

    detector.on_transition(on_transition)
    if show_debug:
        detector.on_debug(on_debug)

    skipped = 0
    for entry in data:
        try:
            sample = FatigueSample(
                time_sec=float(entry["time_sec"]),
                raw_value=float(entry["raw_value"]),
                secondary_value=(
                    None if entry.get("secondary_value") is None else float(entry["secondary_value"])
                ),
            )
        except (KeyError, TypeError, ValueError):
            skipped += 1
            continue
        current_time["t"] = sample.time_sec
        detector.update(sample)

    click.echo(f"Replayed {len(data) - skipped} samples ({skipped} malformed).")
    click.echo(f"Transitions: {len(transitions)}. Final phase: {phase_label(detector.phase)}.")


@main.command()
@click.argument("context_file", type=click.Path(exists=True, path_type=Path))
def prompt(context_file: Path):
    """Print the generation prompt rendered for an insight context JSON file."""
    try:
        context = InsightContext.model_validate(_load_json(context_file))
    except ValidationError as exc:
        click.echo(f"Error: invalid context: {exc}", err=True)
        sys.exit(1)
    click.echo(build_prompt(context))


if __name__ == "__main__":
    main()
