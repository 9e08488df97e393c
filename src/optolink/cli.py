"""Command line interface for the optolink package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .demo import run_demo
from .pipeline import run_decode
from .plotting import generate_plots
from .reporting import export_results
from .rx.config import load_config
from .rx.runner import app as rx_app

app = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]})
app.add_typer(rx_app, name="rx", help="Live receiver commands.")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def decode(
    input_path: Path = typer.Option(..., "--in", help="Recorded video or sample trace CSV.", exists=True),
    report_dir: Path = typer.Option(..., "--report", help="Output directory for reports."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Receiver config JSON."),
    override: Optional[list[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set digitizer.gain=150",
    ),
) -> None:
    """Decode a recording and write events, trace and report."""

    try:
        config = load_config(config_path, override or None)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Invalid receiver configuration: {exc}") from exc

    try:
        result = run_decode(input_path, config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--in") from exc

    figure_path = None
    try:
        figure_path = generate_plots(result, report_dir)
    except RuntimeError as exc:
        typer.echo(f"[warning] plotting skipped: {exc}")

    export_results(result, report_dir, figure_path=figure_path, input_path=input_path)

    typer.echo(f"Decoded: {result.text}")
    typer.echo(f"Report written to {report_dir}")


@app.command()
def demo(
    out_dir: Path = typer.Option(Path("demo_output"), "--out", help="Target directory for demo report."),
    text: str = typer.Option("HELLO WORLD", "--text", help="Message to transmit."),
) -> None:
    """Synthesize a blinking-source capture, decode it and write reports."""

    try:
        result = run_demo(out_dir, text)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--text") from exc
    typer.echo(f"Decoded: {result.text}")
    typer.echo(f"Demo report written to {out_dir}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
