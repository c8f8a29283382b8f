import asyncio
import typer
from pathlib import Path
from typing import Optional, Tuple

from rich.console import Console
from rich.table import Table
from clipcat.config.loader import load_config
from clipcat.config.models import AppConfig
from clipcat.config.rate_control import format_bps_human, format_size_human, parse_size_bytes
from clipcat.infrastructure.logging import setup_logging
from clipcat.infrastructure.event_bus import EventBus
from clipcat.infrastructure.ffprobe import FFprobeAnalyzer
from clipcat.infrastructure.ffmpeg import FFmpegEngine
from clipcat.infrastructure.housekeeping import HousekeepingService
from clipcat.domain.models import Job, JobState
from clipcat.pipeline.controller import ConversionController
from clipcat.pipeline.trim import format_time
from clipcat.ui.state import UIState
from clipcat.ui.manager import UIManager
from clipcat.ui.dashboard import Dashboard

DEFAULT_CONFIG_PATH = Path("conf/clipcat.yaml")

app = typer.Typer(help="ClipCat - trim a clip and squeeze it under a file-size budget")


def _load_app_config(config_path: Optional[Path]) -> AppConfig:
    if config_path is not None:
        return load_config(config_path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return AppConfig()


def _default_output_path(source: Path) -> Path:
    return source.with_name(f"{source.stem}_clip.mp4")


async def _run_conversion(
    config: AppConfig,
    bus: EventBus,
    source: Path,
    start: Optional[str],
    end: Optional[str],
    output: Path,
) -> Tuple[Job, Optional[Path]]:
    analyzer = FFprobeAnalyzer(config.analysis, ffprobe_path=config.encoder.ffprobe_path)
    work_dir = Path(config.general.work_dir) if config.general.work_dir else None
    engine = FFmpegEngine(config.encoder, work_dir=work_dir, debug=config.general.debug)
    controller = ConversionController(config=config, event_bus=bus, analyzer=analyzer, engine=engine)
    try:
        job = await controller.convert(source, start, end)
        saved = None
        if job.state == JobState.DONE and controller.artifact is not None:
            saved = controller.artifact.save(output)
        return job, saved
    finally:
        await controller.aclose()


@app.command()
def convert(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Source video"),
    start: Optional[str] = typer.Option("0:00", "--start", "-s", help="Trim start (MM:SS)"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="Trim end (MM:SS)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output MP4 (default: <source>_clip.mp4)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    target_size: Optional[str] = typer.Option(None, "--target-size", help="Override byte budget (e.g. 9.8MB, 24MB)"),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", min=1, help="Override encode attempt ceiling"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    no_ui: bool = typer.Option(False, "--no-ui", help="Disable the live dashboard"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Trim SOURCE and compress it to fit the byte budget."""
    try:
        config = _load_app_config(config_path)
        # Apply CLI overrides
        if target_size is not None:
            try:
                config.budget.target_bytes = parse_size_bytes(target_size)
            except ValueError as exc:
                typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
                raise typer.Exit(code=1)
        if max_attempts is not None: config.convergence.max_attempts = max_attempts
        if log_path is not None: config.general.log_path = str(log_path)
        if debug: config.general.debug = True

        logger = setup_logging(Path(config.general.log_path), debug=config.general.debug)
        logger.info(
            f"ClipCat started: source={source} start={start} end={end} "
            f"target={config.budget.target_bytes} max_attempts={config.convergence.max_attempts}"
        )

        if config.general.work_dir:
            removed = HousekeepingService().cleanup_temp_files(Path(config.general.work_dir))
            if removed:
                logger.info(f"Removed {removed} stale work files")

        output_path = output or _default_output_path(source)
        bus = EventBus()
        ui_state = UIState()
        UIManager(bus, ui_state)

        if no_ui:
            job, saved = asyncio.run(_run_conversion(config, bus, source, start, end, output_path))
        else:
            with Dashboard(ui_state, target_bytes=config.budget.target_bytes):
                job, saved = asyncio.run(_run_conversion(config, bus, source, start, end, output_path))

        if job.state != JobState.DONE or saved is None:
            typer.secho(f"Error: {job.error_message}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        typer.secho(
            f"✓ {saved} ({format_size_human(job.output_size_bytes)}, "
            f"{job.attempt} attempt{'s' if job.attempt != 1 else ''}, "
            f"{format_bps_human(job.bitrate_history[-1])})",
            fg=typer.colors.GREEN,
        )

    except KeyboardInterrupt:
        typer.secho("\n✓ Conversion stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        with open("error.log", "a") as f:
            import traceback
            traceback.print_exc(file=f)
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def probe(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Source video"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Print what the analyzer sees in SOURCE."""
    try:
        config = _load_app_config(config_path)
        analyzer = FFprobeAnalyzer(config.analysis, ffprobe_path=config.encoder.ffprobe_path)
        result = asyncio.run(analyzer.analyze(source))
    except typer.Exit:
        raise
    except Exception as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    table = Table(title=source.name, show_header=False)
    table.add_row("Display", f"{result.display_width}x{result.display_height}")
    table.add_row("FPS (sampled)", f"{result.estimated_fps:.2f}")
    table.add_row("Audio", "yes" if result.has_audio else "no")
    table.add_row("Duration", f"{format_time(result.duration_seconds)} ({result.duration_seconds:.2f}s)")
    Console().print(table)


if __name__ == "__main__":
    app()
