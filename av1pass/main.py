import typer
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from rich.console import Console

from av1pass.config.loader import load_config
from av1pass.config.models import AppConfig
from av1pass.infrastructure.logging import setup_logging
from av1pass.infrastructure.event_bus import EventBus
from av1pass.infrastructure.file_scanner import FileScanner
from av1pass.infrastructure.ffprobe import FFprobeAdapter
from av1pass.infrastructure.ffmpeg import FFmpegAdapter
from av1pass.infrastructure.filing import FilingAreas
from av1pass.infrastructure.housekeeping import HousekeepingService
from av1pass.pipeline.orchestrator import Orchestrator
from av1pass.ui.reporter import ConsoleReporter

app = typer.Typer(help="av1pass - two-pass adaptive AV1 batch re-encoder")


def apply_overrides(
    config: AppConfig,
    max_short_side: Optional[int] = None,
    fps_limit: Optional[int] = None,
    crf: Optional[int] = None,
    preset: Optional[int] = None,
    stronger_crf: Optional[int] = None,
    stronger_preset: Optional[int] = None,
    log_path: Optional[Path] = None,
    debug: bool = False,
) -> AppConfig:
    """Returns a re-validated copy of ``config`` with command-line values applied."""
    data = config.model_dump()
    general = data["general"]
    main = data["profiles"]["main"]
    stronger = data["profiles"]["stronger"]

    if max_short_side is not None: general["max_short_side"] = max_short_side
    if fps_limit is not None: general["fps_limit"] = fps_limit
    if log_path is not None: general["log_path"] = str(log_path)
    if debug: general["debug"] = True
    if crf is not None: main["crf"] = crf
    if preset is not None: main["preset"] = preset
    if stronger_crf is not None: stronger["crf"] = stronger_crf
    if stronger_preset is not None: stronger["preset"] = stronger_preset

    return AppConfig(**data)


@app.command()
def encode(
    source: Path = typer.Argument(..., help="Source folder to scan recursively"),
    max_short_side: Optional[int] = typer.Argument(None, help="Maximum shorter side in pixels (default 720)"),
    fps_limit: Optional[int] = typer.Argument(None, help="Maximum frame rate (default 45)"),
    crf: Optional[int] = typer.Option(None, "--crf", envvar="SVT_CRF", help="Main pass CRF (0-63)"),
    preset: Optional[int] = typer.Option(None, "--preset", envvar="SVT_PRESET", help="Main pass preset (0-13)"),
    stronger_crf: Optional[int] = typer.Option(
        None, "--stronger-crf", envvar="SVT_CRF_STRONGER", help="Stronger pass CRF (0-63)"
    ),
    stronger_preset: Optional[int] = typer.Option(
        None, "--stronger-preset", envvar="SVT_PRESET_STRONGER", help="Stronger pass preset (0-13)"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Re-encode every video under SOURCE to AV1, retrying files that grew with a stronger profile."""
    try:
        try:
            config = apply_overrides(
                load_config(config_path),
                max_short_side=max_short_side,
                fps_limit=fps_limit,
                crf=crf,
                preset=preset,
                stronger_crf=stronger_crf,
                stronger_preset=stronger_preset,
                log_path=log_path,
                debug=debug,
            )
        except (ValidationError, FileNotFoundError) as exc:
            typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        if not source.is_dir():
            typer.secho(f"Error: Source folder does not exist: {source}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        logger = setup_logging(Path(config.general.log_path), debug=config.general.debug)
        logger.info(
            f"Config: max_short_side={config.general.max_short_side}, fps_limit={config.general.fps_limit}, "
            f"main=crf{config.profiles.main.crf}/p{config.profiles.main.preset}, "
            f"stronger=crf{config.profiles.stronger.crf}/p{config.profiles.stronger.preset}"
        )

        bus = EventBus()
        console = Console(highlight=False)
        ConsoleReporter(bus, console)

        console.print(
            f"Encoder settings        : max short side {config.general.max_short_side}px, "
            f"fps limit {config.general.fps_limit}, "
            f"main CRF {config.profiles.main.crf} / preset {config.profiles.main.preset}, "
            f"stronger CRF {config.profiles.stronger.crf} / preset {config.profiles.stronger.preset}"
        )

        areas = FilingAreas.for_source(source)
        scanner = FileScanner(
            extensions=config.general.extensions,
            exclude_dirs=areas.all_dirs(),
        )
        orchestrator = Orchestrator(
            config=config,
            event_bus=bus,
            areas=areas,
            file_scanner=scanner,
            ffprobe_adapter=FFprobeAdapter(),
            ffmpeg_adapter=FFmpegAdapter(),
            housekeeper=HousekeepingService(),
        )
        orchestrator.run()

    except KeyboardInterrupt:
        typer.secho("\nStopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
