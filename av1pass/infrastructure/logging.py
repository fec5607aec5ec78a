import logging
from pathlib import Path

DEFAULT_LOG_PATH = Path("/tmp/av1pass/av1pass.log")

def setup_logging(log_path: Path = DEFAULT_LOG_PATH, debug: bool = False) -> logging.Logger:
    """
    Setup logging configuration for av1pass.

    The log file lives outside the filing areas so that empty areas can still
    be removed at the end of a run. Console output is handled by the reporter.

    Args:
        log_path: Path to the log file (parent directories are created)
        debug: If True, enable DEBUG level logging with ffmpeg command lines
    """
    log_file = Path(log_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger("av1pass")
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
