import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "wavbatch.log"

def setup_logging(output_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for wavbatch.

    Log records go to a file only; the terminal belongs to the console reporter.
    If the log file cannot be created, one warning goes to stderr and logging
    is discarded; the batch itself still runs.
    Returns configured logger instance.

    Args:
        output_dir: Directory the MP3 files are written to (default log location)
        debug: If True, enable DEBUG level logging with per-chunk details
        log_path: Optional path to log file (overrides output_dir)
    """
    log_file = Path(log_path) if log_path else (output_dir / LOG_FILE_NAME)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
    except OSError as e:
        print(f"WARNING: cannot write log file {log_file}: {e.strerror or e}; logging disabled", file=sys.stderr)
        handler = logging.NullHandler()

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - [%(threadName)s] %(message)s',
        handlers=[handler],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
