"""
Logging for ds-fleet runs.

Every run gets its own log file under ``logs/`` named after the
subcommand (``move_2026-01-31-081500.log``) that records each selection
decision, API call and per-target outcome at DEBUG.  The terminal only
shows warnings and errors unless ``-v`` is given; operator-facing output
(header, per-target lines, summary) is printed, not logged.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

from .config import PROJECT_ROOT

LOG_DIR = os.path.join(PROJECT_ROOT, "logs")

FILE_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"

# Per-request retry and connection chatter from the HTTP stack and signer.
_NOISY_LOGGERS = ("urllib3", "oci")


def setup_logging(
    verbose: bool = False,
    log_prefix: str = "ds_fleet",
    log_dir: str | None = None,
) -> str:
    """Route ds-fleet logging to a per-run file and the terminal.

    The file always captures DEBUG.  The stderr console shows WARNING and
    above, or everything when *verbose* is set.  Returns the log file
    path so the command header can print it.
    """
    log_dir = log_dir or LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    started = datetime.now().strftime("%Y-%m-%d-%H%M%S")
    log_path = os.path.join(log_dir, f"{log_prefix}_{started}.log")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    # A second run in the same process (tests) must not double-log.
    root.handlers.clear()

    run_file = logging.FileHandler(log_path, encoding="utf-8")
    run_file.setLevel(logging.DEBUG)
    run_file.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(run_file)

    terminal = logging.StreamHandler(sys.stderr)
    if verbose:
        terminal.setLevel(logging.DEBUG)
        terminal.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%H:%M:%S"))
    else:
        terminal.setLevel(logging.WARNING)
        terminal.setFormatter(logging.Formatter("%(levelname)-8s  %(message)s"))
    root.addHandler(terminal)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)

    logging.getLogger(__name__).debug("ds-fleet %s: logging to %s", log_prefix, log_path)
    return log_path
