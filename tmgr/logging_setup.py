from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

# Marks handlers installed here so repeated setup replaces only ours.
_HANDLER_TAG = "_tmgr_handler"


def setup_logging(
    *,
    console_level: int = logging.WARNING,
    log_file: Optional[Path] = None,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - Console handler on stderr: short "LEVEL: message" lines
    - File handler (only when log_file is given): full timestamped logs

    Call once, early in main().
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        if getattr(h, _HANDLER_TAG, False):
            root.removeHandler(h)
            h.close()

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    setattr(ch, _HANDLER_TAG, True)
    root.addHandler(ch)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(str(log_file), encoding="utf-8")
        except OSError as e:
            logging.getLogger(__name__).warning("Cannot write log file %s: %s", log_file, e)
            return
        fh.setLevel(file_level)
        fh.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        setattr(fh, _HANDLER_TAG, True)
        root.addHandler(fh)
