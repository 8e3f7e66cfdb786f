from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    # stderr only shows WARNING and above unless verbose; the log file gets everything from INFO
    level = logging.INFO if verbose else logging.WARNING
    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(level)
    handlers: list[logging.Handler] = [stream]
    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.INFO)
        handlers.append(fh)
    logging.basicConfig(
        level=logging.INFO if (verbose or log_file) else logging.WARNING,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
