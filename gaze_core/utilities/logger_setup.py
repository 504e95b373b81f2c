"""Utility to set up loggers that write to a central logs/ directory."""

import logging
import os
import re
from datetime import datetime
from pathlib import Path

import gaze_core


# ---------- paths / session ----------
def _log_root() -> Path:
    # GAZE_LOG_DIR moves the log tree, e.g. for embedded hosts or CI
    override = os.getenv("GAZE_LOG_DIR")
    if override:
        return Path(override)
    pkg_dir = Path(gaze_core.__file__).resolve().parent  # .../gaze_core
    return pkg_dir.parent / "logs"

def _session_id() -> str:
    # Shared across processes if GAZE_SESSION_ID is set
    return os.getenv("GAZE_SESSION_ID", datetime.now().strftime("%H-%M-%S"))

def _safe_name(name: str) -> str:
    # Make a safe folder/file name from logger name
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name).strip("_")

def _console_enabled(default: bool) -> bool:
    flag = os.getenv("GAZE_LOG_CONSOLE")
    if flag is None:
        return default
    return flag.strip().lower() in ("1", "true", "yes", "on")


# ---------- aligned formatter ----------
class AlignedFormatter(logging.Formatter):
    """
    Pads/truncates the logger name and level to fixed widths so the
    vertical bars line up in every file. Only the message is free-length.
    """
    def __init__(self, datefmt="%H:%M:%S", name_w=20, level_w=8, ellipsis="…"):
        fmt = (
            "[%(asctime)s.%(msecs)03d] | "
            "%(name_a)s | %(level_a)s | "
            "%(message)s"
        )
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.name_w  = name_w
        self.level_w = level_w
        self.ellipsis = ellipsis

    def _padclip(self, s: str, width: int) -> str:
        s = str(s)
        if len(s) <= width:
            return s.ljust(width)
        keep = max(0, width - len(self.ellipsis))
        return (s[:keep] + self.ellipsis)[:width]

    def format(self, record):
        record.name_a  = self._padclip(record.name,      self.name_w)
        record.level_a = self._padclip(record.levelname, self.level_w)
        return super().format(record)


# ---------- setup ----------
def setup_logger(
    name: str,
    level: int = logging.INFO,
    per_process_file: bool = True,
    console: bool = True,
) -> logging.Logger:
    """
    Create a logger for one gaze_core component that writes:
      1) logs/<name>/<name>_<time>[_pid].log
      2) logs/_combined/<session>.log (shared by every component of the run)
    and optionally mirrors to stderr (GAZE_LOG_CONSOLE overrides `console`).
    Calling it twice with the same name returns the configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    root = _log_root()
    session = _session_id()
    time_only = datetime.now().strftime("%H-%M-%S")
    pid_suffix = f"_{os.getpid()}" if per_process_file else ""

    formatter = AlignedFormatter()

    mod = _safe_name(name)
    try:
        mod_dir = root / mod
        mod_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(mod_dir / f"{mod}_{time_only}{pid_suffix}.log", encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

        comb_dir = root / "_combined"
        comb_dir.mkdir(parents=True, exist_ok=True)
        ch_all = logging.FileHandler(comb_dir / f"{session}.log", encoding="utf-8")
        ch_all.setLevel(level)
        ch_all.setFormatter(formatter)
        logger.addHandler(ch_all)
    except OSError as e:
        # Read-only installs still get console output
        logging.getLogger(__name__).warning("File logging disabled for %s: %s", name, e)

    if _console_enabled(console):
        sh = logging.StreamHandler()
        sh.setLevel(level)
        sh.setFormatter(formatter)
        logger.addHandler(sh)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.setLevel(level)
    logger.propagate = False
    return logger
