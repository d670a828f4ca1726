"""
Logging for simulation runs.

Two named loggers share one configuration:
- ``marketsim``: run lifecycle, regime changes, risk vetoes (console + optional file)
- ``marketsim.trades``: fills, exits and liquidations (file only, echoed at DEBUG)

Nothing is written to disk unless a log directory is configured, so importing
the package or running the test suite never creates files.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_LEVEL = "WARNING"

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class ColoredFormatter(logging.Formatter):
    """Console formatter that tints the level name only."""

    PALETTE = {
        "DEBUG": "\033[2;36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        tint = self.PALETTE.get(record.levelname)
        if tint is None:
            return super().format(record)
        # Copy so other handlers see the plain level name
        tinted = logging.makeLogRecord(record.__dict__)
        tinted.levelname = f"{tint}{record.levelname}{self.RESET}"
        return super().format(tinted)


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("MARKETSIM_LOG_LEVEL") or DEFAULT_LEVEL).upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.getLevelName(DEFAULT_LEVEL)


def _fields(values: Dict[str, Any]) -> str:
    """Render keyword context as ``key=value`` pairs, floats trimmed."""
    out = []
    for key, value in values.items():
        if isinstance(value, float):
            value = f"{value:.4f}".rstrip("0").rstrip(".")
        out.append(f"{key}={value}")
    return " ".join(out)


class SimLogger:
    """
    Facade over the ``marketsim`` loggers.

    Simulation code calls the event helpers (``trade``, ``risk``,
    ``liquidation``) rather than formatting messages itself, which keeps the
    trade log greppable by tag.
    """

    def __init__(self, log_dir: Optional[str] = None, log_level: Optional[str] = None):
        self.level = _resolve_level(log_level)
        self.log_dir = Path(log_dir) if log_dir else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self.main_logger = logging.getLogger("marketsim")
        self.trade_logger = logging.getLogger("marketsim.trades")
        self.trade_logger.propagate = False
        self._configure()

    def _configure(self):
        stamp = datetime.now().strftime("%Y%m%d")
        for logger in (self.main_logger, self.trade_logger):
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.setLevel(self.level)

        console = logging.StreamHandler()
        console.setFormatter(ColoredFormatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        self.main_logger.addHandler(console)

        if self.log_dir is None:
            return
        for logger, prefix in ((self.main_logger, "sim"), (self.trade_logger, "trades")):
            handler = logging.FileHandler(self.log_dir / f"{prefix}_{stamp}.log", encoding="utf-8")
            handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            logger.addHandler(handler)

    def set_level(self, log_level: str):
        self.level = _resolve_level(log_level)
        self.main_logger.setLevel(self.level)
        self.trade_logger.setLevel(self.level)

    # ─────────────────────────────────────────────────────────────────────
    # Plain messages
    # ─────────────────────────────────────────────────────────────────────

    def debug(self, msg: str, *args, **kwargs):
        self.main_logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.main_logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.main_logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.main_logger.error(msg, *args, **kwargs)

    # ─────────────────────────────────────────────────────────────────────
    # Simulation events
    # ─────────────────────────────────────────────────────────────────────

    def trade(self, action: str, side: str, size: float,
              price: Optional[float] = None, pnl: Optional[float] = None, **context):
        """
        Record a fill or exit.

        Args:
            action: POSITION_OPENED, POSITION_CLOSED or ORDER_RESIZED
            side: Order side or position direction
            size: Filled size in base units
            price: Fill price
            pnl: Realized PnL, exits only
            **context: Extra fields appended as key=value
        """
        head = f"[{action}] {side} {size:.6f}"
        if price is not None:
            head += f" @ {price:.4f}"
        if pnl is not None:
            head += f" pnl={pnl:+.2f}"
        msg = f"{head} {_fields(context)}".rstrip()
        self.trade_logger.info(msg)
        self.main_logger.debug(msg)

    def risk(self, action: str, reason: str, **context):
        """Record a risk decision. BLOCKED and HALT surface as warnings."""
        msg = f"[RISK:{action}] {reason} {_fields(context)}".rstrip()
        level = logging.WARNING if action in ("BLOCKED", "HALT") else logging.INFO
        self.main_logger.log(level, msg)

    def liquidation(self, position_id: int, direction: str, price: float, margin: float):
        msg = f"[LIQUIDATION] #{position_id} {direction} @ {price:.4f} margin_lost={margin:.2f}"
        self.trade_logger.warning(msg)
        self.main_logger.warning(msg)


_logger: Optional[SimLogger] = None


def get_logger() -> SimLogger:
    """Return the shared logger, creating it with environment defaults on first use."""
    global _logger
    if _logger is None:
        _logger = SimLogger()
    return _logger


def setup_logger(log_dir: Optional[str] = None, log_level: Optional[str] = None) -> SimLogger:
    """
    Reconfigure the shared logger.

    Handlers are rebuilt in place, so module-level ``logger = get_logger()``
    references created at import time keep working.
    """
    global _logger
    if _logger is None:
        _logger = SimLogger(log_dir, log_level)
        return _logger
    _logger.level = _resolve_level(log_level)
    _logger.log_dir = Path(log_dir) if log_dir else None
    if _logger.log_dir is not None:
        _logger.log_dir.mkdir(parents=True, exist_ok=True)
    _logger._configure()
    return _logger
