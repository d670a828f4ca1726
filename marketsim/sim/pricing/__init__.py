"""
Exit pricing for open positions.

- exit_triggers: stop-loss, take-profit and trailing-stop checks per bar
"""

from .exit_triggers import ExitTrigger, check_exit_triggers, exit_levels, update_watermark

__all__ = [
    "ExitTrigger",
    "check_exit_triggers",
    "exit_levels",
    "update_watermark",
]
