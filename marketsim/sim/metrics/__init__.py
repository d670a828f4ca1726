"""
Execution metrics for the trading engine.
"""

from .metrics import ExecutionMetrics, ExecutionMetricsSnapshot

__all__ = [
    "ExecutionMetrics",
    "ExecutionMetricsSnapshot",
]
