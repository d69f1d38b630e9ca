"""Per-session miner metrics (CSV export)."""

from .exporters import SESSION_COLUMNS, export_run_metrics, flatten_metrics

__all__ = ["SESSION_COLUMNS", "export_run_metrics", "flatten_metrics"]
