"""monitoring/exporters.py

Session metrics export.

One CSV row per miner session (account, cycle counters, mined and donated
totals, final batch size). Rows from successive sessions are appended to the
same file so yield can be compared across runs.

Design goals:
- Known columns first in a stable order, extra keys appended after them
- Header written once; a file whose header does not match is left untouched
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


SESSION_COLUMNS = [
    "timestamp",
    "account",
    "cycles",
    "sent",
    "skipped",
    "duplicates",
    "overuse",
    "failures",
    "red_zone_skips",
    "actions_sent",
    "adjustments",
    "donations",
    "mined_total",
    "donated_total",
    "batch_size",
]


def flatten_metrics(metrics: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested dicts into ``parent_child`` keys; sequences become comma lists."""
    flat: Dict[str, Any] = {}
    for key, value in metrics.items():
        name = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            flat.update(flatten_metrics(value, name))
        elif isinstance(value, (list, tuple)):
            flat[name] = ",".join(str(v) for v in value)
        else:
            flat[name] = value
    return flat


def _columns(row: Dict[str, Any]) -> List[str]:
    known = [c for c in SESSION_COLUMNS if c in row]
    return known + sorted(k for k in row if k not in SESSION_COLUMNS)


def _existing_header(path: Path) -> Optional[List[str]]:
    if not path.exists() or path.stat().st_size == 0:
        return None
    with open(path, newline="", encoding="utf-8") as f:
        return next(csv.reader(f), None)


def export_run_metrics(
    metrics: Dict[str, Any],
    path: str,
    timestamp: Optional[str] = None,
) -> bool:
    """Append one session row to a CSV file.

    Args:
        metrics: Session summary (nested dicts are flattened).
        path: Output CSV path; parent directories are created.
        timestamp: Row timestamp (defaults to now, UTC, ISO 8601).

    Returns:
        True if the row was written.
    """
    row = flatten_metrics(metrics)
    row["timestamp"] = timestamp or datetime.now(timezone.utc).isoformat()
    columns = _columns(row)
    output = Path(path)

    try:
        header = _existing_header(output)
        if header is not None and header != columns:
            logger.error(f"[export] {path} has columns {header}, expected {columns}; row not written")
            return False

        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=columns)
            if header is None:
                writer.writeheader()
            writer.writerow(row)
    except OSError as e:
        logger.error(f"[export] CSV write error: {e}")
        return False

    logger.info(f"[export] Session metrics appended to {path}")
    return True
