"""execution/models.py

Data models for batch dispatch outcomes.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class OutcomeKind(str, Enum):
    """Classified result of one dispatch attempt.

    SUCCESS, SKIPPED, DUPLICATE and OVERUSE are benign; FAILED is reportable
    but never fatal.
    """
    SUCCESS = "success"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    OVERUSE = "overuse"
    FAILED = "failed"


@dataclass
class DispatchOutcome:
    """
    Represents one dispatch attempt.

    Attributes:
        kind: Classified outcome.
        size: Number of actions actually sent (0 when skipped).
        receipt: Chain receipt on success.
        detail: Failure detail for reportable outcomes.
        endpoint: URL the batch was sent through.
        balance_before: Mined-asset balance read before submission (run_cycle only).
        balance_after: Mined-asset balance read after submission (run_cycle only).
    """
    kind: OutcomeKind
    size: int = 0
    receipt: Optional[Dict[str, Any]] = None
    detail: str = ""
    endpoint: str = ""
    balance_before: Optional[Decimal] = None
    balance_after: Optional[Decimal] = None

    @property
    def is_error(self) -> bool:
        return self.kind == OutcomeKind.FAILED

    @property
    def mined(self) -> Optional[Decimal]:
        """Balance delta across the submission, if both reads succeeded."""
        if self.balance_before is None or self.balance_after is None:
            return None
        return self.balance_after - self.balance_before
