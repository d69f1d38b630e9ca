"""execution/actions.py

Pure logic for building mining batches.

Each mining action is a tiny EOS transfer to the mining contract. Amounts are
drawn uniformly from a few fixed increments so consecutive batches are not
byte-identical (identical transactions are rejected as duplicates).
"""

from __future__ import annotations

import random
from decimal import Decimal
from typing import List, Optional

from ledger.actions import transfer_action
from ledger.types import MINED_TOKEN_CONTRACT, Operation, PRIMARY_ASSET, PRIMARY_TOKEN_CONTRACT


# Quantity step and number of steps for a mining transfer (0.0001 .. 0.0003 EOS)
MINING_QUANTITY_STEP = Decimal("0.0001")
MINING_QUANTITY_STEPS = 3


def random_mining_quantity(rng: random.Random) -> Decimal:
    """Pick one of 0.0001 / 0.0002 / 0.0003 uniformly."""
    return MINING_QUANTITY_STEP * rng.randint(1, MINING_QUANTITY_STEPS)


def create_mining_action(account: str, quantity: Decimal = Decimal("0.0003")) -> Operation:
    """Build one mining transfer from ``account`` to the mining contract."""
    return transfer_action(
        PRIMARY_TOKEN_CONTRACT,
        account,
        MINED_TOKEN_CONTRACT,
        quantity,
        PRIMARY_ASSET,
    )


def create_mining_actions(
    num_actions: int,
    account: str,
    rng: Optional[random.Random] = None,
) -> List[Operation]:
    """Build a batch of ``num_actions`` mining transfers.

    Raises:
        ValueError: If num_actions is not positive.
    """
    if num_actions <= 0:
        raise ValueError(f"num_actions must be positive, got {num_actions}")
    rng = rng or random.Random()
    return [create_mining_action(account, random_mining_quantity(rng)) for _ in range(num_actions)]
