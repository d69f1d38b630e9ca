"""ledger/actions.py

Pure builders for ledger actions (no network, no signing).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Union

from .types import Operation, format_quantity


def transfer_action(
    contract: str,
    from_account: str,
    to_account: str,
    amount: Union[Decimal, float, str],
    asset: str,
    memo: str = "",
    permission: str = "active",
) -> Operation:
    """Build a token ``transfer`` action.

    Args:
        contract: Token contract account (e.g. ``eosio.token``).
        from_account: Sender, also the authorizing actor.
        to_account: Recipient.
        amount: Amount, quantized to 4 digits.
        asset: Token symbol.
        memo: Transfer memo.
        permission: Permission of the authorizing actor.

    Returns:
        Action dict in the chain API's JSON shape.
    """
    return {
        "account": contract,
        "name": "transfer",
        "authorization": [
            {
                "actor": from_account,
                "permission": permission,
            }
        ],
        "data": {
            "from": from_account,
            "to": to_account,
            "quantity": format_quantity(amount, asset),
            "memo": memo,
        },
    }
