"""
machine.py - The ledger state machine entry point

apply() is the only function that commits changes to a LedgerState:

    1. Look up the handler for the operation type
    2. Run it against a staged deep copy of the state
    3. Check the conservation law on the staged copy
    4. Collect the buyer's payment through the value-transfer primitive
    5. Commit the staged copy into the caller's record

Steps 1-4 may raise; step 5 cannot. A call therefore either commits every
change or none, without relying on the order of early returns.
"""

from __future__ import annotations
from typing import Optional, Protocol, runtime_checkable

from .core import (
    LedgerState, InvalidOperation, ConservationViolation, Pubkey, verify_conservation,
)
from .instructions import CallerContext, Operation
from .operations import HANDLERS


@runtime_checkable
class ValueTransfer(Protocol):
    """
    Native value-transfer primitive supplied by the host.

    debit() moves lamports out of the payer's payable balance. It must either
    move exactly that amount or raise (InsufficientFunds) without moving any.
    """

    def debit(self, payer: Pubkey, lamports: int) -> None:
        ...


def apply(
    state: LedgerState,
    context: CallerContext,
    operation: Operation,
    payments: Optional[ValueTransfer] = None,
) -> None:
    """
    Apply one operation to state atomically.

    Args:
        state: The persisted record, owned exclusively by this call
        context: Caller identity, signer flag, clock reading, deployer
        operation: One of the operation dataclasses from ico_ledger.instructions
        payments: Value-transfer primitive; required by purchases

    Raises:
        LedgerError: Any subclass; state is left exactly as it was

    Example:
        state = LedgerState()
        apply(state, CallerContext(admin, now=0), Initialize())
        assert state.get_balance(admin) == 10000
    """
    handler = HANDLERS.get(type(operation))
    if handler is None:
        raise InvalidOperation(f"unsupported operation {type(operation).__name__}")

    staged = state.clone()
    due = handler(staged, context, operation)

    conservation = verify_conservation(staged)
    if not conservation['valid']:
        raise ConservationViolation(
            f"conservation violated by {type(operation).__name__}: "
            f"sum {conservation['sum_balances']} != supply {conservation['total_supply']}"
        )

    if due is not None and due.lamports:
        if payments is None:
            raise InvalidOperation("purchase requires a value-transfer primitive")
        payments.debit(due.payer, due.lamports)

    state.overwrite_with(staged)
