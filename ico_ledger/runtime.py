"""
runtime.py - In-memory host environment for the sale program

Plays the part of the execution environment around machine.apply():

- Account: key, owner, lamports, data buffer, signer flag
- Clock: SystemClock (wall time) and FixedClock (settable, forward-only)
- AccountPayments: the lamport value-transfer primitive
- process_instruction(): owner check, decode, dispatch, encode back

Account layout per opcode (index 0 is always the state account):

    0 initialize        [state, caller]            payload: empty or SaleConfig (56 bytes)
    1 mint              [state, caller, recipient] payload: u64 amount
    2 pre-sale purchase [state, buyer]             amount: buyer.data[:8]
    3 sale purchase     [state, buyer]             amount: buyer.data[:8]
    4 toggle whitelist  [state, caller, target]
    5 enroll pre-sale   [state, caller, target]

The attached payment of a purchase is the buyer's whole lamport balance.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import time
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .codec import decode_state, write_state
from .config import SaleConfig
from .core import (
    Pubkey, LedgerError, WrongOwner, InvalidOperation, NotFound, InsufficientFunds,
    check_u64,
)
from .instructions import (
    Opcode, CallerContext, Operation,
    Initialize, Mint, PreSalePurchase, SalePurchase, ToggleWhitelist, EnrollPreSale,
    split_instruction, read_amount,
)
from .machine import apply


# Owner of accounts that no program has claimed.
SYSTEM_PROGRAM_ID = Pubkey.zero()


@dataclass
class Account:
    """
    A host account handed to the program for one call.

    Attributes:
        key: Account address
        owner: Program that owns the account's data
        lamports: Native balance; purchases are paid from it
        data: Raw data buffer (the state slot, or a buyer's order)
        is_signer: Whether this account signed the current instruction
    """
    key: Pubkey
    owner: Pubkey = field(default_factory=lambda: SYSTEM_PROGRAM_ID)
    lamports: int = 0
    data: bytearray = field(default_factory=bytearray)
    is_signer: bool = False

    def __post_init__(self):
        check_u64(self.lamports, "lamports")
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)


# ============================================================================
# CLOCKS
# ============================================================================

@runtime_checkable
class Clock(Protocol):
    """Source of the current Unix time in seconds."""

    def unix_timestamp(self) -> int:
        ...


class SystemClock:
    """Wall-clock time."""

    def unix_timestamp(self) -> int:
        return int(time.time())

    def __repr__(self):
        return "SystemClock()"


class FixedClock:
    """
    Settable clock for simulations and tests.

    Time can only move forward, never backward.
    """

    def __init__(self, now: int = 0):
        self._now = check_u64(now, "now")

    def unix_timestamp(self) -> int:
        return self._now

    def advance_to(self, new_time: int) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time
        """
        check_u64(new_time, "new_time")
        if new_time < self._now:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._now}")
        self._now = new_time

    def advance_by(self, seconds: int) -> None:
        self.advance_to(self._now + seconds)

    def __repr__(self):
        return f"FixedClock({self._now})"


# ============================================================================
# VALUE TRANSFER
# ============================================================================

class AccountPayments:
    """
    Lamport transfer primitive over the accounts of one call.

    Debited lamports are credited to the treasury (the state account), so the
    lamport total across the call's accounts never changes.
    """

    def __init__(self, accounts: Sequence[Account], treasury: Account):
        self._by_key: Dict[Pubkey, Account] = {a.key: a for a in accounts}
        self.treasury = treasury

    def debit(self, payer: Pubkey, lamports: int) -> None:
        account = self._by_key.get(payer)
        if account is None:
            raise NotFound(f"payer {payer} is not an account of this call")
        if account.lamports < lamports:
            raise InsufficientFunds(
                f"{payer} has {account.lamports} lamports, needs {lamports}"
            )
        account.lamports -= lamports
        self.treasury.lamports += lamports


# ============================================================================
# ENTRY POINT
# ============================================================================

def _account(accounts: Sequence[Account], index: int, role: str) -> Account:
    if index >= len(accounts):
        raise InvalidOperation(f"missing {role} account (index {index})")
    return accounts[index]


def parse_instruction(
    opcode: Opcode,
    payload: bytes,
    accounts: Sequence[Account],
    now: int,
    deployer: Optional[Pubkey] = None,
) -> Tuple[CallerContext, Operation]:
    """
    Build the caller context and operation for one instruction.

    Raises:
        InvalidOperation: Missing account or malformed payload
    """
    if opcode in (Opcode.PRE_SALE_PURCHASE, Opcode.SALE_PURCHASE):
        buyer = _account(accounts, 1, "buyer")
        amount = read_amount(buyer.data, "buyer order")
        context = CallerContext(buyer.key, now, buyer.is_signer, deployer)
        if opcode == Opcode.PRE_SALE_PURCHASE:
            return context, PreSalePurchase(buyer.key, amount, buyer.lamports)
        return context, SalePurchase(buyer.key, amount, buyer.lamports)

    caller = _account(accounts, 1, "caller")
    context = CallerContext(caller.key, now, caller.is_signer, deployer)

    if opcode == Opcode.INITIALIZE:
        config = SaleConfig.from_payload(payload) if payload else None
        return context, Initialize(config)
    if opcode == Opcode.MINT:
        recipient = _account(accounts, 2, "recipient")
        return context, Mint(recipient.key, read_amount(payload, "mint amount"))
    if opcode == Opcode.TOGGLE_WHITELIST:
        return context, ToggleWhitelist(_account(accounts, 2, "target").key)
    if opcode == Opcode.ENROLL_PRE_SALE:
        return context, EnrollPreSale(_account(accounts, 2, "target").key)
    raise InvalidOperation(f"unknown opcode {opcode}")


def _discard(message: str) -> None:
    pass


def process_instruction(
    program_id: Pubkey,
    accounts: List[Account],
    instruction_data: bytes,
    clock: Clock,
    deployer: Optional[Pubkey] = None,
    log: Optional[Callable[[str], None]] = None,
) -> None:
    """
    Execute one instruction against the state account (accounts[0]).

    The state slot is rewritten only when the whole call succeeds; on any
    error every lamport balance is restored and the error propagates.

    Args:
        program_id: Identity of the executing program
        accounts: State account first, then the opcode's accounts
        instruction_data: Opcode byte followed by the payload
        clock: Time source, read once at call start
        deployer: Identity allowed to initialize (None: first signer wins)
        log: Receives program log lines

    Raises:
        WrongOwner: State account is not owned by program_id
        LedgerError: Any other rejection
    """
    log = log or _discard
    log("sale program entry point")
    now = clock.unix_timestamp()

    state_account = _account(accounts, 0, "state")
    if state_account.owner != program_id:
        log("state account does not have the correct program id")
        raise WrongOwner(f"state account owned by {state_account.owner}, not {program_id}")

    lamports_before = [account.lamports for account in accounts]
    try:
        state = decode_state(state_account.data)
        opcode, payload = split_instruction(instruction_data)
        context, operation = parse_instruction(opcode, payload, accounts, now, deployer)
        log(f"instruction: {opcode.name.lower()}")
        apply(state, context, operation, AccountPayments(accounts, treasury=state_account))
        write_state(state_account.data, state)
    except LedgerError as e:
        for account, lamports in zip(accounts, lamports_before):
            account.lamports = lamports
        log(f"rejected: {type(e).__name__}: {e}")
        raise
    log("success")
