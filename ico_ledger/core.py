"""
Core types and pure functions for the token-sale ledger.

This module provides the foundational data structures of the sale program:
1. Identity: Pubkey, the 32-byte account key
2. Persisted records: LedgerState, PreSaleEntry, SaleEntry
3. Exceptions: LedgerError and one subclass per rejection kind
4. Constants: u64 bounds, key length, storage slot size
5. Read helpers: balance lookup, roster lookup, conservation check

Functions here never mutate a LedgerState. Mutation happens only inside
ico_ledger.operations, on a staged copy owned by ico_ledger.machine.apply().
"""

from __future__ import annotations
from dataclasses import dataclass, field
import copy
import hashlib
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================================
# CONSTANTS
# ============================================================================

# Upper bound of every persisted counter (on-chain fields are u64).
U64_MAX = 2**64 - 1

# Length in bytes of an account key.
PUBKEY_LENGTH = 32

# Default size of the storage slot holding the encoded state.
# Large enough for several hundred balance and roster rows.
DEFAULT_SLOT_SIZE = 10 * 1024

# Legacy sale parameters written by initialize when no config is supplied.
DEFAULT_TOTAL_SUPPLY = 10000
DEFAULT_PRE_SALE_PRICE = 100
DEFAULT_PRE_SALE_LIMIT = 50
DEFAULT_SALE_PRICE = 200
DEFAULT_SALE_LIMIT = 100
DEFAULT_SALE_START_TIME = 0
DEFAULT_SALE_END_TIME = 100


def check_u64(value: Any, name: str) -> int:
    """
    Validate that value is an int in the u64 range and return it.

    Raises:
        ValueError: If value is not an int (bool excluded) or out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise ValueError(f"{name} out of u64 range: {value}")
    return value


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all sale-ledger errors."""
    code = 0


class WrongOwner(LedgerError):
    """Raised when the storage slot is not owned by the executing program."""
    code = 1


class Unauthorized(LedgerError):
    """Raised when the caller lacks the privilege an operation requires."""
    code = 2


class InvalidOperation(LedgerError):
    """Raised for an unknown opcode, a malformed payload or a missing account."""
    code = 3


class NotWhitelisted(LedgerError):
    """Raised when a pre-sale purchase comes from an address that is not whitelisted."""
    code = 4


class PaymentMismatch(LedgerError):
    """Raised when the attached payment differs from the required cost."""
    code = 5


class WindowClosed(LedgerError):
    """Raised when a purchase is attempted outside its phase's time window."""
    code = 6


class NotFound(LedgerError):
    """Raised when an identity has no required balance or roster entry."""
    code = 7


class AlreadyInitialized(LedgerError):
    """Raised when initialize runs against a state that is already initialized."""
    code = 8


class LimitExceeded(LedgerError):
    """Raised when a purchase would push a participant past the phase limit."""
    code = 9


class InsufficientFunds(LedgerError):
    """Raised when a token balance or a lamport balance is too low for a debit."""
    code = 10


class ArithmeticOverflow(LedgerError):
    """Raised when u64 arithmetic on costs, balances or proceeds would overflow."""
    code = 11


class CodecError(LedgerError):
    """Raised when a state blob cannot be decoded or does not fit its slot."""
    code = 12


class AccountNotRegistered(LedgerError):
    """Raised when the in-memory host is asked for an account it does not know."""
    code = 13


class ConservationViolation(LedgerError):
    """Raised when an operation would leave balances not summing to total_supply."""
    code = 14


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of submitting an instruction to the in-memory host.

    APPLIED: Every check passed and the state slot was rewritten.
    REJECTED: A LedgerError aborted the call; no state or lamports changed.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# ============================================================================
# IDENTITY
# ============================================================================

@dataclass(frozen=True, slots=True)
class Pubkey:
    """
    A 32-byte account key.

    Immutable and hashable, so it can key the balance mapping directly.
    The all-zero key marks the admin of an uninitialized state.
    """
    key: bytes

    def __post_init__(self):
        if not isinstance(self.key, (bytes, bytearray)):
            raise ValueError(f"Pubkey must be bytes, got {type(self.key).__name__}")
        if len(self.key) != PUBKEY_LENGTH:
            raise ValueError(f"Pubkey must be {PUBKEY_LENGTH} bytes, got {len(self.key)}")
        if isinstance(self.key, bytearray):
            object.__setattr__(self, 'key', bytes(self.key))

    @classmethod
    def zero(cls) -> Pubkey:
        return cls(bytes(PUBKEY_LENGTH))

    @classmethod
    def from_seed(cls, seed: str) -> Pubkey:
        """Derive a deterministic key from a human-readable name (sha256 of the name)."""
        return cls(hashlib.sha256(seed.encode()).digest())

    @classmethod
    def from_hex(cls, text: str) -> Pubkey:
        return cls(bytes.fromhex(text))

    def hex(self) -> str:
        return self.key.hex()

    def is_zero(self) -> bool:
        return not any(self.key)

    def __deepcopy__(self, memo) -> Pubkey:
        # Immutable: state clones can share keys.
        return self

    def __str__(self) -> str:
        return self.key.hex()

    def __repr__(self) -> str:
        return f"Pubkey({self.key.hex()[:8]}…)"


# ============================================================================
# PERSISTED RECORDS
# ============================================================================

@dataclass(slots=True)
class PreSaleEntry:
    """
    Roster row for the whitelisted pre-sale phase.

    Attributes:
        address: Enrolled identity
        token_amount: Cumulative units bought in the pre-sale
        token_price: Pre-sale price recorded when the row was created
        is_whitelisted: Toggled by the admin; purchases require True
    """
    address: Pubkey
    token_amount: int = 0
    token_price: int = 0
    is_whitelisted: bool = False

    def toggle_whitelist(self) -> None:
        self.is_whitelisted = not self.is_whitelisted


@dataclass(slots=True)
class SaleEntry:
    """Roster row for the public sale phase, appended on an address's first purchase."""
    address: Pubkey
    token_amount: int = 0
    token_price: int = 0


@dataclass
class LedgerState:
    """
    The single persisted record of the sale program.

    Field order matches the binary layout written by ico_ledger.codec.

    Attributes:
        total_supply: Fixed at initialization; equals the sum of all balances
        admin: Issuing authority (zero key until initialized)
        balances: Identity -> token balance, in first-credit order, unique keys
        pre_sale_price: Lamports per token in the pre-sale
        pre_sale_limit: Max cumulative pre-sale tokens per participant
        sale_price: Lamports per token in the public sale
        sale_limit: Max cumulative public-sale tokens per participant
        sale_start_time: Unix seconds; pre-sale runs strictly before it
        sale_end_time: Unix seconds; public sale runs in [start, end)
        total_price_earned: Sum of all accepted payments, never decreases
        pre_sale_participants: Pre-sale roster
        sale_participants: Public-sale roster
    """
    total_supply: int = 0
    admin: Pubkey = field(default_factory=Pubkey.zero)
    balances: Dict[Pubkey, int] = field(default_factory=dict)
    pre_sale_price: int = 0
    pre_sale_limit: int = 0
    sale_price: int = 0
    sale_limit: int = 0
    sale_start_time: int = 0
    sale_end_time: int = 0
    total_price_earned: int = 0
    pre_sale_participants: List[PreSaleEntry] = field(default_factory=list)
    sale_participants: List[SaleEntry] = field(default_factory=list)

    @property
    def is_initialized(self) -> bool:
        return self.total_supply != 0

    def get_balance(self, identity: Pubkey) -> int:
        """Return the token balance of identity (0 when it has no entry)."""
        return self.balances.get(identity, 0)

    def has_balance_entry(self, identity: Pubkey) -> bool:
        return identity in self.balances

    def sum_balances(self) -> int:
        return sum(self.balances.values())

    def find_pre_sale_entry(self, address: Pubkey) -> Optional[PreSaleEntry]:
        for entry in self.pre_sale_participants:
            if entry.address == address:
                return entry
        return None

    def find_sale_entry(self, address: Pubkey) -> Optional[SaleEntry]:
        for entry in self.sale_participants:
            if entry.address == address:
                return entry
        return None

    def clone(self) -> LedgerState:
        """Deep copy; the staged copy used by apply() shares nothing with the original."""
        return copy.deepcopy(self)

    def overwrite_with(self, other: LedgerState) -> None:
        """
        Replace every field of this record with the fields of other.

        Used as the commit step of apply(): the caller's record object stays
        the same, its contents become the staged state.
        """
        self.total_supply = other.total_supply
        self.admin = other.admin
        self.balances = other.balances
        self.pre_sale_price = other.pre_sale_price
        self.pre_sale_limit = other.pre_sale_limit
        self.sale_price = other.sale_price
        self.sale_limit = other.sale_limit
        self.sale_start_time = other.sale_start_time
        self.sale_end_time = other.sale_end_time
        self.total_price_earned = other.total_price_earned
        self.pre_sale_participants = other.pre_sale_participants
        self.sale_participants = other.sale_participants


# ============================================================================
# INVARIANT CHECKS
# ============================================================================

def verify_conservation(state: LedgerState) -> Dict[str, Any]:
    """
    Verify the token conservation law for a state.

    Every successful operation keeps the sum of all balance entries equal to
    total_supply. An uninitialized state (supply 0, no balances) is valid.

    Returns:
        Dict with keys:
        - 'valid': bool - True if the sum of balances equals total_supply
        - 'total_supply': int
        - 'sum_balances': int
        - 'difference': int - sum_balances - total_supply

    Example:
        result = verify_conservation(state)
        assert result['valid'], f"Conservation violated by {result['difference']}"
    """
    total = state.sum_balances()
    return {
        'valid': total == state.total_supply,
        'total_supply': state.total_supply,
        'sum_balances': total,
        'difference': total - state.total_supply,
    }
