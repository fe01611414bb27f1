"""
instructions.py - Opcodes, operation variants and caller context

An instruction is an opcode byte followed by an operation-specific payload.
The identities an operation refers to (recipient, buyer, whitelist target)
arrive out-of-band as accounts; ico_ledger.runtime combines both into one of
the operation dataclasses below before handing it to machine.apply().
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
import struct
from typing import ClassVar, Optional, Tuple, Union

from .config import SaleConfig
from .core import Pubkey, InvalidOperation, check_u64


class Opcode(IntEnum):
    """First byte of the instruction data."""
    INITIALIZE = 0
    MINT = 1
    PRE_SALE_PURCHASE = 2
    SALE_PURCHASE = 3
    TOGGLE_WHITELIST = 4
    ENROLL_PRE_SALE = 5


@dataclass(frozen=True, slots=True)
class CallerContext:
    """
    Per-call facts supplied by the host.

    Attributes:
        caller: Identity invoking the call (the signing account)
        now: Unix seconds read from the clock at call start
        is_signer: Whether the caller signed the instruction
        deployer: Identity allowed to initialize; None lets the first
                  signing caller become admin
    """
    caller: Pubkey
    now: int
    is_signer: bool = True
    deployer: Optional[Pubkey] = None

    def __post_init__(self):
        check_u64(self.now, "now")


@dataclass(frozen=True, slots=True)
class Initialize:
    opcode: ClassVar[Opcode] = Opcode.INITIALIZE
    config: Optional[SaleConfig] = None


@dataclass(frozen=True, slots=True)
class Mint:
    opcode: ClassVar[Opcode] = Opcode.MINT
    recipient: Pubkey
    amount: int

    def __post_init__(self):
        check_u64(self.amount, "amount")


@dataclass(frozen=True, slots=True)
class PreSalePurchase:
    """
    Buy amount tokens in the pre-sale.

    payment is the lamport value the buyer attached; it must equal
    amount * pre_sale_price exactly.
    """
    opcode: ClassVar[Opcode] = Opcode.PRE_SALE_PURCHASE
    buyer: Pubkey
    amount: int
    payment: int

    def __post_init__(self):
        check_u64(self.amount, "amount")
        check_u64(self.payment, "payment")


@dataclass(frozen=True, slots=True)
class SalePurchase:
    """Buy amount tokens in the public sale at sale_price."""
    opcode: ClassVar[Opcode] = Opcode.SALE_PURCHASE
    buyer: Pubkey
    amount: int
    payment: int

    def __post_init__(self):
        check_u64(self.amount, "amount")
        check_u64(self.payment, "payment")


@dataclass(frozen=True, slots=True)
class ToggleWhitelist:
    opcode: ClassVar[Opcode] = Opcode.TOGGLE_WHITELIST
    target: Pubkey


@dataclass(frozen=True, slots=True)
class EnrollPreSale:
    opcode: ClassVar[Opcode] = Opcode.ENROLL_PRE_SALE
    target: Pubkey


Operation = Union[
    Initialize, Mint, PreSalePurchase, SalePurchase, ToggleWhitelist, EnrollPreSale
]


# ============================================================================
# WIRE HELPERS
# ============================================================================

def split_instruction(data: bytes) -> Tuple[Opcode, bytes]:
    """
    Split instruction data into its opcode and payload.

    Raises:
        InvalidOperation: If data is empty or the opcode is unknown
    """
    if not data:
        raise InvalidOperation("empty instruction data")
    try:
        opcode = Opcode(data[0])
    except ValueError:
        raise InvalidOperation(f"unknown opcode {data[0]}") from None
    return opcode, bytes(data[1:])


def read_amount(buffer: bytes, what: str) -> int:
    """
    Read a little-endian u64 from the first 8 bytes of buffer.

    Bytes past the first 8 are ignored, matching how the buyer's order
    buffer is read.

    Raises:
        InvalidOperation: If buffer is shorter than 8 bytes
    """
    if len(buffer) < 8:
        raise InvalidOperation(f"{what} needs 8 bytes, got {len(buffer)}")
    return struct.unpack_from("<Q", buffer, 0)[0]


def encode_amount(amount: int) -> bytes:
    return struct.pack("<Q", check_u64(amount, "amount"))


def encode_instruction(opcode: Opcode, payload: bytes = b"") -> bytes:
    """Build instruction data: opcode byte followed by payload."""
    return bytes([int(opcode)]) + payload
