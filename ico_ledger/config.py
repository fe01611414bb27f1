"""
config.py - Sale parameters written by initialize

SaleConfig bundles the seven numbers that initialize copies into the state.
The defaults are the legacy literals of the first deployment, so a bare
initialize still produces a 10000-token sale with a 0..100 public window.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
import struct

from .core import (
    check_u64,
    DEFAULT_TOTAL_SUPPLY, DEFAULT_PRE_SALE_PRICE, DEFAULT_PRE_SALE_LIMIT,
    DEFAULT_SALE_PRICE, DEFAULT_SALE_LIMIT,
    DEFAULT_SALE_START_TIME, DEFAULT_SALE_END_TIME,
    InvalidOperation,
)

# Seven little-endian u64s, in field order.
_PAYLOAD_FORMAT = "<7Q"
PAYLOAD_SIZE = struct.calcsize(_PAYLOAD_FORMAT)


@dataclass(frozen=True, slots=True)
class SaleConfig:
    """
    Immutable sale parameters.

    Attributes:
        total_supply: Tokens credited to the admin at initialization (> 0)
        pre_sale_price: Lamports per token in the pre-sale (> 0)
        pre_sale_limit: Max cumulative pre-sale tokens per participant
        sale_price: Lamports per token in the public sale (> 0)
        sale_limit: Max cumulative public-sale tokens per participant
        sale_start_time: Unix seconds at which the public sale opens
        sale_end_time: Unix seconds at which the public sale closes (exclusive)

    A window with sale_start_time >= sale_end_time is accepted here; public
    purchases against it fail with WindowClosed.
    """
    total_supply: int = DEFAULT_TOTAL_SUPPLY
    pre_sale_price: int = DEFAULT_PRE_SALE_PRICE
    pre_sale_limit: int = DEFAULT_PRE_SALE_LIMIT
    sale_price: int = DEFAULT_SALE_PRICE
    sale_limit: int = DEFAULT_SALE_LIMIT
    sale_start_time: int = DEFAULT_SALE_START_TIME
    sale_end_time: int = DEFAULT_SALE_END_TIME

    def __post_init__(self):
        for f in fields(self):
            check_u64(getattr(self, f.name), f.name)
        if self.total_supply == 0:
            raise ValueError("total_supply must be positive")
        if self.pre_sale_price == 0:
            raise ValueError("pre_sale_price must be positive")
        if self.sale_price == 0:
            raise ValueError("sale_price must be positive")

    def to_payload(self) -> bytes:
        """Encode as the 56-byte initialize payload."""
        return struct.pack(
            _PAYLOAD_FORMAT,
            self.total_supply,
            self.pre_sale_price,
            self.pre_sale_limit,
            self.sale_price,
            self.sale_limit,
            self.sale_start_time,
            self.sale_end_time,
        )

    @classmethod
    def from_payload(cls, payload: bytes) -> SaleConfig:
        """
        Decode an initialize payload.

        Raises:
            InvalidOperation: If the payload is not exactly 56 bytes or holds
                              values SaleConfig rejects
        """
        if len(payload) != PAYLOAD_SIZE:
            raise InvalidOperation(
                f"initialize payload must be {PAYLOAD_SIZE} bytes, got {len(payload)}"
            )
        try:
            return cls(*struct.unpack(_PAYLOAD_FORMAT, payload))
        except ValueError as e:
            raise InvalidOperation(f"invalid sale config: {e}") from e
