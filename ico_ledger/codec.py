"""
codec.py - Binary encoding of LedgerState

Layout (Borsh-compatible, little-endian, fields in LedgerState order):

    u64          8 bytes
    Pubkey       32 raw bytes
    bool         1 byte, 0 or 1
    list         u32 count, then the items

    total_supply u64 | admin Pubkey | balances list<(Pubkey, u64)> |
    pre_sale_price u64 | pre_sale_limit u64 | sale_price u64 | sale_limit u64 |
    sale_start_time u64 | sale_end_time u64 | total_price_earned u64 |
    pre_sale_participants list<(Pubkey, u64, u64, bool)> |
    sale_participants list<(Pubkey, u64, u64)>

The storage slot is larger than the encoding; the tail is zero padding.
An all-zero slot decodes to the uninitialized LedgerState().
"""

from __future__ import annotations
import struct
from typing import Tuple

from .core import (
    LedgerState, Pubkey, PreSaleEntry, SaleEntry,
    PUBKEY_LENGTH, CodecError,
)


_U64 = struct.Struct("<Q")
_U32 = struct.Struct("<I")
_BALANCE_ROW = struct.Struct(f"<{PUBKEY_LENGTH}sQ")
_PRE_SALE_ROW = struct.Struct(f"<{PUBKEY_LENGTH}sQQB")
_SALE_ROW = struct.Struct(f"<{PUBKEY_LENGTH}sQQ")


def encode_state(state: LedgerState) -> bytes:
    """
    Encode a state into its canonical byte form.

    Raises:
        CodecError: If a numeric field is outside the u64 range
    """
    data = bytearray()
    try:
        data.extend(_U64.pack(state.total_supply))
        data.extend(state.admin.key)

        data.extend(_U32.pack(len(state.balances)))
        for identity, amount in state.balances.items():
            data.extend(_BALANCE_ROW.pack(identity.key, amount))

        data.extend(_U64.pack(state.pre_sale_price))
        data.extend(_U64.pack(state.pre_sale_limit))
        data.extend(_U64.pack(state.sale_price))
        data.extend(_U64.pack(state.sale_limit))
        data.extend(_U64.pack(state.sale_start_time))
        data.extend(_U64.pack(state.sale_end_time))
        data.extend(_U64.pack(state.total_price_earned))

        data.extend(_U32.pack(len(state.pre_sale_participants)))
        for entry in state.pre_sale_participants:
            data.extend(_PRE_SALE_ROW.pack(
                entry.address.key,
                entry.token_amount,
                entry.token_price,
                1 if entry.is_whitelisted else 0,
            ))

        data.extend(_U32.pack(len(state.sale_participants)))
        for entry in state.sale_participants:
            data.extend(_SALE_ROW.pack(entry.address.key, entry.token_amount, entry.token_price))
    except struct.error as e:
        raise CodecError(f"cannot encode state: {e}") from e
    return bytes(data)


class _Reader:
    """Cursor over a byte buffer; every read checks the remaining length."""

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.offset = 0

    def unpack(self, layout: struct.Struct) -> Tuple:
        if self.offset + layout.size > len(self.data):
            raise CodecError(
                f"truncated state: need {layout.size} bytes at offset {self.offset}, "
                f"have {len(self.data) - self.offset}"
            )
        values = layout.unpack_from(self.data, self.offset)
        self.offset += layout.size
        return values

    def u64(self) -> int:
        return self.unpack(_U64)[0]

    def count(self) -> int:
        return self.unpack(_U32)[0]

    def pubkey(self) -> Pubkey:
        if self.offset + PUBKEY_LENGTH > len(self.data):
            raise CodecError(f"truncated state: pubkey at offset {self.offset}")
        key = self.data[self.offset:self.offset + PUBKEY_LENGTH]
        self.offset += PUBKEY_LENGTH
        return Pubkey(key)

    def rest(self) -> bytes:
        return self.data[self.offset:]


def _bool(byte: int) -> bool:
    if byte not in (0, 1):
        raise CodecError(f"invalid bool byte {byte}")
    return byte == 1


def decode_state(data: bytes) -> LedgerState:
    """
    Decode a state from a blob or a zero-padded storage slot.

    Raises:
        CodecError: On truncation, an invalid bool byte, duplicate balance
                    identities, or non-zero bytes after the encoding
    """
    reader = _Reader(data)
    state = LedgerState()
    state.total_supply = reader.u64()
    state.admin = reader.pubkey()

    for _ in range(reader.count()):
        key, amount = reader.unpack(_BALANCE_ROW)
        identity = Pubkey(key)
        if identity in state.balances:
            raise CodecError(f"duplicate balance entry for {identity}")
        state.balances[identity] = amount

    state.pre_sale_price = reader.u64()
    state.pre_sale_limit = reader.u64()
    state.sale_price = reader.u64()
    state.sale_limit = reader.u64()
    state.sale_start_time = reader.u64()
    state.sale_end_time = reader.u64()
    state.total_price_earned = reader.u64()

    for _ in range(reader.count()):
        key, token_amount, token_price, flag = reader.unpack(_PRE_SALE_ROW)
        state.pre_sale_participants.append(
            PreSaleEntry(Pubkey(key), token_amount, token_price, _bool(flag))
        )

    for _ in range(reader.count()):
        key, token_amount, token_price = reader.unpack(_SALE_ROW)
        state.sale_participants.append(SaleEntry(Pubkey(key), token_amount, token_price))

    if any(reader.rest()):
        raise CodecError(f"unexpected non-zero bytes after offset {reader.offset}")
    return state


def write_state(slot: bytearray, state: LedgerState) -> int:
    """
    Encode state into a fixed-size slot, zero-filling the remainder.

    Returns:
        Number of bytes used by the encoding

    Raises:
        CodecError: If the encoding does not fit the slot
    """
    encoded = encode_state(state)
    if len(encoded) > len(slot):
        raise CodecError(f"state needs {len(encoded)} bytes, slot holds {len(slot)}")
    slot[:len(encoded)] = encoded
    slot[len(encoded):] = bytes(len(slot) - len(encoded))
    return len(encoded)
