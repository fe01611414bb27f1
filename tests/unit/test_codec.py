"""
test_codec.py - Unit tests for the binary state layout

Tests:
- Field offsets of the fixed-width prefix
- List encoding (u32 count + rows) and bool bytes
- Zero-padded slots and the all-zero uninitialized slot
- Rejection of truncated, malformed and oversized data
"""

import struct
import pytest

from ico_ledger import (
    LedgerState, PreSaleEntry, SaleEntry, Pubkey,
    encode_state, decode_state, write_state,
    CodecError, U64_MAX, DEFAULT_SLOT_SIZE,
)
from tests.sale_helpers import ADMIN, ALICE, BOB, initialized_state

# Fixed-width fields plus three empty list counts.
EMPTY_SIZE = 8 + 32 + 4 + 7 * 8 + 4 + 4


def sample_state() -> LedgerState:
    return LedgerState(
        total_supply=100,
        admin=ADMIN,
        balances={ADMIN: 90, ALICE: 10},
        pre_sale_price=1,
        pre_sale_limit=2,
        sale_price=3,
        sale_limit=4,
        sale_start_time=5,
        sale_end_time=6,
        total_price_earned=7,
        pre_sale_participants=[PreSaleEntry(ALICE, 10, 1, True)],
        sale_participants=[SaleEntry(BOB, 0, 3)],
    )


class TestLayout:

    def test_empty_state_size(self):
        assert len(encode_state(LedgerState())) == EMPTY_SIZE

    def test_prefix(self):
        data = encode_state(sample_state())
        assert struct.unpack_from("<Q", data, 0)[0] == 100
        assert data[8:40] == ADMIN.key
        assert struct.unpack_from("<I", data, 40)[0] == 2

    def test_balance_rows_in_insertion_order(self):
        data = encode_state(sample_state())
        assert data[44:76] == ADMIN.key
        assert struct.unpack_from("<Q", data, 76)[0] == 90
        assert data[84:116] == ALICE.key
        assert struct.unpack_from("<Q", data, 116)[0] == 10

    def test_scalar_block_follows_balances(self):
        data = encode_state(sample_state())
        assert struct.unpack_from("<7Q", data, 124) == (1, 2, 3, 4, 5, 6, 7)

    def test_roster_rows(self):
        data = encode_state(sample_state())
        offset = 124 + 56
        assert struct.unpack_from("<I", data, offset)[0] == 1
        key, amount, price, flag = struct.unpack_from("<32sQQB", data, offset + 4)
        assert (Pubkey(key), amount, price, flag) == (ALICE, 10, 1, 1)
        offset += 4 + 49
        assert struct.unpack_from("<I", data, offset)[0] == 1
        key, amount, price = struct.unpack_from("<32sQQ", data, offset + 4)
        assert (Pubkey(key), amount, price) == (BOB, 0, 3)
        assert len(data) == offset + 4 + 48

    def test_encoding_is_deterministic(self):
        assert encode_state(sample_state()) == encode_state(sample_state())


class TestDecode:

    def test_round_trip(self):
        state = sample_state()
        assert decode_state(encode_state(state)) == state

    def test_all_zero_slot_is_uninitialized(self):
        state = decode_state(bytes(DEFAULT_SLOT_SIZE))
        assert state == LedgerState()
        assert not state.is_initialized

    def test_zero_padding_ignored(self):
        state = sample_state()
        assert decode_state(encode_state(state) + bytes(500)) == state

    def test_trailing_garbage_rejected(self):
        with pytest.raises(CodecError, match="non-zero"):
            decode_state(encode_state(sample_state()) + b"\x00\x01")

    @pytest.mark.parametrize("cut", [0, 7, 39, 43, 100, 150])
    def test_truncated_rejected(self, cut):
        data = encode_state(sample_state())
        with pytest.raises(CodecError, match="truncated"):
            decode_state(data[:cut])

    def test_invalid_bool_rejected(self):
        data = bytearray(encode_state(sample_state()))
        flag_offset = 124 + 56 + 4 + 48
        assert data[flag_offset] == 1
        data[flag_offset] = 2
        with pytest.raises(CodecError, match="bool"):
            decode_state(bytes(data))

    def test_duplicate_balance_rejected(self):
        data = bytearray(encode_state(sample_state()))
        data[84:116] = ADMIN.key
        with pytest.raises(CodecError, match="duplicate"):
            decode_state(bytes(data))

    def test_huge_count_is_truncation(self):
        data = bytearray(encode_state(LedgerState()))
        data[40:44] = struct.pack("<I", 2**32 - 1)
        with pytest.raises(CodecError, match="truncated"):
            decode_state(bytes(data))


class TestEncodeErrors:

    def test_out_of_range_value(self):
        state = sample_state()
        state.total_price_earned = U64_MAX + 1
        with pytest.raises(CodecError):
            encode_state(state)


class TestWriteState:

    def test_writes_and_pads(self):
        slot = bytearray(b"\xff" * 1024)
        used = write_state(slot, sample_state())
        assert used == len(encode_state(sample_state()))
        assert len(slot) == 1024
        assert not any(slot[used:])
        assert decode_state(slot) == sample_state()

    def test_shrinking_state_clears_old_tail(self):
        slot = bytearray(1024)
        write_state(slot, sample_state())
        write_state(slot, LedgerState())
        assert decode_state(slot) == LedgerState()

    def test_too_small_slot(self):
        slot = bytearray(EMPTY_SIZE - 1)
        with pytest.raises(CodecError, match="slot holds"):
            write_state(slot, LedgerState())
        assert slot == bytearray(EMPTY_SIZE - 1)

    def test_initialized_state_fits_default_slot(self):
        slot = bytearray(DEFAULT_SLOT_SIZE)
        write_state(slot, initialized_state())
        assert decode_state(slot).get_balance(ADMIN) == 10000
