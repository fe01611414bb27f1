"""
test_runtime.py - Unit tests for the in-memory host environment

Tests:
- Clocks: FixedClock forward-only, SystemClock
- AccountPayments: lamport debits into the treasury
- parse_instruction: account roles per opcode
- process_instruction: owner check, logging, rollback on rejection
"""

import pytest

from ico_ledger import (
    Account, FixedClock, SystemClock, Clock, AccountPayments,
    Pubkey, Opcode, LedgerState,
    Initialize, Mint, PreSalePurchase, SalePurchase, ToggleWhitelist, EnrollPreSale,
    process_instruction, encode_instruction, encode_amount, encode_state, decode_state, write_state,
    WrongOwner, InvalidOperation, NotFound, InsufficientFunds, WindowClosed,
    AlreadyInitialized, Unauthorized, CodecError, SYSTEM_PROGRAM_ID, DEFAULT_SLOT_SIZE,
)
from ico_ledger.runtime import parse_instruction
from tests.sale_helpers import ADMIN, ALICE, BOB, WINDOWED_CONFIG, initialized_state, whitelist

PROGRAM = Pubkey.from_seed("program")
STATE_KEY = Pubkey.from_seed("state")


def state_account(state: LedgerState = None, owner: Pubkey = PROGRAM) -> Account:
    account = Account(STATE_KEY, owner=owner, data=bytearray(DEFAULT_SLOT_SIZE))
    if state is not None:
        write_state(account.data, state)
    return account


def signer(key: Pubkey, lamports: int = 0, data: bytes = b"") -> Account:
    return Account(key, lamports=lamports, data=bytearray(data), is_signer=True)


# =============================================================================
# CLOCKS
# =============================================================================

class TestClocks:

    def test_fixed_clock(self):
        clock = FixedClock(10)
        assert clock.unix_timestamp() == 10
        clock.advance_to(20)
        clock.advance_by(5)
        assert clock.unix_timestamp() == 25

    def test_fixed_clock_forward_only(self):
        clock = FixedClock(10)
        with pytest.raises(ValueError, match="backwards"):
            clock.advance_to(9)
        clock.advance_to(10)
        assert clock.unix_timestamp() == 10

    def test_fixed_clock_validates(self):
        with pytest.raises(ValueError):
            FixedClock(-1)

    def test_system_clock(self):
        clock = SystemClock()
        assert isinstance(clock, Clock)
        assert clock.unix_timestamp() > 1_600_000_000


# =============================================================================
# ACCOUNTS AND PAYMENTS
# =============================================================================

class TestAccount:

    def test_defaults(self):
        account = Account(ALICE)
        assert account.owner == SYSTEM_PROGRAM_ID
        assert account.lamports == 0
        assert account.data == bytearray()
        assert account.is_signer is False

    def test_data_converted_to_bytearray(self):
        assert isinstance(Account(ALICE, data=b"\x01").data, bytearray)

    def test_lamports_validated(self):
        with pytest.raises(ValueError):
            Account(ALICE, lamports=-1)


class TestAccountPayments:

    def test_debit_moves_to_treasury(self):
        treasury = state_account()
        alice = Account(ALICE, lamports=500)
        AccountPayments([treasury, alice], treasury).debit(ALICE, 300)
        assert alice.lamports == 200
        assert treasury.lamports == 300

    def test_unknown_payer(self):
        treasury = state_account()
        with pytest.raises(NotFound):
            AccountPayments([treasury], treasury).debit(ALICE, 1)

    def test_insufficient_lamports(self):
        treasury = state_account()
        alice = Account(ALICE, lamports=10)
        with pytest.raises(InsufficientFunds):
            AccountPayments([treasury, alice], treasury).debit(ALICE, 11)
        assert alice.lamports == 10
        assert treasury.lamports == 0


# =============================================================================
# PARSING
# =============================================================================

class TestParseInstruction:

    def test_initialize_without_payload(self):
        context, op = parse_instruction(Opcode.INITIALIZE, b"", [state_account(), signer(ADMIN)], 5)
        assert op == Initialize(None)
        assert context.caller == ADMIN
        assert context.now == 5
        assert context.is_signer

    def test_initialize_with_config(self):
        payload = WINDOWED_CONFIG.to_payload()
        _, op = parse_instruction(Opcode.INITIALIZE, payload, [state_account(), signer(ADMIN)], 0)
        assert op.config == WINDOWED_CONFIG

    def test_mint(self):
        accounts = [state_account(), signer(ADMIN), Account(ALICE)]
        _, op = parse_instruction(Opcode.MINT, encode_amount(50), accounts, 0)
        assert op == Mint(ALICE, 50)

    def test_mint_short_payload(self):
        accounts = [state_account(), signer(ADMIN), Account(ALICE)]
        with pytest.raises(InvalidOperation, match="mint amount"):
            parse_instruction(Opcode.MINT, b"\x01", accounts, 0)

    def test_purchase_reads_order_and_lamports(self):
        accounts = [state_account(), signer(ALICE, lamports=300, data=encode_amount(3))]
        context, op = parse_instruction(Opcode.PRE_SALE_PURCHASE, b"", accounts, 0)
        assert op == PreSalePurchase(ALICE, 3, 300)
        assert context.caller == ALICE
        _, op = parse_instruction(Opcode.SALE_PURCHASE, b"", accounts, 0)
        assert op == SalePurchase(ALICE, 3, 300)

    def test_purchase_without_order(self):
        accounts = [state_account(), signer(ALICE, lamports=300)]
        with pytest.raises(InvalidOperation, match="buyer order"):
            parse_instruction(Opcode.SALE_PURCHASE, b"", accounts, 0)

    def test_roster_opcodes_take_target(self):
        accounts = [state_account(), signer(ADMIN), Account(BOB)]
        assert parse_instruction(Opcode.TOGGLE_WHITELIST, b"", accounts, 0)[1] == ToggleWhitelist(BOB)
        assert parse_instruction(Opcode.ENROLL_PRE_SALE, b"", accounts, 0)[1] == EnrollPreSale(BOB)

    @pytest.mark.parametrize("opcode", [Opcode.MINT, Opcode.TOGGLE_WHITELIST, Opcode.ENROLL_PRE_SALE])
    def test_missing_target(self, opcode):
        with pytest.raises(InvalidOperation, match="missing"):
            parse_instruction(opcode, encode_amount(1), [state_account(), signer(ADMIN)], 0)

    def test_missing_caller(self):
        with pytest.raises(InvalidOperation, match="missing caller"):
            parse_instruction(Opcode.INITIALIZE, b"", [state_account()], 0)

    def test_deployer_passed_through(self):
        context, _ = parse_instruction(
            Opcode.INITIALIZE, b"", [state_account(), signer(ADMIN)], 0, deployer=ADMIN,
        )
        assert context.deployer == ADMIN


# =============================================================================
# ENTRY POINT
# =============================================================================

class TestProcessInstruction:

    def test_initialize_writes_slot(self):
        slot = state_account()
        logs = []
        process_instruction(
            PROGRAM, [slot, signer(ADMIN)], encode_instruction(Opcode.INITIALIZE),
            FixedClock(0), log=logs.append,
        )
        assert decode_state(slot.data).get_balance(ADMIN) == 10000
        assert logs == ["sale program entry point", "instruction: initialize", "success"]

    def test_wrong_owner_checked_first(self):
        slot = state_account(owner=SYSTEM_PROGRAM_ID)
        logs = []
        with pytest.raises(WrongOwner):
            process_instruction(PROGRAM, [slot], b"\xff", FixedClock(0), log=logs.append)
        assert logs[-1] == "state account does not have the correct program id"
        assert not any(slot.data)

    def test_unknown_opcode(self):
        slot = state_account()
        with pytest.raises(InvalidOperation):
            process_instruction(PROGRAM, [slot, signer(ADMIN)], b"\x09", FixedClock(0))

    def test_empty_instruction(self):
        with pytest.raises(InvalidOperation, match="empty"):
            process_instruction(PROGRAM, [state_account(), signer(ADMIN)], b"", FixedClock(0))

    def test_no_accounts(self):
        with pytest.raises(InvalidOperation, match="missing state"):
            process_instruction(PROGRAM, [], b"\x00", FixedClock(0))

    def test_rejection_logged_and_slot_untouched(self):
        slot = state_account(initialized_state())
        before = bytes(slot.data)
        logs = []
        with pytest.raises(AlreadyInitialized):
            process_instruction(
                PROGRAM, [slot, signer(ALICE)], encode_instruction(Opcode.INITIALIZE),
                FixedClock(0), log=logs.append,
            )
        assert bytes(slot.data) == before
        assert logs[-1].startswith("rejected: AlreadyInitialized:")

    def test_purchase_moves_lamports(self):
        state = initialized_state(WINDOWED_CONFIG)
        whitelist(state, ALICE)
        slot = state_account(state)
        buyer = signer(ALICE, lamports=300, data=encode_amount(3))
        process_instruction(
            PROGRAM, [slot, buyer], encode_instruction(Opcode.PRE_SALE_PURCHASE), FixedClock(0),
        )
        assert buyer.lamports == 0
        assert slot.lamports == 300
        assert decode_state(slot.data).get_balance(ALICE) == 3

    def test_rejected_purchase_restores_lamports(self):
        state = initialized_state(WINDOWED_CONFIG)
        whitelist(state, ALICE)
        slot = state_account(state)
        before = bytes(slot.data)
        buyer = signer(ALICE, lamports=300, data=encode_amount(3))
        with pytest.raises(WindowClosed):
            process_instruction(
                PROGRAM, [slot, buyer], encode_instruction(Opcode.PRE_SALE_PURCHASE),
                FixedClock(1000),
            )
        assert buyer.lamports == 300
        assert slot.lamports == 0
        assert bytes(slot.data) == before

    def test_lamports_restored_when_slot_overflows(self):
        state = initialized_state(WINDOWED_CONFIG)
        whitelist(state, ALICE)
        slot = Account(STATE_KEY, owner=PROGRAM, data=bytearray(len(encode_state(state))))
        write_state(slot.data, state)
        before = bytes(slot.data)
        buyer = signer(ALICE, lamports=300, data=encode_amount(3))
        # The purchase grows the balance list by one row, which no longer fits.
        with pytest.raises(CodecError):
            process_instruction(
                PROGRAM, [slot, buyer], encode_instruction(Opcode.PRE_SALE_PURCHASE), FixedClock(0),
            )
        assert buyer.lamports == 300
        assert slot.lamports == 0
        assert bytes(slot.data) == before

    def test_unsigned_caller_rejected(self):
        slot = state_account()
        caller = Account(ADMIN)
        with pytest.raises(Unauthorized):
            process_instruction(PROGRAM, [slot, caller], b"\x00", FixedClock(0))

    def test_deployer_enforced(self):
        slot = state_account()
        with pytest.raises(Unauthorized, match="deployer"):
            process_instruction(
                PROGRAM, [slot, signer(ALICE)], b"\x00", FixedClock(0), deployer=ADMIN,
            )
        process_instruction(PROGRAM, [slot, signer(ADMIN)], b"\x00", FixedClock(0), deployer=ADMIN)
        assert decode_state(slot.data).admin == ADMIN
