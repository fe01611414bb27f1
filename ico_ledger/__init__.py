"""
ico_ledger - Token-Sale Ledger State Machine

State-transition logic of a token sale: a fixed supply held by one admin,
a whitelisted pre-sale before the sale opens, a time-windowed public sale,
and aggregate proceeds, all kept in a single binary state record.

Usage:
    from ico_ledger import IcoLedger, Pubkey, SaleConfig, ExecuteResult

    ledger = IcoLedger("main")
    admin = Pubkey.from_seed("admin")
    alice = Pubkey.from_seed("alice")
    ledger.register_account(admin)
    ledger.register_account(alice)

    # Admin receives the whole supply
    ledger.initialize(admin, SaleConfig(sale_start_time=1000, sale_end_time=2000))

    # Enroll and whitelist alice, then let her buy 3 tokens before the sale opens
    ledger.enroll(admin, alice)
    ledger.toggle_whitelist(admin, alice)
    ledger.fund(alice, 300)
    result = ledger.buy_presale(alice, 3)

Lower level, without the host:
    from ico_ledger import LedgerState, CallerContext, Initialize, apply

    state = LedgerState()
    apply(state, CallerContext(admin, now=0), Initialize())
"""

# Core types
from .core import (
    Pubkey,
    LedgerState,
    PreSaleEntry,
    SaleEntry,
    ExecuteResult,
    verify_conservation,
    check_u64,
    U64_MAX,
    PUBKEY_LENGTH,
    DEFAULT_SLOT_SIZE,
    LedgerError,
    WrongOwner,
    Unauthorized,
    InvalidOperation,
    NotWhitelisted,
    PaymentMismatch,
    WindowClosed,
    NotFound,
    AlreadyInitialized,
    LimitExceeded,
    InsufficientFunds,
    ArithmeticOverflow,
    CodecError,
    AccountNotRegistered,
    ConservationViolation,
)

# Configuration
from .config import SaleConfig

# Instructions
from .instructions import (
    Opcode,
    CallerContext,
    Operation,
    Initialize,
    Mint,
    PreSalePurchase,
    SalePurchase,
    ToggleWhitelist,
    EnrollPreSale,
    encode_instruction,
    encode_amount,
)

# State machine
from .operations import PaymentDue
from .machine import apply, ValueTransfer

# Binary encoding
from .codec import encode_state, decode_state, write_state

# Host environment
from .runtime import (
    Account,
    Clock,
    SystemClock,
    FixedClock,
    AccountPayments,
    process_instruction,
    SYSTEM_PROGRAM_ID,
)

# Ledger host
from .ledger import IcoLedger, Receipt


__all__ = [
    # Core
    'Pubkey', 'LedgerState', 'PreSaleEntry', 'SaleEntry', 'ExecuteResult',
    'verify_conservation', 'check_u64', 'U64_MAX', 'PUBKEY_LENGTH', 'DEFAULT_SLOT_SIZE',
    # Exceptions
    'LedgerError', 'WrongOwner', 'Unauthorized', 'InvalidOperation', 'NotWhitelisted',
    'PaymentMismatch', 'WindowClosed', 'NotFound', 'AlreadyInitialized', 'LimitExceeded',
    'InsufficientFunds', 'ArithmeticOverflow', 'CodecError', 'AccountNotRegistered',
    'ConservationViolation',
    # Config
    'SaleConfig',
    # Instructions
    'Opcode', 'CallerContext', 'Operation', 'Initialize', 'Mint', 'PreSalePurchase',
    'SalePurchase', 'ToggleWhitelist', 'EnrollPreSale', 'encode_instruction', 'encode_amount',
    # State machine
    'PaymentDue', 'apply', 'ValueTransfer',
    # Codec
    'encode_state', 'decode_state', 'write_state',
    # Runtime
    'Account', 'Clock', 'SystemClock', 'FixedClock', 'AccountPayments',
    'process_instruction', 'SYSTEM_PROGRAM_ID',
    # Ledger
    'IcoLedger', 'Receipt',
]

__version__ = '0.1.0'
