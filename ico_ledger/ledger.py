"""
ledger.py - Stateful in-memory host for the sale program

IcoLedger owns a program id, the state account and a registry of user
accounts, and drives the program one instruction at a time through
runtime.process_instruction(). It is the only module in the package that
keeps state between calls.

Key responsibilities:
    - Registers and funds accounts, writes buyer orders
    - Submits instructions atomically (applied fully or rejected with no effect)
    - Records every submission in an audit log with the program's log lines
    - Exposes the decoded state and conservation checks for tokens and lamports
    - Clones itself for what-if simulations
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import copy

from .codec import decode_state
from .config import SaleConfig
from .core import (
    Pubkey, LedgerState, ExecuteResult,
    DEFAULT_SLOT_SIZE,
    LedgerError, AccountNotRegistered,
    check_u64, verify_conservation,
)
from .instructions import Opcode, encode_amount, encode_instruction
from .runtime import Account, Clock, FixedClock, process_instruction


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Audit record of one submitted instruction.

    Attributes:
        sequence: Monotonic submission number within the ledger
        opcode: First byte of the instruction data (None if empty)
        accounts: Keys of the non-state accounts passed to the call
        signer: Key that signed the call
        result: APPLIED or REJECTED
        error: Exception class name when rejected, else None
        reason: Exception message when rejected, else ""
        logs: Program log lines emitted during the call
        time: Clock reading when the call was submitted
    """
    sequence: int
    opcode: Optional[int]
    accounts: Tuple[Pubkey, ...]
    signer: Optional[Pubkey]
    result: ExecuteResult
    error: Optional[str]
    reason: str
    logs: Tuple[str, ...]
    time: int

    @property
    def applied(self) -> bool:
        return self.result == ExecuteResult.APPLIED

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        try:
            op_name = Opcode(self.opcode).name if self.opcode is not None else "EMPTY"
        except ValueError:
            op_name = f"UNKNOWN({self.opcode})"
        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(f' Instruction #{self.sequence}: {op_name}')}│",
            f"├{bar}┤",
            f"│{pad('   time     : ' + str(self.time))}│",
            f"│{pad('   signer   : ' + str(self.signer))}│",
        ]
        for i, key in enumerate(self.accounts):
            lines.append(f"│{pad(f'   account[{i + 1}] : {key}')}│")
        if self.logs:
            lines.append(f"├{bar}┤")
            for line in self.logs:
                lines.append(f"│{pad('   log: ' + line)}│")
        lines.append(f"├{bar}┤")
        if self.applied:
            lines.append(f"│{pad(' ✓ APPLIED')}│")
        else:
            lines.append(f"│{pad(f' ✗ REJECTED: {self.error}: {self.reason}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


class IcoLedger:
    """
    In-memory host running one token sale.

    Thread Safety:
        Not thread-safe. Instructions are processed one at a time, which is
        the execution model the program relies on.

    Example:
        ledger = IcoLedger("main", verbose=False)
        admin = Pubkey.from_seed("admin")
        buyer = Pubkey.from_seed("buyer")
        ledger.register_account(admin)
        ledger.register_account(buyer)

        ledger.initialize(admin, SaleConfig(sale_start_time=1000, sale_end_time=2000))
        ledger.enroll(admin, buyer)
        ledger.toggle_whitelist(admin, buyer)

        ledger.fund(buyer, 300)
        result = ledger.buy_presale(buyer, 3)   # 3 tokens at 100 lamports
    """

    def __init__(
        self,
        name: str,
        program_id: Optional[Pubkey] = None,
        deployer: Optional[Pubkey] = None,
        clock: Optional[Clock] = None,
        slot_size: int = DEFAULT_SLOT_SIZE,
        verbose: bool = True,
    ):
        """
        Create a ledger host.

        Args:
            name: Ledger identifier (also seeds the default program and state keys)
            program_id: Program identity (default: derived from name)
            deployer: Identity allowed to initialize (default: first signer)
            clock: Time source (default: FixedClock at 0)
            slot_size: Size in bytes of the state slot
            verbose: Print a receipt for every submission (default: True)
        """
        self.name = name
        self.program_id = program_id or Pubkey.from_seed(f"{name}:program")
        self.deployer = deployer
        self.clock: Clock = clock if clock is not None else FixedClock(0)
        self.verbose = verbose
        self.state_account = Account(
            key=Pubkey.from_seed(f"{name}:state"),
            owner=self.program_id,
            data=bytearray(slot_size),
        )
        self.accounts: Dict[Pubkey, Account] = {}
        self.transaction_log: List[Receipt] = []
        # Lamports brought in through fund(); the host never creates any otherwise.
        self.lamports_issued: int = 0
        self._next_sequence: int = 0

    # ========================================================================
    # READ-ONLY VIEW
    # ========================================================================

    @property
    def current_time(self) -> int:
        return self.clock.unix_timestamp()

    @property
    def state(self) -> LedgerState:
        """Decode and return a snapshot of the persisted state."""
        return decode_state(self.state_account.data)

    def get_balance(self, identity: Pubkey) -> int:
        """Token balance of identity (0 when it has no entry)."""
        return self.state.get_balance(identity)

    def get_account(self, key: Pubkey) -> Account:
        if key == self.state_account.key:
            return self.state_account
        if key not in self.accounts:
            raise AccountNotRegistered(f"Account {key} not registered")
        return self.accounts[key]

    def get_lamports(self, key: Pubkey) -> int:
        return self.get_account(key).lamports

    def list_accounts(self) -> List[Pubkey]:
        return list(self.accounts)

    def is_registered(self, key: Pubkey) -> bool:
        return key in self.accounts

    def total_lamports(self) -> int:
        return self.state_account.lamports + sum(a.lamports for a in self.accounts.values())

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check both conservation laws.

        Tokens: the sum of balances equals total_supply.
        Lamports: every lamport held by the host's accounts came from fund().

        Returns:
            The token report of core.verify_conservation() extended with
            'lamports', 'lamports_issued' and 'lamports_valid'; 'valid'
            covers both laws.
        """
        report = verify_conservation(self.state)
        lamports = self.total_lamports()
        report['lamports'] = lamports
        report['lamports_issued'] = self.lamports_issued
        report['lamports_valid'] = lamports == self.lamports_issued
        report['valid'] = report['valid'] and report['lamports_valid']
        return report

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Move the ledger's clock forward.

        Raises:
            ValueError: If new_time is in the past or the clock is not a FixedClock
        """
        if not isinstance(self.clock, FixedClock):
            raise ValueError(f"advance_time needs a FixedClock, ledger uses {self.clock!r}")
        self.clock.advance_to(new_time)

    # ========================================================================
    # ACCOUNTS (Mutating)
    # ========================================================================

    def register_account(self, key: Pubkey, lamports: int = 0, data: bytes = b"") -> Account:
        """
        Register a user account.

        Raises:
            ValueError: If the key is already registered or is the state account
        """
        if key in self.accounts or key == self.state_account.key:
            raise ValueError(f"Account {key} already registered")
        account = Account(key=key, lamports=0, data=bytearray(data))
        self.accounts[key] = account
        if lamports:
            self.fund(key, lamports)
        if self.verbose:
            print(f"📝 Registered account: {key} ({account.lamports} lamports)")
        return account

    def fund(self, key: Pubkey, lamports: int) -> None:
        """Airdrop lamports into an account; the only way lamports enter the host."""
        check_u64(lamports, "lamports")
        account = self.get_account(key)
        check_u64(account.lamports + lamports, "lamports")
        account.lamports += lamports
        self.lamports_issued += lamports

    def set_order(self, buyer: Pubkey, amount: int) -> None:
        """
        Write the token amount a buyer wants into the first 8 bytes of its data.

        Raises:
            AccountNotRegistered: If buyer is not a registered user account;
                the state account only changes through instructions
        """
        if buyer not in self.accounts:
            raise AccountNotRegistered(f"Account {buyer} is not a registered user account")
        account = self.accounts[buyer]
        encoded = encode_amount(amount)
        if len(account.data) < len(encoded):
            account.data.extend(bytes(len(encoded) - len(account.data)))
        account.data[:len(encoded)] = encoded

    # ========================================================================
    # INSTRUCTION SUBMISSION (Mutating)
    # ========================================================================

    def submit(
        self,
        instruction_data: bytes,
        *keys: Pubkey,
        signer: Optional[Pubkey] = None,
    ) -> ExecuteResult:
        """
        Submit one instruction.

        The state account is passed first automatically; keys are the
        opcode's remaining accounts. signer defaults to the first key.

        Returns:
            ExecuteResult.APPLIED if the program accepted the instruction
            ExecuteResult.REJECTED if it raised; nothing changed

        Raises:
            AccountNotRegistered: If a key is not registered
        """
        accounts = [self.state_account] + [self.get_account(k) for k in keys]
        if signer is None and keys:
            signer = keys[0]

        logs: List[str] = []
        error: Optional[LedgerError] = None
        submitted_at = self.current_time
        for account in accounts:
            account.is_signer = account.key == signer
        try:
            process_instruction(
                self.program_id,
                accounts,
                instruction_data,
                self.clock,
                deployer=self.deployer,
                log=logs.append,
            )
        except LedgerError as e:
            error = e
        finally:
            for account in accounts:
                account.is_signer = False

        receipt = Receipt(
            sequence=self._next_sequence,
            opcode=instruction_data[0] if instruction_data else None,
            accounts=tuple(keys),
            signer=signer,
            result=ExecuteResult.REJECTED if error else ExecuteResult.APPLIED,
            error=type(error).__name__ if error else None,
            reason=str(error) if error else "",
            logs=tuple(logs),
            time=submitted_at,
        )
        self._next_sequence += 1
        self.transaction_log.append(receipt)
        if self.verbose:
            print(repr(receipt))
        return receipt.result

    def initialize(self, admin: Pubkey, config: Optional[SaleConfig] = None) -> ExecuteResult:
        payload = config.to_payload() if config is not None else b""
        return self.submit(encode_instruction(Opcode.INITIALIZE, payload), admin)

    def mint(self, admin: Pubkey, recipient: Pubkey, amount: int) -> ExecuteResult:
        data = encode_instruction(Opcode.MINT, encode_amount(amount))
        return self.submit(data, admin, recipient)

    def enroll(self, admin: Pubkey, target: Pubkey) -> ExecuteResult:
        return self.submit(encode_instruction(Opcode.ENROLL_PRE_SALE), admin, target)

    def toggle_whitelist(self, admin: Pubkey, target: Pubkey) -> ExecuteResult:
        return self.submit(encode_instruction(Opcode.TOGGLE_WHITELIST), admin, target)

    def buy_presale(self, buyer: Pubkey, amount: int) -> ExecuteResult:
        """Order amount pre-sale tokens, paying with the buyer's whole lamport balance."""
        self.set_order(buyer, amount)
        return self.submit(encode_instruction(Opcode.PRE_SALE_PURCHASE), buyer)

    def buy_sale(self, buyer: Pubkey, amount: int) -> ExecuteResult:
        """Order amount public-sale tokens, paying with the buyer's whole lamport balance."""
        self.set_order(buyer, amount)
        return self.submit(encode_instruction(Opcode.SALE_PURCHASE), buyer)

    @property
    def last_receipt(self) -> Optional[Receipt]:
        return self.transaction_log[-1] if self.transaction_log else None

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> IcoLedger:
        """
        Create a deep copy of this ledger.

        Accounts, the state slot, the audit log and a FixedClock are copied;
        changes to the clone never reach the original. A SystemClock is shared.

        Returns:
            A new IcoLedger instance with identical state
        """
        cloned = IcoLedger.__new__(IcoLedger)
        cloned.name = self.name
        cloned.program_id = self.program_id
        cloned.deployer = self.deployer
        cloned.verbose = self.verbose
        cloned.clock = copy.deepcopy(self.clock) if isinstance(self.clock, FixedClock) else self.clock
        cloned.state_account = copy.deepcopy(self.state_account)
        cloned.accounts = {key: copy.deepcopy(account) for key, account in self.accounts.items()}
        cloned.transaction_log = list(self.transaction_log)
        cloned.lamports_issued = self.lamports_issued
        cloned._next_sequence = self._next_sequence
        return cloned
