#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A Token Sale Step by Step

A walkthrough of the sale program running inside the in-memory host.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Bootstrap   - The empty slot, initialize, the admin allocation
  4-5:  Pre-Sale    - Enrolling and whitelisting, a whitelisted purchase
  6:    Rejections  - Wrong payment, wrong phase, nothing changes
  7:    Public Sale - The [start, end) window
  8:    Proof       - Conservation of tokens and lamports, the audit log

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from ico_ledger import (
    IcoLedger, Pubkey, SaleConfig, ExecuteResult,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    total_supply: int = 10_000
    pre_sale_price: int = 100
    pre_sale_limit: int = 50
    sale_price: int = 200
    sale_limit: int = 100
    sale_start_time: int = 1_000
    sale_end_time: int = 2_000

    alice_pre_sale_tokens: int = 3
    bob_sale_tokens: int = 5

    def sale_config(self) -> SaleConfig:
        return SaleConfig(
            total_supply=self.total_supply,
            pre_sale_price=self.pre_sale_price,
            pre_sale_limit=self.pre_sale_limit,
            sale_price=self.sale_price,
            sale_limit=self.sale_limit,
            sale_start_time=self.sale_start_time,
            sale_end_time=self.sale_end_time,
        )


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv

ADMIN = Pubkey.from_seed("admin")
ALICE = Pubkey.from_seed("alice")
BOB = Pubkey.from_seed("bob")


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_balances(ledger: IcoLedger):
    state = ledger.state
    for key, name in ((ADMIN, "admin"), (ALICE, "alice"), (BOB, "bob")):
        print(f"  {name:6} tokens={state.get_balance(key):>6}  lamports={ledger.get_lamports(key):>6}")
    print(f"  {'slot':6} proceeds={state.total_price_earned:>5}  lamports={ledger.state_account.lamports:>6}")


# ============================================================================
# BOOTSTRAP (Steps 1-3)
# ============================================================================

def step_01_empty_slot():
    step_header(1, "The Empty Slot",
        "The program keeps all of its state in one fixed-size account.")

    print("""
    The host owns a state account whose data is a zero-filled slot.
    An all-zero slot decodes to an uninitialized sale: no supply, no admin.
    """)
    wait_for_enter()

    print(">>> ledger = IcoLedger('tutorial')")
    ledger = IcoLedger("tutorial", verbose=True)
    for key in (ADMIN, ALICE, BOB):
        ledger.register_account(key)

    section_header("Initial State")
    print(f"Program id:      {ledger.program_id}")
    print(f"Slot size:       {len(ledger.state_account.data)} bytes")
    print(f"Initialized:     {ledger.state.is_initialized}")
    return ledger


def step_02_initialize(ledger: IcoLedger):
    step_header(2, "Initialize",
        "The first signer becomes admin and receives the whole supply.")

    print(">>> ledger.initialize(ADMIN, CONFIG.sale_config())")
    ledger.initialize(ADMIN, CONFIG.sale_config())

    section_header("Balances")
    show_balances(ledger)
    return ledger


def step_03_second_initialize(ledger: IcoLedger):
    step_header(3, "Initialize Is One-Shot",
        "A second initialize is rejected and changes nothing.")

    print(">>> ledger.initialize(BOB)")
    result = ledger.initialize(BOB)
    print(f"\nResult: {result.value}; admin is still {ledger.state.admin!r}")
    return ledger


# ============================================================================
# PRE-SALE (Steps 4-5)
# ============================================================================

def step_04_whitelist(ledger: IcoLedger):
    step_header(4, "Enroll and Whitelist",
        "Only admin-whitelisted addresses may buy before the sale opens.")

    ledger.enroll(ADMIN, ALICE)
    ledger.toggle_whitelist(ADMIN, ALICE)
    ledger.enroll(ADMIN, BOB)

    section_header("Pre-Sale Roster")
    for entry in ledger.state.pre_sale_participants:
        print(f"  {entry.address!r}  whitelisted={entry.is_whitelisted}  price={entry.token_price}")
    return ledger


def step_05_pre_sale_purchase(ledger: IcoLedger):
    step_header(5, "A Pre-Sale Purchase",
        "The buyer attaches exactly amount * pre_sale_price lamports.")

    amount = CONFIG.alice_pre_sale_tokens
    ledger.fund(ALICE, amount * CONFIG.pre_sale_price)
    print(f">>> ledger.buy_presale(ALICE, {amount})")
    ledger.buy_presale(ALICE, amount)

    section_header("Balances")
    show_balances(ledger)
    return ledger


# ============================================================================
# REJECTIONS (Step 6)
# ============================================================================

def step_06_rejections(ledger: IcoLedger):
    step_header(6, "Rejections Change Nothing",
        "Wrong payment, missing whitelist, closed window: slot and lamports stay put.")

    before = bytes(ledger.state_account.data)

    ledger.fund(BOB, 250)
    print(">>> ledger.buy_presale(BOB, 3)   # bob is enrolled but not whitelisted")
    ledger.buy_presale(BOB, 3)

    print(">>> ledger.buy_sale(BOB, 1)      # public sale not open yet")
    ledger.buy_sale(BOB, 1)

    unchanged = bytes(ledger.state_account.data) == before
    print(f"\nSlot unchanged: {unchanged}; bob still holds {ledger.get_lamports(BOB)} lamports")
    return ledger


# ============================================================================
# PUBLIC SALE (Step 7)
# ============================================================================

def step_07_public_sale(ledger: IcoLedger):
    step_header(7, "The Public Sale",
        "Anyone may buy while sale_start_time <= now < sale_end_time.")

    ledger.advance_time(CONFIG.sale_start_time)
    amount = CONFIG.bob_sale_tokens
    ledger.fund(BOB, amount * CONFIG.sale_price - ledger.get_lamports(BOB))
    print(f">>> ledger.buy_sale(BOB, {amount})")
    ledger.buy_sale(BOB, amount)

    ledger.advance_time(CONFIG.sale_end_time)
    ledger.fund(BOB, CONFIG.sale_price)
    print(">>> ledger.buy_sale(BOB, 1)   # at sale_end_time: closed")
    ledger.buy_sale(BOB, 1)

    section_header("Balances")
    show_balances(ledger)
    return ledger


# ============================================================================
# PROOF (Step 8)
# ============================================================================

def step_08_conservation(ledger: IcoLedger):
    step_header(8, "Conservation Proof",
        "Tokens sum to the supply; every lamport was funded and none vanished.")

    report = ledger.verify_conservation()
    for key in ('total_supply', 'sum_balances', 'lamports_issued', 'lamports', 'valid'):
        print(f"  {key:16} {report[key]}")

    section_header("Audit Log")
    for receipt in ledger.transaction_log:
        mark = "✓" if receipt.result == ExecuteResult.APPLIED else "✗"
        print(f"  #{receipt.sequence:<3} t={receipt.time:<5} {mark} {receipt.error or ''}")
    return ledger


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       TOKEN SALE LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    ledger = step_01_empty_slot()
    for step in (
        step_02_initialize,
        step_03_second_initialize,
        step_04_whitelist,
        step_05_pre_sale_purchase,
        step_06_rejections,
        step_07_public_sale,
        step_08_conservation,
    ):
        wait_for_enter()
        ledger = step(ledger)

    print(f"\n{'='*70}")
    print("TUTORIAL COMPLETE")
    print(f"{'='*70}")
    return ledger


if __name__ == "__main__":
    main()
