"""
operations.py - The state transitions of the sale program

One function per operation, all with the same shape:

    handler(state, ctx, op) -> Optional[PaymentDue]

Every handler validates its preconditions in a fixed order (first failure
wins) and mutates the state it is given. machine.apply() only ever passes a
staged clone, so a handler that raises halfway leaves nothing behind.

Purchases return a PaymentDue describing the lamports to collect from the
buyer; apply() performs that debit before committing the staged state.

Balance-entry policy: crediting an identity finds or creates its entry
(mint recipients and buyers alike); debiting requires an existing entry
holding enough tokens.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .config import SaleConfig
from .core import (
    LedgerState, Pubkey, PreSaleEntry, SaleEntry,
    U64_MAX,
    Unauthorized, InvalidOperation, NotWhitelisted, PaymentMismatch,
    WindowClosed, NotFound, AlreadyInitialized, LimitExceeded,
    InsufficientFunds, ArithmeticOverflow,
)
from .instructions import (
    CallerContext, Initialize, Mint, PreSalePurchase, SalePurchase,
    ToggleWhitelist, EnrollPreSale,
)


@dataclass(frozen=True, slots=True)
class PaymentDue:
    """Lamports a purchase must collect from the payer's payable balance."""
    payer: Pubkey
    lamports: int


# ============================================================================
# HELPERS
# ============================================================================

def _checked_add(a: int, b: int, what: str) -> int:
    total = a + b
    if total > U64_MAX:
        raise ArithmeticOverflow(f"{what} overflows u64: {a} + {b}")
    return total


def _checked_mul(a: int, b: int, what: str) -> int:
    product = a * b
    if product > U64_MAX:
        raise ArithmeticOverflow(f"{what} overflows u64: {a} * {b}")
    return product


def _credit(state: LedgerState, identity: Pubkey, amount: int) -> None:
    """Add amount to identity's balance, creating the entry on first credit."""
    current = state.balances.get(identity, 0)
    state.balances[identity] = _checked_add(current, amount, "balance")


def _debit(state: LedgerState, identity: Pubkey, amount: int) -> None:
    if identity not in state.balances:
        raise NotFound(f"no balance entry for {identity}")
    current = state.balances[identity]
    if current < amount:
        raise InsufficientFunds(f"{identity} holds {current} tokens, needs {amount}")
    state.balances[identity] = current - amount


def _require_admin(state: LedgerState, ctx: CallerContext, action: str) -> None:
    if not state.is_initialized:
        raise Unauthorized(f"{action}: sale is not initialized")
    if not ctx.is_signer or ctx.caller != state.admin:
        raise Unauthorized(f"{action}: caller {ctx.caller} is not the admin")


def _require_buyer(ctx: CallerContext, buyer: Pubkey) -> None:
    if not ctx.is_signer or ctx.caller != buyer:
        raise Unauthorized(f"purchase for {buyer} must be signed by the buyer")


def _require_amount(amount: int) -> None:
    if amount == 0:
        raise InvalidOperation("amount must be positive")


def _transfer_from_admin(state: LedgerState, buyer: Pubkey, amount: int) -> None:
    # Debit first: a missing or short admin entry must fail before any credit.
    _debit(state, state.admin, amount)
    _credit(state, buyer, amount)


# ============================================================================
# OPERATIONS
# ============================================================================

def initialize(state: LedgerState, ctx: CallerContext, op: Initialize) -> None:
    """
    Bootstrap the sale: the caller becomes admin and receives the whole supply.

    Authorization: the caller must have signed and, when the host names a
    deployer, must be that deployer. A state can be initialized once.

    Raises:
        Unauthorized: Unsigned call, or caller is not the configured deployer
        AlreadyInitialized: total_supply is already set
    """
    if not ctx.is_signer:
        raise Unauthorized("initialize must be signed")
    if ctx.deployer is not None and ctx.caller != ctx.deployer:
        raise Unauthorized(f"caller {ctx.caller} is not the deployer")
    if state.is_initialized:
        raise AlreadyInitialized(f"sale already initialized by {state.admin}")

    config = op.config or SaleConfig()
    state.admin = ctx.caller
    state.total_supply = config.total_supply
    state.pre_sale_price = config.pre_sale_price
    state.pre_sale_limit = config.pre_sale_limit
    state.sale_price = config.sale_price
    state.sale_limit = config.sale_limit
    state.sale_start_time = config.sale_start_time
    state.sale_end_time = config.sale_end_time
    _credit(state, ctx.caller, config.total_supply)


def mint(state: LedgerState, ctx: CallerContext, op: Mint) -> None:
    """
    Hand out amount tokens from the admin's allocation to a recipient.

    Supply is fixed at initialization, so minting moves tokens rather than
    creating them and the conservation law keeps holding.

    Raises:
        Unauthorized: Caller is not the admin
        InvalidOperation: amount is 0
        NotFound: Admin has no balance entry
        InsufficientFunds: Admin holds fewer than amount tokens
    """
    _require_admin(state, ctx, "mint")
    _require_amount(op.amount)
    _transfer_from_admin(state, op.recipient, op.amount)


def toggle_whitelist(state: LedgerState, ctx: CallerContext, op: ToggleWhitelist) -> None:
    """Flip is_whitelisted on the target's pre-sale roster entry."""
    _require_admin(state, ctx, "toggle whitelist")
    entry = state.find_pre_sale_entry(op.target)
    if entry is None:
        raise NotFound(f"{op.target} is not enrolled for the pre-sale")
    entry.toggle_whitelist()


def enroll_pre_sale(state: LedgerState, ctx: CallerContext, op: EnrollPreSale) -> None:
    """Put the target on the pre-sale roster (not whitelisted). Re-enrolling is a no-op."""
    _require_admin(state, ctx, "enroll")
    if state.find_pre_sale_entry(op.target) is not None:
        return
    state.pre_sale_participants.append(PreSaleEntry(
        address=op.target,
        token_amount=0,
        token_price=state.pre_sale_price,
        is_whitelisted=False,
    ))


def pre_sale_purchase(
    state: LedgerState,
    ctx: CallerContext,
    op: PreSalePurchase,
) -> PaymentDue:
    """
    Buy tokens in the whitelisted pre-sale.

    Checks, in order:
    1. Time is strictly before sale_start_time (WindowClosed)
    2. Buyer's roster entry exists and is whitelisted (NotWhitelisted)
    3. Payment equals amount * pre_sale_price (PaymentMismatch)
    4. Buyer's cumulative pre-sale amount stays within pre_sale_limit (LimitExceeded)
    5. Admin holds amount tokens (NotFound / InsufficientFunds)

    Raises:
        Unauthorized: Call not signed by the buyer
        InvalidOperation: amount is 0 inside the window
    """
    _require_buyer(ctx, op.buyer)
    if not ctx.now < state.sale_start_time:
        raise WindowClosed(
            f"pre-sale closed at {state.sale_start_time}, now {ctx.now}"
        )
    _require_amount(op.amount)

    entry = state.find_pre_sale_entry(op.buyer)
    if entry is None or not entry.is_whitelisted:
        raise NotWhitelisted(f"{op.buyer} is not whitelisted for the pre-sale")

    cost = _checked_mul(op.amount, state.pre_sale_price, "pre-sale cost")
    if op.payment != cost:
        raise PaymentMismatch(f"payment {op.payment} != cost {cost}")

    bought = entry.token_amount + op.amount
    if bought > state.pre_sale_limit:
        raise LimitExceeded(
            f"{op.buyer} would hold {bought} pre-sale tokens, limit {state.pre_sale_limit}"
        )

    entry.token_amount = bought
    _transfer_from_admin(state, op.buyer, op.amount)
    state.total_price_earned = _checked_add(state.total_price_earned, cost, "total_price_earned")
    return PaymentDue(payer=op.buyer, lamports=cost)


def sale_purchase(
    state: LedgerState,
    ctx: CallerContext,
    op: SalePurchase,
) -> PaymentDue:
    """
    Buy tokens in the public sale.

    The window is the closed-open interval [sale_start_time, sale_end_time).
    A window whose start is not before its end is closed at every time.
    The buyer's SaleEntry is appended on the first purchase, recording the
    price in force at that moment.
    """
    _require_buyer(ctx, op.buyer)
    if state.sale_start_time >= state.sale_end_time:
        raise WindowClosed(
            f"sale window misconfigured: start {state.sale_start_time} >= end {state.sale_end_time}"
        )
    if not state.sale_start_time <= ctx.now < state.sale_end_time:
        raise WindowClosed(
            f"sale open in [{state.sale_start_time}, {state.sale_end_time}), now {ctx.now}"
        )
    _require_amount(op.amount)

    cost = _checked_mul(op.amount, state.sale_price, "sale cost")
    if op.payment != cost:
        raise PaymentMismatch(f"payment {op.payment} != cost {cost}")

    entry = state.find_sale_entry(op.buyer)
    bought = (entry.token_amount if entry else 0) + op.amount
    if bought > state.sale_limit:
        raise LimitExceeded(
            f"{op.buyer} would hold {bought} sale tokens, limit {state.sale_limit}"
        )

    if entry is None:
        entry = SaleEntry(address=op.buyer, token_amount=0, token_price=state.sale_price)
        state.sale_participants.append(entry)
    entry.token_amount = bought
    _transfer_from_admin(state, op.buyer, op.amount)
    state.total_price_earned = _checked_add(state.total_price_earned, cost, "total_price_earned")
    return PaymentDue(payer=op.buyer, lamports=cost)


# ============================================================================
# HANDLER REGISTRY
# ============================================================================

Handler = Callable[[LedgerState, CallerContext, object], Optional[PaymentDue]]

# Map operation types to their handler functions
HANDLERS: Dict[type, Handler] = {
    Initialize: initialize,
    Mint: mint,
    PreSalePurchase: pre_sale_purchase,
    SalePurchase: sale_purchase,
    ToggleWhitelist: toggle_whitelist,
    EnrollPreSale: enroll_pre_sale,
}
