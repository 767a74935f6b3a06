"""
tokensale - Phased Token Sale Engine

A fixed token allocation sold in successive phases, each with its own
discount, expiry and supply cap, settled on a double-entry ledger.

Usage:
    from datetime import timedelta
    from tokensale import (
        Ledger, cash, sale_token, LedgerToken, LedgerCurrency, LedgerClock,
        SaleEngine, SaleTerms,
    )

    ledger = Ledger("main", verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))
    ledger.register_unit(sale_token("SPACE", "Spacelens"))

    token = LedgerToken(ledger, "SPACE", operator="sale")
    currency = LedgerCurrency(ledger, "ETH")
    token.mint("owner", 10_000)
    token.approve("owner", "sale", 10_000)
    currency.issue("alice", 100)

    terms = SaleTerms(max_supply=10_000, base_price=5, min_purchase=2,
                      administrator="owner", beneficiary="owner")
    engine = SaleEngine(terms, token, currency, LedgerClock(ledger))
    engine.create_phase("owner", 505, ledger.current_time + timedelta(hours=1), 1_000)
    engine.buy("alice", 400, "alice", payment=40)
"""

# Core types
from .core import (
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    InsufficientFunds,
    UnitNotRegistered,
    WalletNotRegistered,
    AllowanceExceeded,
    SaleError,
    Unauthorized,
    InvalidDiscount,
    InvalidEndTime,
    InsufficientUnallocatedSupply,
    BelowMinimumPurchase,
    SaleClosed,
    InsufficientPayment,
    InsufficientPhaseSupply,
    LedgerTransferFailed,
    CurrencyTransferFailed,
    ListenerError,
    cash,
    sale_token,
    SYSTEM_WALLET,
    SALE_ESCROW_WALLET,
    UNIT_TYPE_CASH,
    UNIT_TYPE_TOKEN,
)

# Ledger
from .ledger import Ledger

# Time
from .clock import Clock, SystemClock, ManualClock, LedgerClock

# Collaborators
from .settlement import (
    TokenLedger,
    CurrencyTransfer,
    Transactional,
    LedgerToken,
    LedgerCurrency,
)

# Pricing
from .pricing import (
    DISCOUNT_SCALE,
    MAX_DISCOUNT_BPS,
    ceil_div,
    effective_rate,
    cost_for,
    cost_due,
)

# Phases
from .phases import (
    Phase,
    PhaseSnapshot,
    Resolution,
    validate_new_phase,
    resolve_phases,
    apply_purchase,
    next_unsold_index,
)

# Events
from .events import CloseReason, PhaseCreated, PhaseClosed, Purchased, SaleEvent

# Engine
from .engine import SaleEngine, SaleTerms, ExcessPolicy, ReadResolution

__all__ = [
    # Core
    'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction', 'Unit', 'UnitStateChange', 'ExecuteResult',
    'cash', 'sale_token',
    'SYSTEM_WALLET', 'SALE_ESCROW_WALLET', 'UNIT_TYPE_CASH', 'UNIT_TYPE_TOKEN',
    # Ledger errors
    'LedgerError', 'InsufficientFunds',
    'UnitNotRegistered', 'WalletNotRegistered', 'AllowanceExceeded',
    # Sale errors
    'SaleError', 'Unauthorized', 'InvalidDiscount', 'InvalidEndTime',
    'InsufficientUnallocatedSupply', 'BelowMinimumPurchase', 'SaleClosed',
    'InsufficientPayment', 'InsufficientPhaseSupply',
    'LedgerTransferFailed', 'CurrencyTransferFailed', 'ListenerError',
    # Ledger
    'Ledger',
    # Time
    'Clock', 'SystemClock', 'ManualClock', 'LedgerClock',
    # Collaborators
    'TokenLedger', 'CurrencyTransfer', 'Transactional', 'LedgerToken', 'LedgerCurrency',
    # Pricing
    'DISCOUNT_SCALE', 'MAX_DISCOUNT_BPS', 'ceil_div', 'effective_rate', 'cost_for', 'cost_due',
    # Phases
    'Phase', 'PhaseSnapshot', 'Resolution', 'validate_new_phase', 'resolve_phases',
    'apply_purchase', 'next_unsold_index',
    # Events
    'CloseReason', 'PhaseCreated', 'PhaseClosed', 'Purchased', 'SaleEvent',
    # Engine
    'SaleEngine', 'SaleTerms', 'ExcessPolicy', 'ReadResolution',
]

__version__ = '1.0.0'
