"""
redeemer - Capped, Time-Windowed Asset Migration Ledger

Holders exchange an old asset for a new one at a fixed ratio, bounded by a
migration cap and an open/close window, under an admin pause switch and a
one-way finalization that revokes minting of the new asset.

Usage:
    from redeemer import (
        AssetLedger, MigrationProgram, InitializeParams, plan_allocations,
        derive_authority,
    )

    ledger = AssetLedger("devnet", initial_time=1_700_000_000)
    ledger.register_asset("OLD", decimals=6)
    ledger.register_asset("NEW", decimals=9,
                          mint_authority=derive_authority("NEW"),
                          freeze_authority="gov")
    for account, owner in [("treasury", "dao"), ("liquidity", "dao"), ("contributors", "dao")]:
        ledger.open_account(account, "NEW", owner)

    plan = plan_allocations(100_000_000 * 10**9)
    program = MigrationProgram(ledger)
    program.initialize(InitializeParams(
        admin="gov", ratio_numerator=1, ratio_denominator=10,
        total_cap=plan.total_cap, migration_cap=plan.migration_cap,
        treasury_amount=plan.treasury_amount,
        liquidity_amount=plan.liquidity_amount,
        contributors_amount=plan.contributors_amount,
        start_ts=1_700_000_000, end_ts=1_715_552_000,
    ), "OLD", "NEW", "treasury", "liquidity", "contributors")

    # Holder redeems 10 OLD for 1 NEW
    ledger.open_account("alice_old", "OLD", "alice")
    ledger.open_account("alice_new", "NEW", "alice")
    program.redeem("alice", "OLD", "NEW", "alice_old", "alice_new",
                   amount_old=10_000_000, min_new_out=1)
"""

# Core types
from .core import (
    AssetLedgerView,
    InitializeParams,
    ConfigurationRecord,
    AllocationPlan,
    plan_allocations,
    derive_authority,
    derive_record_address,
    MigrationError,
    ConfigurationError,
    AuthorizationError,
    BindingError,
    StateError,
    ComputationError,
    InvalidRatio,
    InvalidCap,
    BadAllocationMath,
    WrongMintAuthority,
    WrongFreezeAuthority,
    AlreadyInitialized,
    NotAdmin,
    WrongOwner,
    WrongMint,
    RecordNotFound,
    MigrationPaused,
    OutsideWindow,
    AlreadyFinalized,
    TooEarly,
    MathOverflow,
    DustTooSmall,
    Slippage,
    CapExceeded,
    PROGRAM_ID,
    SCHEMA_VERSION,
    U64_MAX,
    U128_MAX,
)

# Fixed-point conversion
from .converter import (
    convert_amount,
    quote,
    pow10,
    to_ui_amount,
)

# Asset ledger
from .asset_ledger import (
    AssetLedger,
    Asset,
    TokenAccount,
    Operation,
    AssetLedgerError,
    AssetNotRegistered,
    AccountNotRegistered,
    InsufficientFunds,
    AuthorityMismatch,
    AccountFrozen,
    SupplyOverflow,
)

# Events
from .events import (
    EventLog,
    EventRecord,
    Initialized,
    Redeemed,
    Paused,
    WindowUpdated,
    WindowInverted,
    Finalized,
)

# Program
from .program import MigrationProgram

# Reporting
from .reporting import (
    MigrationPhase,
    MigrationStatus,
    MigrationStats,
    get_status,
    compute_stats,
    audit_migration,
    format_status,
)

__all__ = [
    # Core
    'AssetLedgerView', 'InitializeParams', 'ConfigurationRecord', 'AllocationPlan',
    'plan_allocations', 'derive_authority', 'derive_record_address',
    'PROGRAM_ID', 'SCHEMA_VERSION', 'U64_MAX', 'U128_MAX',
    # Errors
    'MigrationError', 'ConfigurationError', 'AuthorizationError', 'BindingError',
    'StateError', 'ComputationError',
    'InvalidRatio', 'InvalidCap', 'BadAllocationMath', 'WrongMintAuthority',
    'WrongFreezeAuthority', 'AlreadyInitialized', 'NotAdmin', 'WrongOwner',
    'WrongMint', 'RecordNotFound', 'MigrationPaused', 'OutsideWindow',
    'AlreadyFinalized', 'TooEarly', 'MathOverflow', 'DustTooSmall', 'Slippage',
    'CapExceeded',
    # Conversion
    'convert_amount', 'quote', 'pow10', 'to_ui_amount',
    # Asset ledger
    'AssetLedger', 'Asset', 'TokenAccount', 'Operation',
    'AssetLedgerError', 'AssetNotRegistered', 'AccountNotRegistered',
    'InsufficientFunds', 'AuthorityMismatch', 'AccountFrozen', 'SupplyOverflow',
    # Events
    'EventLog', 'EventRecord', 'Initialized', 'Redeemed', 'Paused',
    'WindowUpdated', 'WindowInverted', 'Finalized',
    # Program
    'MigrationProgram',
    # Reporting
    'MigrationPhase', 'MigrationStatus', 'MigrationStats',
    'get_status', 'compute_stats', 'audit_migration', 'format_status',
]

__version__ = '1.0.0'
