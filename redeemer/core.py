"""
Core types and pure functions for the asset migration ledger.

This module provides the foundational data structures and protocols:
1. Protocols: AssetLedgerView, the contract of the external asset ledger
2. Immutable data structures: InitializeParams, ConfigurationRecord, AllocationPlan
3. Exceptions: MigrationError and its typed failure kinds
4. Deterministic derivation of the mint authority and record address
5. Allocation planning for the fixed, cap-exempt disbursements

All functions in this module are pure. Records are never mutated in place;
every state transition produces a new ConfigurationRecord via replace().
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict, replace
import hashlib
from typing import (
    Dict, Optional, Any, Protocol, ContextManager, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Identity of this migration program. Derived identities are namespaced by it,
# so two programs never derive the same authority for the same asset.
PROGRAM_ID = "zcoin-redeemer"

# Derivation seeds
MINT_AUTH_SEED = "mint_auth"
CONFIG_SEED = "config"

# Persisted record layout version. Bump when fields are added.
SCHEMA_VERSION = 1

# Native integer widths of the asset ledger.
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1

# Largest decimal scale whose power of ten fits in u128.
MAX_DECIMALS = 38

# Default supply split (basis points of total_cap).
BPS_DENOMINATOR = 10_000
DEFAULT_MIGRATION_BPS = 6_000
DEFAULT_TREASURY_BPS = 2_000
DEFAULT_LIQUIDITY_BPS = 1_000


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identity of a principal (admin, holder, derived authority).
Identity = str

# Identifier of an asset definition (a mint).
AssetId = str

# Identifier of a holder's account for one asset.
AccountId = str


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MigrationError(Exception):
    """
    Base exception for all migration failures.

    Every failure aborts the whole transition. `code` carries the stable
    error name used by audit and indexing consumers.
    """
    code = "MigrationError"
    message = "Migration failure"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        text = self.message if detail is None else f"{self.message}: {detail}"
        super().__init__(text)


# Configuration errors: detected at bootstrap, no record is persisted.

class ConfigurationError(MigrationError):
    """Bootstrap parameters or asset wiring are invalid."""
    code = "ConfigurationError"


class InvalidRatio(ConfigurationError):
    code = "InvalidRatio"
    message = "Invalid ratio"


class InvalidCap(ConfigurationError):
    code = "InvalidCap"
    message = "Invalid cap config"


class BadAllocationMath(ConfigurationError):
    code = "BadAllocationMath"
    message = "Invalid allocation math"


class WrongMintAuthority(ConfigurationError):
    code = "WrongMintAuthority"
    message = "New asset mint authority isn't the derived program authority"


class WrongFreezeAuthority(ConfigurationError):
    code = "WrongFreezeAuthority"
    message = "Freeze authority isn't the admin key"


class AlreadyInitialized(ConfigurationError):
    code = "AlreadyInitialized"
    message = "Migration already initialized for this asset"


# Authorization errors: caller is not the required principal.

class AuthorizationError(MigrationError):
    """Caller identity does not match the required principal."""
    code = "AuthorizationError"


class NotAdmin(AuthorizationError):
    code = "NotAdmin"
    message = "Caller is not admin"


class WrongOwner(AuthorizationError):
    code = "WrongOwner"
    message = "Wrong owner for token account"


# Binding errors: supplied references do not match the record.

class BindingError(MigrationError):
    """Supplied asset or account references do not match the record."""
    code = "BindingError"


class WrongMint(BindingError):
    code = "WrongMint"
    message = "Wrong mint provided"


class RecordNotFound(BindingError):
    code = "RecordNotFound"
    message = "No migration configured for this asset"


# Temporal/state errors: transition not currently permitted.

class StateError(MigrationError):
    """The transition is not permitted in the record's current state."""
    code = "StateError"


class MigrationPaused(StateError):
    code = "Paused"
    message = "Program is paused"


class OutsideWindow(StateError):
    code = "OutsideWindow"
    message = "Outside migration window"


class AlreadyFinalized(StateError):
    code = "AlreadyFinalized"
    message = "Already finalized"


class TooEarly(StateError):
    code = "TooEarly"
    message = "Finalize called too early"


# Arithmetic errors: computed result is unsafe or unacceptable.

class ComputationError(MigrationError):
    """A computed amount is unsafe or unacceptable."""
    code = "ComputationError"


class MathOverflow(ComputationError):
    code = "MathOverflow"
    message = "Math overflow"


class DustTooSmall(ComputationError):
    code = "DustTooSmall"
    message = "Dust too small after conversion"


class Slippage(ComputationError):
    code = "Slippage"
    message = "Minimum out not satisfied"


class CapExceeded(ComputationError):
    code = "CapExceeded"
    message = "Migration cap exceeded"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class AssetLedgerView(Protocol):
    """
    Interface of the external asset ledger consumed by the migration program.

    The program never moves balances itself. It orchestrates these primitives
    under its own invariants. Every primitive is synchronous and either fully
    succeeds or raises. atomic() groups several primitives into one
    all-or-nothing unit: if the block raises, every primitive called inside it
    is rolled back.
    """

    @property
    def current_time(self) -> int:
        """Trusted logical clock, unix seconds."""
        ...

    def read_asset_decimals(self, asset_id: AssetId) -> int:
        ...

    def read_mint_authority(self, asset_id: AssetId) -> Optional[Identity]:
        ...

    def read_freeze_authority(self, asset_id: AssetId) -> Optional[Identity]:
        ...

    def read_account(self, account_id: AccountId) -> Any:
        """Return an account record exposing .asset_id, .owner and .balance."""
        ...

    def burn(self, asset_id: AssetId, from_account: AccountId, amount: int,
             authorizing_identity: Identity) -> None:
        ...

    def mint(self, asset_id: AssetId, to_account: AccountId, amount: int,
             authorizing_identity: Identity) -> None:
        ...

    def revoke_mint_authority(self, asset_id: AssetId,
                              authorizing_identity: Identity) -> None:
        ...

    def atomic(self) -> ContextManager[Any]:
        ...


# ============================================================================
# DETERMINISTIC DERIVATION
# ============================================================================

def _derive(seed: str, asset_id: AssetId, program_id: str) -> str:
    content = f"{seed}|{program_id}|{asset_id}"
    return hashlib.sha256(content.encode()).hexdigest()[:32]


def derive_authority(asset_id: AssetId, program_id: str = PROGRAM_ID) -> Identity:
    """
    Derive the identity that signs mint and revoke operations for an asset.

    Pure function of (program_id, asset_id). Never stored; recomputed on demand.
    """
    return f"auth:{_derive(MINT_AUTH_SEED, asset_id, program_id)}"


def derive_record_address(asset_id: AssetId, program_id: str = PROGRAM_ID) -> str:
    """Derive the storage address of the configuration record for an asset."""
    return f"cfg:{_derive(CONFIG_SEED, asset_id, program_id)}"


# ============================================================================
# RANGE HELPERS
# ============================================================================

def _require_int(name: str, value: Any, lo: int, hi: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an int, got {type(value).__name__}")
    if value < lo or value > hi:
        raise ValueError(f"{name} must be in [{lo}, {hi}], got {value}")


def _require_id(name: str, value: Any) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} cannot be empty")


# ============================================================================
# BOOTSTRAP PARAMETERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class InitializeParams:
    """
    Caller-supplied bootstrap parameters.

    Decimals are deliberately absent: they are read from each asset's own
    definition at bootstrap.

    Attributes:
        admin: Identity allowed to pause, move the window and finalize.
        ratio_numerator: Old->new rate numerator (e.g. 1).
        ratio_denominator: Old->new rate denominator (e.g. 10 for 10 old : 1 new).
        total_cap: Total new-asset supply in base units.
        migration_cap: Portion of total_cap issuable through redemption.
        treasury_amount: Fixed allocation to the treasury account.
        liquidity_amount: Fixed allocation to the liquidity account.
        contributors_amount: Fixed allocation to the contributors account.
        start_ts: Window open (inclusive), unix seconds.
        end_ts: Window close (inclusive), unix seconds.
    """
    admin: Identity
    ratio_numerator: int
    ratio_denominator: int
    total_cap: int
    migration_cap: int
    treasury_amount: int
    liquidity_amount: int
    contributors_amount: int
    start_ts: int
    end_ts: int

    def __post_init__(self):
        _require_id("admin", self.admin)
        for name in ("ratio_numerator", "ratio_denominator", "total_cap",
                     "migration_cap", "treasury_amount", "liquidity_amount",
                     "contributors_amount"):
            _require_int(name, getattr(self, name), 0, U64_MAX)
        _require_int("start_ts", self.start_ts, I64_MIN, I64_MAX)
        _require_int("end_ts", self.end_ts, I64_MIN, I64_MAX)

    @property
    def fixed_allocations(self) -> int:
        """Sum of the three fixed allocations (exact, no overflow in Python)."""
        return self.treasury_amount + self.liquidity_amount + self.contributors_amount


@dataclass(frozen=True, slots=True)
class AllocationPlan:
    """An exact partition of total_cap into the migration pool and fixed allocations."""
    total_cap: int
    migration_cap: int
    treasury_amount: int
    liquidity_amount: int
    contributors_amount: int


def plan_allocations(
    total_cap: int,
    migration_bps: int = DEFAULT_MIGRATION_BPS,
    treasury_bps: int = DEFAULT_TREASURY_BPS,
    liquidity_bps: int = DEFAULT_LIQUIDITY_BPS,
) -> AllocationPlan:
    """
    Split total_cap into migration pool and fixed allocations.

    Each share is floor(total_cap * bps / 10_000); contributors receive
    whatever remains, so the plan always satisfies
    treasury + liquidity + contributors == total_cap - migration_cap.

    Example:
        plan = plan_allocations(100_000_000 * 10**9)
        # 60% migration, 20% treasury, 10% liquidity, 10% contributors
    """
    _require_int("total_cap", total_cap, 0, U64_MAX)
    for name, bps in (("migration_bps", migration_bps),
                      ("treasury_bps", treasury_bps),
                      ("liquidity_bps", liquidity_bps)):
        _require_int(name, bps, 0, BPS_DENOMINATOR)
    if migration_bps + treasury_bps + liquidity_bps > BPS_DENOMINATOR:
        raise ValueError("allocation basis points exceed 100%")

    migration_cap = total_cap * migration_bps // BPS_DENOMINATOR
    treasury = total_cap * treasury_bps // BPS_DENOMINATOR
    liquidity = total_cap * liquidity_bps // BPS_DENOMINATOR
    contributors = total_cap - migration_cap - treasury - liquidity
    return AllocationPlan(
        total_cap=total_cap,
        migration_cap=migration_cap,
        treasury_amount=treasury,
        liquidity_amount=liquidity,
        contributors_amount=contributors,
    )


# ============================================================================
# CONFIGURATION RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class ConfigurationRecord:
    """
    The single source of truth for one migration, keyed by new_asset_id.

    Attributes:
        admin: Identity authorized for admin operations. Immutable.
        old_asset_id: Asset redeemed (burned). Immutable.
        new_asset_id: Asset issued (minted). Immutable; also the record key.
        ratio_numerator: Exchange rate numerator. Immutable.
        ratio_denominator: Exchange rate denominator, > 0. Immutable.
        old_decimals: Read from the old asset definition at bootstrap.
        new_decimals: Read from the new asset definition at bootstrap.
        total_cap: Total new-asset supply (base units).
        migration_cap: Redemption-issuable portion, <= total_cap.
        migration_minted: Running total minted via redeem, <= migration_cap.
        paused: Blocks redemption when True.
        start_ts: Window open, inclusive.
        end_ts: Window close, inclusive.
        finalized: One-way latch; minting authority has been revoked.
        schema_version: Layout version of the persisted form.
    """
    admin: Identity
    old_asset_id: AssetId
    new_asset_id: AssetId
    ratio_numerator: int
    ratio_denominator: int
    old_decimals: int
    new_decimals: int
    total_cap: int
    migration_cap: int
    migration_minted: int = 0
    paused: bool = False
    start_ts: int = 0
    end_ts: int = 0
    finalized: bool = False
    schema_version: int = field(default=SCHEMA_VERSION)

    @property
    def remaining_capacity(self) -> int:
        """
        New-asset units still issuable through redemption.

        Raises:
            CapExceeded: If migration_minted already exceeds migration_cap.
        """
        remaining = self.migration_cap - self.migration_minted
        if remaining < 0:
            raise CapExceeded(
                f"minted {self.migration_minted} exceeds cap {self.migration_cap}"
            )
        return remaining

    def window_contains(self, now: int) -> bool:
        """True when start_ts <= now <= end_ts (both bounds inclusive)."""
        return self.start_ts <= now <= self.end_ts

    def with_minted(self, amount_new: int) -> ConfigurationRecord:
        """
        Return a copy with migration_minted increased by amount_new.

        Raises:
            MathOverflow: If the counter would leave the u64 range.
        """
        minted = self.migration_minted + amount_new
        if minted > U64_MAX:
            raise MathOverflow("migration_minted exceeds u64")
        return replace(self, migration_minted=minted)

    def check_invariants(self) -> None:
        """
        Verify the persisted numbers are self-consistent.

        Raises:
            InvalidRatio: If ratio_denominator is zero.
            InvalidCap: If migration_cap exceeds total_cap.
            CapExceeded: If migration_minted exceeds migration_cap.
        """
        if self.ratio_denominator == 0:
            raise InvalidRatio("ratio_denominator == 0")
        if self.migration_cap > self.total_cap:
            raise InvalidCap(f"migration_cap {self.migration_cap} > total_cap {self.total_cap}")
        if self.migration_minted > self.migration_cap:
            raise CapExceeded(
                f"migration_minted {self.migration_minted} > migration_cap {self.migration_cap}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dict (the persisted layout)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ConfigurationRecord:
        """
        Load a record from its persisted layout.

        Raises:
            ValueError: If the schema version is unknown or fields are missing.
            InvalidRatio, InvalidCap, CapExceeded: If the loaded record
                violates its invariants.
        """
        version = data.get("schema_version")
        if version != SCHEMA_VERSION:
            raise ValueError(f"Unsupported record schema_version: {version!r}")
        try:
            record = cls(**data)
        except TypeError as e:
            raise ValueError(f"Malformed configuration record: {e}") from e
        record.check_invariants()
        return record

    def __repr__(self) -> str:
        return (
            f"ConfigurationRecord({self.old_asset_id}->{self.new_asset_id}, "
            f"ratio={self.ratio_numerator}/{self.ratio_denominator}, "
            f"minted={self.migration_minted}/{self.migration_cap}, "
            f"window=[{self.start_ts}, {self.end_ts}], "
            f"paused={self.paused}, finalized={self.finalized})"
        )
