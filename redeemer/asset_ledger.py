"""
asset_ledger.py - In-Memory Asset Ledger

Reference implementation of the external asset ledger that the migration
program orchestrates. It owns asset definitions (decimals, supply, mint and
freeze authorities) and holder accounts, and provides the burn / mint /
revoke primitives behind the AssetLedgerView protocol.

Key responsibilities:
    - Implements AssetLedgerView for the migration program
    - Validates every primitive before applying it (authority, balance, freeze, supply width)
    - Groups primitives into all-or-nothing units with atomic()
    - Tracks a logical clock (unix seconds) that only moves forward
    - Always logs - every applied primitive lands in operation_log
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Any
import threading

from .core import (
    AccountId, AssetId, Identity,
    U64_MAX, MAX_DECIMALS,
)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class AssetLedgerError(Exception):
    """Base exception for all asset ledger failures."""
    pass


class AssetNotRegistered(AssetLedgerError):
    """Raised when operating on an asset that has not been registered."""
    pass


class AccountNotRegistered(AssetLedgerError):
    """Raised when operating on an account that has not been opened."""
    pass


class InsufficientFunds(AssetLedgerError):
    """Raised when a burn exceeds the account balance."""
    pass


class AuthorityMismatch(AssetLedgerError):
    """Raised when the authorizing identity does not hold the required authority."""
    pass


class AccountFrozen(AssetLedgerError):
    """Raised when burning from or minting to a frozen account."""
    pass


class SupplyOverflow(AssetLedgerError):
    """Raised when a mint would push supply or a balance past u64."""
    pass


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    Definition of an asset (a mint).

    Attributes:
        asset_id: Unique identifier.
        decimals: Fractional digits represented by one base unit.
        supply: Total base units outstanding.
        mint_authority: Identity allowed to mint, or None once revoked.
        freeze_authority: Identity allowed to freeze accounts, or None.
    """
    asset_id: AssetId
    decimals: int
    supply: int = 0
    mint_authority: Optional[Identity] = None
    freeze_authority: Optional[Identity] = None


@dataclass(frozen=True, slots=True)
class TokenAccount:
    """A holder's balance of a single asset."""
    account_id: AccountId
    asset_id: AssetId
    owner: Identity
    balance: int = 0
    frozen: bool = False


@dataclass(frozen=True, slots=True)
class Operation:
    """
    Applied primitive, recorded in the audit trail.

    Attributes:
        sequence: Monotonic position within the ledger.
        timestamp: Ledger time when applied.
        kind: "mint", "burn", "set_authority", "revoke", "freeze" or "thaw".
        asset_id: Asset affected.
        account_id: Account affected (None for authority changes).
        amount: Base units moved (0 for non-balance operations).
        authority: Identity that authorized the primitive.
    """
    sequence: int
    timestamp: int
    kind: str
    asset_id: AssetId
    account_id: Optional[AccountId]
    amount: int
    authority: Optional[Identity]

    def __repr__(self) -> str:
        target = f" {self.account_id}" if self.account_id else ""
        return f"Op#{self.sequence}({self.kind} {self.amount} {self.asset_id}{target} by {self.authority})"


# ============================================================================
# LEDGER
# ============================================================================

class AssetLedger:
    """
    In-memory asset ledger with authority checks and atomic units.

    Implements the AssetLedgerView protocol.

    Design Principles:
        - Always validates: every primitive checks registration, authority,
          freeze state and width before touching state.
        - Always logs: every applied primitive is appended to operation_log.
        - atomic() snapshots state; if the block raises, the snapshot is
          restored and the exception propagates.

    Thread Safety:
        Every mutation, and every atomic() block, holds an internal RLock.
        Concurrent atomic units are serialized.

    Example:
        ledger = AssetLedger("devnet", initial_time=1_700_000_000)
        ledger.register_asset("OLD", decimals=6, mint_authority="issuer")
        ledger.open_account("alice_old", "OLD", owner="alice")
        ledger.mint("OLD", "alice_old", 5_000_000, "issuer")
        with ledger.atomic():
            ledger.burn("OLD", "alice_old", 1_000_000, "alice")
    """

    def __init__(
        self,
        name: str,
        initial_time: int = 0,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting logical time, unix seconds (default: 0)
            verbose: Print applied primitives (default: True)
        """
        self.name = name
        self.assets: Dict[AssetId, Asset] = {}
        self.accounts: Dict[AccountId, TokenAccount] = {}
        self.operation_log: List[Operation] = []
        self._current_time: int = initial_time
        self.verbose = verbose
        self._next_sequence: int = 0
        self._lock = threading.RLock()
        self._atomic_depth: int = 0

    # ========================================================================
    # AssetLedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> int:
        """Current logical time of the ledger, unix seconds."""
        return self._current_time

    def get_asset(self, asset_id: AssetId) -> Asset:
        """
        Return the asset definition.

        Raises:
            AssetNotRegistered: If the asset is unknown
        """
        if asset_id not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_id} not registered")
        return self.assets[asset_id]

    def read_asset_decimals(self, asset_id: AssetId) -> int:
        return self.get_asset(asset_id).decimals

    def read_mint_authority(self, asset_id: AssetId) -> Optional[Identity]:
        return self.get_asset(asset_id).mint_authority

    def read_freeze_authority(self, asset_id: AssetId) -> Optional[Identity]:
        return self.get_asset(asset_id).freeze_authority

    def read_account(self, account_id: AccountId) -> TokenAccount:
        """
        Return the account record.

        Raises:
            AccountNotRegistered: If the account is unknown
        """
        if account_id not in self.accounts:
            raise AccountNotRegistered(f"Account {account_id} not registered")
        return self.accounts[account_id]

    def get_balance(self, account_id: AccountId) -> int:
        """Balance of an account in base units."""
        return self.read_account(account_id).balance

    def total_supply(self, asset_id: AssetId) -> int:
        """Recorded supply of an asset in base units."""
        return self.get_asset(asset_id).supply

    def accounts_for(self, asset_id: AssetId) -> List[TokenAccount]:
        """All accounts holding an asset, sorted by account id."""
        return sorted(
            (a for a in self.accounts.values() if a.asset_id == asset_id),
            key=lambda a: a.account_id,
        )

    def verify_supply(self) -> Dict[str, Any]:
        """
        Verify that every asset's recorded supply equals the sum of its balances.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all assets balance
            - 'supplies': Dict[str, int] - Recorded supply per asset
            - 'discrepancies': List[Dict] - asset, recorded, summed, difference
        """
        supplies = {}
        discrepancies = []
        for asset_id in sorted(self.assets):
            recorded = self.assets[asset_id].supply
            summed = sum(a.balance for a in self.accounts_for(asset_id))
            supplies[asset_id] = recorded
            if recorded != summed:
                discrepancies.append({
                    'asset': asset_id,
                    'recorded': recorded,
                    'summed': summed,
                    'difference': recorded - summed,
                })
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Advance the ledger's logical clock.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_asset(
        self,
        asset_id: AssetId,
        decimals: int,
        mint_authority: Optional[Identity] = None,
        freeze_authority: Optional[Identity] = None,
    ) -> Asset:
        """
        Register a new asset definition with zero supply.

        Raises:
            ValueError: If the asset exists or decimals are out of range
        """
        if not asset_id or not asset_id.strip():
            raise ValueError("asset_id cannot be empty")
        if decimals < 0 or decimals > MAX_DECIMALS:
            raise ValueError(f"decimals must be in [0, {MAX_DECIMALS}], got {decimals}")
        with self._lock:
            if asset_id in self.assets:
                raise ValueError(f"Asset {asset_id} already registered")
            asset = Asset(
                asset_id=asset_id,
                decimals=decimals,
                mint_authority=mint_authority,
                freeze_authority=freeze_authority,
            )
            self.assets[asset_id] = asset
        if self.verbose:
            print(f"📝 Registered asset: {asset_id} [decimals={decimals}, "
                  f"mint={mint_authority}, freeze={freeze_authority}]")
        return asset

    def open_account(self, account_id: AccountId, asset_id: AssetId, owner: Identity) -> TokenAccount:
        """
        Open an empty account for an asset.

        Raises:
            ValueError: If the account already exists or owner is empty
            AssetNotRegistered: If the asset is unknown
        """
        if not account_id or not account_id.strip():
            raise ValueError("account_id cannot be empty")
        if not owner or not owner.strip():
            raise ValueError("owner cannot be empty")
        with self._lock:
            self.get_asset(asset_id)
            if account_id in self.accounts:
                raise ValueError(f"Account {account_id} already registered")
            account = TokenAccount(account_id=account_id, asset_id=asset_id, owner=owner)
            self.accounts[account_id] = account
        return account

    # ========================================================================
    # PRIMITIVES (Mutating)
    # ========================================================================

    def _log(self, kind: str, asset_id: AssetId, account_id: Optional[AccountId],
             amount: int, authority: Optional[Identity]) -> None:
        op = Operation(
            sequence=self._next_sequence,
            timestamp=self._current_time,
            kind=kind,
            asset_id=asset_id,
            account_id=account_id,
            amount=amount,
            authority=authority,
        )
        self._next_sequence += 1
        self.operation_log.append(op)
        if self.verbose:
            print(f"✓ {op!r}")

    @staticmethod
    def _check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"amount must be an int, got {type(amount).__name__}")
        if amount < 0:
            raise ValueError(f"amount must be non-negative, got {amount}")
        if amount > U64_MAX:
            raise SupplyOverflow(f"amount {amount} exceeds u64")

    def _account_of(self, asset_id: AssetId, account_id: AccountId) -> TokenAccount:
        account = self.read_account(account_id)
        if account.asset_id != asset_id:
            raise AssetLedgerError(
                f"Account {account_id} holds {account.asset_id}, not {asset_id}"
            )
        return account

    def burn(self, asset_id: AssetId, from_account: AccountId, amount: int,
             authorizing_identity: Identity) -> None:
        """
        Destroy amount base units from an account, authorized by its owner.

        Raises:
            AuthorityMismatch: If authorizing_identity does not own the account
            AccountFrozen: If the account is frozen
            InsufficientFunds: If the balance is below amount
        """
        self._check_amount(amount)
        with self._lock:
            asset = self.get_asset(asset_id)
            account = self._account_of(asset_id, from_account)
            if account.owner != authorizing_identity:
                raise AuthorityMismatch(
                    f"{authorizing_identity} does not own {from_account}"
                )
            if account.frozen:
                raise AccountFrozen(f"Account {from_account} is frozen")
            if account.balance < amount:
                raise InsufficientFunds(
                    f"{from_account} {asset_id}: balance {account.balance} < {amount}"
                )
            self.accounts[from_account] = replace(account, balance=account.balance - amount)
            self.assets[asset_id] = replace(asset, supply=asset.supply - amount)
            self._log("burn", asset_id, from_account, amount, authorizing_identity)

    def mint(self, asset_id: AssetId, to_account: AccountId, amount: int,
             authorizing_identity: Identity) -> None:
        """
        Create amount base units in an account, authorized by the mint authority.

        Raises:
            AuthorityMismatch: If minting is revoked or authorizing_identity is not the authority
            AccountFrozen: If the destination is frozen
            SupplyOverflow: If supply or balance would exceed u64
        """
        self._check_amount(amount)
        with self._lock:
            asset = self.get_asset(asset_id)
            account = self._account_of(asset_id, to_account)
            if asset.mint_authority is None:
                raise AuthorityMismatch(f"Minting of {asset_id} has been revoked")
            if asset.mint_authority != authorizing_identity:
                raise AuthorityMismatch(
                    f"{authorizing_identity} is not the mint authority of {asset_id}"
                )
            if account.frozen:
                raise AccountFrozen(f"Account {to_account} is frozen")
            if asset.supply + amount > U64_MAX:
                raise SupplyOverflow(f"{asset_id} supply would exceed u64")
            self.accounts[to_account] = replace(account, balance=account.balance + amount)
            self.assets[asset_id] = replace(asset, supply=asset.supply + amount)
            self._log("mint", asset_id, to_account, amount, authorizing_identity)

    def set_mint_authority(self, asset_id: AssetId, new_authority: Optional[Identity],
                           authorizing_identity: Identity) -> None:
        """
        Hand minting rights to another identity (None revokes them).

        Raises:
            AuthorityMismatch: If authorizing_identity is not the current authority
        """
        with self._lock:
            asset = self.get_asset(asset_id)
            if asset.mint_authority is None or asset.mint_authority != authorizing_identity:
                raise AuthorityMismatch(
                    f"{authorizing_identity} is not the mint authority of {asset_id}"
                )
            self.assets[asset_id] = replace(asset, mint_authority=new_authority)
            kind = "revoke" if new_authority is None else "set_authority"
            self._log(kind, asset_id, None, 0, authorizing_identity)

    def revoke_mint_authority(self, asset_id: AssetId, authorizing_identity: Identity) -> None:
        """Permanently revoke minting for an asset."""
        self.set_mint_authority(asset_id, None, authorizing_identity)

    def _set_frozen(self, account_id: AccountId, frozen: bool,
                    authorizing_identity: Identity) -> None:
        with self._lock:
            account = self.read_account(account_id)
            asset = self.get_asset(account.asset_id)
            if asset.freeze_authority is None or asset.freeze_authority != authorizing_identity:
                raise AuthorityMismatch(
                    f"{authorizing_identity} is not the freeze authority of {asset.asset_id}"
                )
            self.accounts[account_id] = replace(account, frozen=frozen)
            self._log("freeze" if frozen else "thaw", asset.asset_id, account_id, 0,
                      authorizing_identity)

    def freeze_account(self, account_id: AccountId, authorizing_identity: Identity) -> None:
        """Freeze an account (freeze authority only)."""
        self._set_frozen(account_id, True, authorizing_identity)

    def thaw_account(self, account_id: AccountId, authorizing_identity: Identity) -> None:
        """Thaw a frozen account (freeze authority only)."""
        self._set_frozen(account_id, False, authorizing_identity)

    # ========================================================================
    # ATOMIC UNITS
    # ========================================================================

    @contextmanager
    def atomic(self) -> Iterator[AssetLedger]:
        """
        Run a block of primitives as one all-or-nothing unit.

        If the block raises, every primitive applied inside it is rolled back
        (balances, supplies, authorities and the operation log) and the
        exception propagates. Nested blocks join the outermost unit.

        Example:
            with ledger.atomic():
                ledger.burn("OLD", "alice_old", 10, "alice")
                ledger.mint("NEW", "alice_new", 1, authority)  # raises -> burn undone
        """
        with self._lock:
            if self._atomic_depth:
                self._atomic_depth += 1
                try:
                    yield self
                finally:
                    self._atomic_depth -= 1
                return

            snapshot = (
                dict(self.assets),
                dict(self.accounts),
                len(self.operation_log),
                self._next_sequence,
            )
            self._atomic_depth = 1
            try:
                yield self
            except BaseException:
                assets, accounts, log_length, sequence = snapshot
                self.assets = assets
                self.accounts = accounts
                del self.operation_log[log_length:]
                self._next_sequence = sequence
                if self.verbose:
                    print(f"✗ ROLLED BACK to Op#{sequence}")
                raise
            finally:
                self._atomic_depth = 0

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> AssetLedger:
        """
        Create an independent copy of this ledger.

        Assets, accounts and operations are immutable, so copying the
        containers is enough for full independence.
        """
        with self._lock:
            cloned = AssetLedger(self.name, self._current_time, verbose=self.verbose)
            cloned.assets = dict(self.assets)
            cloned.accounts = dict(self.accounts)
            cloned.operation_log = list(self.operation_log)
            cloned._next_sequence = self._next_sequence
        return cloned
