"""
program.py - Migration Program

The MigrationProgram is the only component that mutates configuration
records. It orchestrates the external asset ledger under the migration's
invariants:

    initialize()     Bootstrap: validate wiring and allocation math, mint the
                     fixed allocations, persist the record.
    redeem()         Conversion engine: burn old units, mint new units at the
                     configured ratio, bounded by the migration cap.
    set_pause()      Admin: toggle the pause switch.
    update_window()  Admin: replace the redemption window.
    finalize()       Admin: revoke minting of the new asset, forever.

Every transition runs as one atomic unit: the record lock is taken, the
asset ledger's atomic() block stages all primitives, the record is replaced
and its events are appended last. Anything raising inside the unit, an event
subscriber included, rolls all of it back.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterator, List, Optional
import threading

from .core import (
    AccountId, AssetId, Identity,
    AssetLedgerView, ConfigurationRecord, InitializeParams,
    MigrationError, AlreadyInitialized, InvalidRatio, InvalidCap,
    BadAllocationMath, WrongMintAuthority, WrongFreezeAuthority,
    NotAdmin, WrongOwner, WrongMint, RecordNotFound,
    MigrationPaused, OutsideWindow, AlreadyFinalized, TooEarly,
    DustTooSmall, Slippage, CapExceeded,
    PROGRAM_ID, derive_authority, derive_record_address,
)
from .converter import convert_amount
from .events import (
    EventLog, MigrationEvent,
    Initialized, Redeemed, Paused, WindowUpdated, WindowInverted, Finalized,
)


class MigrationProgram:
    """
    Capped, time-windowed, fixed-ratio migration from an old asset to a new one.

    Holds one ConfigurationRecord per new asset. Records for different assets
    are fully independent.

    Thread Safety:
        Transitions on the same record are serialized by a per-record lock.
        The asset ledger's atomic() additionally serializes ledger access, so
        a capacity check and its counter update can never interleave with
        another redemption.

    Example:
        ledger = AssetLedger("devnet", initial_time=1_700_000_000)
        program = MigrationProgram(ledger)
        program.initialize(params, "OLD", "NEW", "treasury", "liquidity", "contributors")
        minted = program.redeem("alice", "OLD", "NEW", "alice_old", "alice_new",
                                amount_old=10_000_000, min_new_out=1)
    """

    def __init__(
        self,
        ledger: AssetLedgerView,
        program_id: str = PROGRAM_ID,
        clock: Optional[Callable[[], int]] = None,
        events: Optional[EventLog] = None,
        verbose: bool = True,
    ):
        """
        Create a migration program bound to an asset ledger.

        Args:
            ledger: The external asset ledger
            program_id: Namespace for derived identities (default: PROGRAM_ID)
            clock: Trusted time source, unix seconds (default: ledger.current_time)
            events: Event log to append to (default: a fresh EventLog)
            verbose: Print applied and rejected transitions (default: True)
        """
        self.ledger = ledger
        self.program_id = program_id
        self._clock = clock
        self.events = events if events is not None else EventLog()
        self.verbose = verbose
        self.records: Dict[AssetId, ConfigurationRecord] = {}
        self._record_locks: Dict[AssetId, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    def now(self) -> int:
        """Current trusted time, unix seconds."""
        if self._clock is not None:
            return self._clock()
        return self.ledger.current_time

    def mint_authority(self, new_asset: AssetId) -> Identity:
        """The derived identity that signs mints and revocation for new_asset."""
        return derive_authority(new_asset, self.program_id)

    def record_address(self, new_asset: AssetId) -> str:
        return derive_record_address(new_asset, self.program_id)

    def get_record(self, new_asset: AssetId) -> ConfigurationRecord:
        """
        Return the configuration record for a migration.

        Raises:
            RecordNotFound: If no migration is configured for new_asset
        """
        try:
            return self.records[new_asset]
        except KeyError:
            raise RecordNotFound(new_asset) from None

    def list_migrations(self) -> List[AssetId]:
        with self._locks_guard:
            return sorted(self.records)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _lock_for(self, new_asset: AssetId, create: bool = False) -> threading.RLock:
        """Per-record lock. Only initialize may create one for an unknown key."""
        with self._locks_guard:
            lock = self._record_locks.get(new_asset)
            if lock is None:
                if not create and new_asset not in self.records:
                    raise RecordNotFound(new_asset)
                lock = self._record_locks[new_asset] = threading.RLock()
            return lock

    def _store(self, new_asset: AssetId, record: Optional[ConfigurationRecord]) -> None:
        with self._locks_guard:
            if record is not None:
                self.records[new_asset] = record
            else:
                # A failed bootstrap leaves neither a record nor its lock behind.
                self.records.pop(new_asset, None)
                self._record_locks.pop(new_asset, None)

    @contextmanager
    def _transition(self, op: str, new_asset: AssetId, create: bool = False) -> Iterator[None]:
        """
        Run one transition as an atomic unit.

        Takes the record lock, then stages ledger primitives and events. If the
        block raises, the ledger and the event log roll back, the previous
        record is restored, and the exception propagates.
        """
        try:
            lock = self._lock_for(new_asset, create)
        except MigrationError as e:
            self._reject(op, e)
            raise
        with lock:
            previous = self.records.get(new_asset)
            try:
                with self.ledger.atomic(), self.events.atomic():
                    yield
            except BaseException as e:
                self._store(new_asset, previous)
                if isinstance(e, MigrationError):
                    self._reject(op, e)
                raise

    def _emit(self, new_asset: AssetId, now: int, event: MigrationEvent) -> None:
        self.events.append(new_asset, now, event)
        if self.verbose:
            print(f"✓ {event.kind} [{new_asset}] {event}")

    def _reject(self, op: str, error: MigrationError) -> None:
        if self.verbose:
            print(f"✗ REJECTED {op}: {error.code} - {error}")

    @staticmethod
    def _require_admin(record: ConfigurationRecord, caller: Identity) -> None:
        if caller != record.admin:
            raise NotAdmin(f"{caller} is not {record.admin}")

    # ========================================================================
    # BOOTSTRAP
    # ========================================================================

    def initialize(
        self,
        params: InitializeParams,
        old_asset: AssetId,
        new_asset: AssetId,
        treasury_account: AccountId,
        liquidity_account: AccountId,
        contributors_account: AccountId,
    ) -> ConfigurationRecord:
        """
        Create the configuration record and mint the fixed allocations.

        Checks, in order:
        1. No record exists for new_asset (AlreadyInitialized)
        2. ratio_denominator > 0 (InvalidRatio)
        3. migration_cap <= total_cap (InvalidCap)
        4. new asset mint authority is the derived authority (WrongMintAuthority)
        5. new asset freeze authority is params.admin (WrongFreezeAuthority)
        6. fixed allocations == total_cap - migration_cap (BadAllocationMath)
        7. every destination account holds new_asset (WrongMint)

        Decimals are read from the asset definitions, never from params.

        Returns:
            The persisted ConfigurationRecord

        Raises:
            MigrationError: On any failed check; nothing is persisted or minted
        """
        with self._transition("initialize", new_asset, create=True):
            record = self._initialize(
                params, old_asset, new_asset,
                (treasury_account, params.treasury_amount),
                (liquidity_account, params.liquidity_amount),
                (contributors_account, params.contributors_amount),
            )
            self._store(new_asset, record)
            self._emit(new_asset, self.now(), Initialized(
                admin=record.admin,
                old_asset=record.old_asset_id,
                new_asset=record.new_asset_id,
                total_cap=record.total_cap,
                migration_cap=record.migration_cap,
                start_ts=record.start_ts,
                end_ts=record.end_ts,
            ))
        return record

    def _initialize(self, params, old_asset, new_asset, *allocations) -> ConfigurationRecord:
        if new_asset in self.records:
            raise AlreadyInitialized(self.record_address(new_asset))
        if params.ratio_denominator == 0:
            raise InvalidRatio("ratio_denominator == 0")

        old_decimals = self.ledger.read_asset_decimals(old_asset)
        new_decimals = self.ledger.read_asset_decimals(new_asset)

        if params.migration_cap > params.total_cap:
            raise InvalidCap(f"migration_cap {params.migration_cap} > total_cap {params.total_cap}")

        authority = self.mint_authority(new_asset)
        if self.ledger.read_mint_authority(new_asset) != authority:
            raise WrongMintAuthority(f"expected {authority}")
        if self.ledger.read_freeze_authority(new_asset) != params.admin:
            raise WrongFreezeAuthority(f"expected {params.admin}")

        expected_fixed = params.total_cap - params.migration_cap
        if params.fixed_allocations != expected_fixed:
            raise BadAllocationMath(
                f"allocations {params.fixed_allocations} != total_cap - migration_cap {expected_fixed}"
            )

        for account_id, _ in allocations:
            if self.ledger.read_account(account_id).asset_id != new_asset:
                raise WrongMint(f"{account_id} does not hold {new_asset}")

        # Fixed allocations bypass the migration cap.
        for account_id, amount in allocations:
            self.ledger.mint(new_asset, account_id, amount, authority)

        record = ConfigurationRecord(
            admin=params.admin,
            old_asset_id=old_asset,
            new_asset_id=new_asset,
            ratio_numerator=params.ratio_numerator,
            ratio_denominator=params.ratio_denominator,
            old_decimals=old_decimals,
            new_decimals=new_decimals,
            total_cap=params.total_cap,
            migration_cap=params.migration_cap,
            migration_minted=0,
            paused=False,
            start_ts=params.start_ts,
            end_ts=params.end_ts,
            finalized=False,
        )
        record.check_invariants()
        return record

    # ========================================================================
    # CONVERSION ENGINE
    # ========================================================================

    def redeem(
        self,
        caller: Identity,
        old_asset: AssetId,
        new_asset: AssetId,
        old_account: AccountId,
        new_account: AccountId,
        amount_old: int,
        min_new_out: int,
    ) -> int:
        """
        Burn amount_old of the old asset from the caller and mint the converted
        amount of the new asset to the caller.

        Preconditions, in order:
        1. not paused (MigrationPaused)
        2. start_ts <= now <= end_ts (OutsideWindow)
        3. not finalized (AlreadyFinalized)
        4. asset ids and account assets match the record (WrongMint)
        5. both accounts are owned by caller (WrongOwner)

        After the burn: amount_new >= min_new_out (Slippage), amount_new > 0
        (DustTooSmall), amount_new <= remaining capacity (CapExceeded).

        Returns:
            amount_new, the new-asset base units minted

        Raises:
            MigrationError: On any failed check; the burn is rolled back
            AssetLedgerError: If a ledger primitive fails; the burn is rolled back
        """
        with self._transition("redeem", new_asset):
            now = self.now()
            record = self.get_record(new_asset)
            amount_new = self._redeem(
                record, now, caller, old_asset, new_asset,
                old_account, new_account, amount_old, min_new_out,
            )
            self._store(new_asset, record.with_minted(amount_new))
            self._emit(new_asset, now, Redeemed(
                user=caller, burned_old=amount_old, minted_new=amount_new,
            ))
        return amount_new

    def _redeem(self, record, now, caller, old_asset, new_asset,
                old_account, new_account, amount_old, min_new_out) -> int:
        if record.paused:
            raise MigrationPaused()
        if not record.window_contains(now):
            raise OutsideWindow(f"now={now} window=[{record.start_ts}, {record.end_ts}]")
        if record.finalized:
            raise AlreadyFinalized()

        if old_asset != record.old_asset_id:
            raise WrongMint(f"old asset {old_asset} != {record.old_asset_id}")
        if new_asset != record.new_asset_id:
            raise WrongMint(f"new asset {new_asset} != {record.new_asset_id}")
        user_old = self.ledger.read_account(old_account)
        user_new = self.ledger.read_account(new_account)
        if user_old.asset_id != record.old_asset_id:
            raise WrongMint(f"{old_account} does not hold {record.old_asset_id}")
        if user_new.asset_id != record.new_asset_id:
            raise WrongMint(f"{new_account} does not hold {record.new_asset_id}")
        if user_old.owner != caller:
            raise WrongOwner(f"{old_account} is owned by {user_old.owner}")
        if user_new.owner != caller:
            raise WrongOwner(f"{new_account} is owned by {user_new.owner}")

        # Burn first; any failure below rolls it back with the atomic unit.
        self.ledger.burn(record.old_asset_id, old_account, amount_old, caller)

        amount_new = convert_amount(
            amount_old,
            record.ratio_numerator,
            record.ratio_denominator,
            record.old_decimals,
            record.new_decimals,
        )
        if amount_new < min_new_out:
            raise Slippage(f"{amount_new} < min_new_out {min_new_out}")
        if amount_new == 0:
            raise DustTooSmall(f"{amount_old} old units convert to 0")
        if amount_new > record.remaining_capacity:
            raise CapExceeded(f"{amount_new} > remaining {record.remaining_capacity}")

        self.ledger.mint(record.new_asset_id, new_account, amount_new,
                         self.mint_authority(record.new_asset_id))
        return amount_new

    # ========================================================================
    # ADMIN CONTROLLER
    # ========================================================================

    def set_pause(self, caller: Identity, new_asset: AssetId, paused: bool) -> ConfigurationRecord:
        """
        Pause or unpause redemption. Admin only.

        Raises:
            NotAdmin: If caller is not the record's admin
        """
        with self._transition("set_pause", new_asset):
            record = self.get_record(new_asset)
            self._require_admin(record, caller)
            updated = replace(record, paused=bool(paused))
            self._store(new_asset, updated)
            self._emit(new_asset, self.now(), Paused(paused=updated.paused))
        return updated

    def update_window(self, caller: Identity, new_asset: AssetId,
                      start_ts: int, end_ts: int) -> ConfigurationRecord:
        """
        Replace the redemption window. Admin only.

        No ordering check is enforced: start_ts > end_ts is accepted and makes
        redemption impossible until the window is updated again. Such a window
        additionally emits a WindowInverted warning.

        Raises:
            NotAdmin: If caller is not the record's admin
        """
        with self._transition("update_window", new_asset):
            now = self.now()
            record = self.get_record(new_asset)
            self._require_admin(record, caller)
            updated = replace(record, start_ts=start_ts, end_ts=end_ts)
            self._store(new_asset, updated)
            self._emit(new_asset, now, WindowUpdated(start_ts=start_ts, end_ts=end_ts))
            if start_ts > end_ts:
                if self.verbose:
                    print(f"⚠️  WINDOW INVERTED [{new_asset}]: start {start_ts} > end {end_ts}")
                self._emit(new_asset, now, WindowInverted(start_ts=start_ts, end_ts=end_ts))
        return updated

    def finalize(self, caller: Identity, new_asset: AssetId) -> ConfigurationRecord:
        """
        Permanently revoke minting of the new asset. Admin only.

        Requires the window to have closed (now > end_ts). One-way: nothing
        ever clears `finalized`.

        Raises:
            NotAdmin: If caller is not the record's admin
            AlreadyFinalized: If the record is already finalized
            TooEarly: If now <= end_ts
        """
        with self._transition("finalize", new_asset):
            now = self.now()
            record = self.get_record(new_asset)
            self._require_admin(record, caller)
            if record.finalized:
                raise AlreadyFinalized()
            if not now > record.end_ts:
                raise TooEarly(f"now={now} <= end_ts={record.end_ts}")
            self.ledger.revoke_mint_authority(
                record.new_asset_id, self.mint_authority(record.new_asset_id)
            )
            updated = replace(record, finalized=True)
            self._store(new_asset, updated)
            self._emit(new_asset, now, Finalized())
        return updated
