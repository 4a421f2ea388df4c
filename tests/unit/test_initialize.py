"""
test_initialize.py - Unit tests for migration bootstrap

Tests:
- Successful bootstrap: record fields, fixed allocations, Initialized event
- Each rejection path, in check order
- Nothing is persisted or minted when bootstrap fails
"""

import pytest

from redeemer import (
    MigrationProgram, AssetLedgerError, RecordNotFound,
    AlreadyInitialized, InvalidRatio, InvalidCap, BadAllocationMath,
    WrongMintAuthority, WrongFreezeAuthority, WrongMint,
    derive_authority, derive_record_address,
)

from tests.fake_ledger import (
    ADMIN, NEW, OLD, START, END, PLAN, FIXED_ACCOUNTS,
    build_ledger, make_params, initialize,
)


def _assert_nothing_happened(program, ledger):
    assert program.list_migrations() == []
    assert ledger.total_supply(NEW) == 0
    assert len(program.events) == 0


class TestInitializeSuccess:

    def test_record_fields(self, program):
        record = initialize(program)
        assert record.admin == ADMIN
        assert record.old_asset_id == OLD
        assert record.new_asset_id == NEW
        assert (record.ratio_numerator, record.ratio_denominator) == (1, 10)
        assert record.total_cap == PLAN.total_cap
        assert record.migration_cap == PLAN.migration_cap
        assert record.migration_minted == 0
        assert record.paused is False
        assert record.finalized is False
        assert (record.start_ts, record.end_ts) == (START, END)
        assert program.get_record(NEW) == record

    def test_decimals_read_from_assets(self):
        ledger = build_ledger(old_decimals=8, new_decimals=2)
        program = MigrationProgram(ledger, verbose=False)
        record = initialize(program)
        assert (record.old_decimals, record.new_decimals) == (8, 2)

    def test_fixed_allocations_minted(self, program, ledger):
        initialize(program)
        assert ledger.get_balance("treasury") == PLAN.treasury_amount
        assert ledger.get_balance("liquidity") == PLAN.liquidity_amount
        assert ledger.get_balance("contributors") == PLAN.contributors_amount
        assert ledger.total_supply(NEW) == PLAN.total_cap - PLAN.migration_cap

    def test_initialized_event(self, program):
        initialize(program)
        records = program.events.records(kind="Initialized")
        assert len(records) == 1
        event = records[0].event
        assert records[0].migration == NEW
        assert records[0].timestamp == START
        assert event.admin == ADMIN
        assert event.total_cap == PLAN.total_cap
        assert event.migration_cap == PLAN.migration_cap
        assert (event.start_ts, event.end_ts) == (START, END)

    def test_zero_allocations_allowed(self, program, ledger):
        params = dict(total_cap=1_000, migration_cap=1_000, treasury_amount=0,
                      liquidity_amount=0, contributors_amount=0)
        initialize(program, **params)
        assert ledger.total_supply(NEW) == 0

    def test_mint_authority_is_derived(self, program):
        assert program.mint_authority(NEW) == derive_authority(NEW)
        assert program.record_address(NEW) == derive_record_address(NEW)

    def test_unknown_migration(self, program):
        with pytest.raises(RecordNotFound):
            program.get_record(NEW)


class TestInitializeRejections:

    def test_already_initialized(self, migration, ledger):
        supply = ledger.total_supply(NEW)
        with pytest.raises(AlreadyInitialized):
            initialize(migration)
        assert ledger.total_supply(NEW) == supply
        assert len(migration.events) == 1

    def test_zero_denominator(self, program, ledger):
        with pytest.raises(InvalidRatio):
            initialize(program, ratio_denominator=0)
        _assert_nothing_happened(program, ledger)

    def test_migration_cap_above_total(self, program, ledger):
        with pytest.raises(InvalidCap):
            initialize(program, migration_cap=PLAN.total_cap + 1)
        _assert_nothing_happened(program, ledger)

    def test_invalid_ratio_checked_before_cap(self, program):
        with pytest.raises(InvalidRatio):
            initialize(program, ratio_denominator=0, migration_cap=PLAN.total_cap + 1)

    def test_wrong_mint_authority(self):
        ledger = build_ledger(mint_authority="someone-else")
        program = MigrationProgram(ledger, verbose=False)
        with pytest.raises(WrongMintAuthority):
            initialize(program)
        _assert_nothing_happened(program, ledger)

    def test_authority_from_other_program(self):
        ledger = build_ledger(mint_authority=derive_authority(NEW, "other-program"))
        program = MigrationProgram(ledger, verbose=False)
        with pytest.raises(WrongMintAuthority):
            initialize(program)

    def test_wrong_freeze_authority(self):
        ledger = build_ledger(freeze_authority="mallory")
        program = MigrationProgram(ledger, verbose=False)
        with pytest.raises(WrongFreezeAuthority):
            initialize(program)
        _assert_nothing_happened(program, ledger)

    def test_missing_freeze_authority(self):
        ledger = build_ledger(freeze_authority=None)
        program = MigrationProgram(ledger, verbose=False)
        with pytest.raises(WrongFreezeAuthority):
            initialize(program)

    def test_allocations_do_not_add_up(self, program, ledger):
        with pytest.raises(BadAllocationMath):
            initialize(program, treasury_amount=PLAN.treasury_amount + 1)
        _assert_nothing_happened(program, ledger)

    def test_allocations_short(self, program):
        with pytest.raises(BadAllocationMath):
            initialize(program, contributors_amount=PLAN.contributors_amount - 1)

    def test_destination_holds_wrong_asset(self, program, ledger):
        with pytest.raises(WrongMint):
            program.initialize(make_params(), OLD, NEW,
                               "treasury", "alice_old", "contributors")
        _assert_nothing_happened(program, ledger)

    def test_unknown_asset_propagates_ledger_error(self, program):
        with pytest.raises(AssetLedgerError):
            program.initialize(make_params(), "MISSING", NEW, *FIXED_ACCOUNTS)
        assert program.list_migrations() == []

    def test_failed_bootstrap_can_be_retried(self, program, ledger):
        with pytest.raises(BadAllocationMath):
            initialize(program, treasury_amount=0)
        record = initialize(program)
        assert record.migration_minted == 0
        assert ledger.total_supply(NEW) == PLAN.total_cap - PLAN.migration_cap
