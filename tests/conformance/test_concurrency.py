"""
Concurrency Conformance Tests

INVARIANT: Concurrent redemptions against one migration are serialized.

    ∀ concurrent redemptions R1..Rn:
        migration_minted = Σ accepted minted_new ≤ migration_cap

No two redemptions can both pass the capacity check against the same
remaining capacity.
"""

import threading

import pytest

from redeemer import (
    MigrationProgram, CapExceeded, RecordNotFound, BadAllocationMath,
    derive_authority, plan_allocations,
)

from tests.fake_ledger import (
    ADMIN, NEW, OLD, HOLDERS, build_ledger, make_params, initialize, redeem,
)


def _run_concurrently(program, holder_amounts, rounds):
    results = {"minted": [], "capped": 0}
    guard = threading.Lock()
    barrier = threading.Barrier(len(holder_amounts))

    def worker(holder, amount):
        barrier.wait()
        for _ in range(rounds):
            try:
                minted = redeem(program, holder, amount)
            except CapExceeded:
                with guard:
                    results["capped"] += 1
            else:
                with guard:
                    results["minted"].append(minted)

    threads = [threading.Thread(target=worker, args=item) for item in holder_amounts]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestConcurrentRedemption:

    def test_cap_never_exceeded(self):
        plan = plan_allocations(1_000_000)
        ledger = build_ledger()
        program = MigrationProgram(ledger, verbose=False)
        initialize(program, total_cap=plan.total_cap, migration_cap=plan.migration_cap,
                   treasury_amount=plan.treasury_amount,
                   liquidity_amount=plan.liquidity_amount,
                   contributors_amount=plan.contributors_amount)

        # Each redemption mints 10_000; 3 holders x 30 rounds asks for 900_000.
        results = _run_concurrently(program, [(h, 100) for h in HOLDERS], rounds=30)

        record = program.get_record(NEW)
        assert record.migration_minted == plan.migration_cap
        assert sum(results["minted"]) == plan.migration_cap
        assert len(results["minted"]) == 60
        assert results["capped"] == 30
        assert ledger.total_supply(NEW) == plan.total_cap
        assert ledger.verify_supply()['valid']

    def test_independent_migrations_do_not_interfere(self):
        ledger = build_ledger()
        ledger.register_asset("NEW2", decimals=9, mint_authority=derive_authority("NEW2"),
                              freeze_authority=ADMIN)
        for account in ("treasury2", "liquidity2", "contributors2"):
            ledger.open_account(account, "NEW2", owner="dao")
        ledger.open_account("alice_new2", "NEW2", owner="alice")

        program = MigrationProgram(ledger, verbose=False)
        initialize(program)
        plan = plan_allocations(1_000_000)
        program.initialize(
            make_params(total_cap=plan.total_cap, migration_cap=plan.migration_cap,
                        treasury_amount=plan.treasury_amount,
                        liquidity_amount=plan.liquidity_amount,
                        contributors_amount=plan.contributors_amount),
            OLD, "NEW2", "treasury2", "liquidity2", "contributors2",
        )

        redeem(program, "alice", 10_000_000)
        program.redeem("alice", OLD, "NEW2", "alice_old", "alice_new2", 100, 0)

        assert program.get_record(NEW).migration_minted == 1_000_000_000
        assert program.get_record("NEW2").migration_minted == 10_000
        assert program.list_migrations() == [NEW, "NEW2"]


class TestMigrationRegistry:
    """Record and lock bookkeeping under concurrent bootstraps."""

    def test_listing_during_concurrent_bootstraps(self):
        ledger = build_ledger()
        assets = [f"NEW{i:02d}" for i in range(12)]
        for asset in assets:
            ledger.register_asset(asset, decimals=9, mint_authority=derive_authority(asset),
                                  freeze_authority=ADMIN)
            for account in ("treasury", "liquidity", "contributors"):
                ledger.open_account(f"{account}_{asset}", asset, owner="dao")
        program = MigrationProgram(ledger, verbose=False)

        errors = []
        done = threading.Event()

        def bootstrap(asset):
            program.initialize(make_params(), OLD, asset, f"treasury_{asset}",
                               f"liquidity_{asset}", f"contributors_{asset}")

        def reader():
            while not done.is_set():
                try:
                    program.list_migrations()
                except Exception as e:
                    errors.append(e)
                    return

        watcher = threading.Thread(target=reader)
        watcher.start()
        threads = [threading.Thread(target=bootstrap, args=(a,)) for a in assets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        done.set()
        watcher.join()

        assert errors == []
        assert program.list_migrations() == assets

    def test_unknown_migration_creates_no_lock(self, migration):
        for attempt in (
            lambda: migration.redeem("alice", OLD, "OTHER", "alice_old", "alice_new", 1, 0),
            lambda: migration.set_pause(ADMIN, "OTHER", True),
            lambda: migration.update_window(ADMIN, "OTHER", 0, 1),
            lambda: migration.finalize(ADMIN, "OTHER"),
        ):
            with pytest.raises(RecordNotFound):
                attempt()
        assert set(migration._record_locks) == {NEW}

    def test_failed_bootstrap_releases_lock(self, program):
        with pytest.raises(BadAllocationMath):
            initialize(program, treasury_amount=0)
        assert NEW not in program._record_locks
        assert program.list_migrations() == []

        initialize(program)
        assert set(program._record_locks) == {NEW}
