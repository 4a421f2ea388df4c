#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A Token Migration Step by Step

This is a pedagogical demonstration of a capped, time-windowed migration
from an old asset to a new one. Each step builds on the previous one.
Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Bootstrap   - Assets, derived mint authority, fixed allocations
  4-6:  Redemption  - Conversion, slippage protection, rejections
  7-8:  Admin       - Pause switch, moving the window
  9-10: Closing     - Cap exhaustion, finalization, audit

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from redeemer import (
    AssetLedger, MigrationProgram, InitializeParams, MigrationError,
    plan_allocations, derive_authority, quote, to_ui_amount,
    compute_stats, audit_migration, format_status,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Timing (unix seconds)
    start_ts: int = 1_735_689_600      # 2025-01-01T00:00:00Z
    window_days: int = 30

    # Assets
    old_symbol: str = "ZOLD"
    new_symbol: str = "ZNEW"
    old_decimals: int = 6
    new_decimals: int = 9

    # 10 old : 1 new
    ratio_numerator: int = 1
    ratio_denominator: int = 10

    # Supply of the new asset, whole units
    total_cap: int = 1_000_000

    # Holder funding, whole old units
    alice_old: int = 2_000_000
    bob_old: int = 8_000_000

    @property
    def end_ts(self) -> int:
        return self.start_ts + self.window_days * 86_400


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


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
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def old_units(whole: int) -> int:
    return whole * 10**CONFIG.old_decimals


def new_ui(base_units: int):
    return to_ui_amount(base_units, CONFIG.new_decimals)


def try_redeem(program, holder, amount_old, min_new_out=0):
    """Redeem and report the outcome instead of raising."""
    try:
        minted = program.redeem(
            holder, CONFIG.old_symbol, CONFIG.new_symbol,
            f"{holder}_old", f"{holder}_new", amount_old, min_new_out,
        )
        print(f"    {holder} received {new_ui(minted)} {CONFIG.new_symbol}")
        return minted
    except MigrationError as e:
        print(f"    {holder} rejected: {e.code}")
        return 0


# ============================================================================
# PHASE 1: BOOTSTRAP (Steps 1-3)
# ============================================================================

def step_01_assets():
    """Register both assets with the program's derived mint authority."""
    step_header(1, "Two Assets",
        "The new asset must be mintable only by the migration program.")

    print("""
    The new asset's mint authority is not a person. It is an identity
    DERIVED from (program id, asset id). Nobody holds a key for it; only
    the migration program can sign with it.
    """)

    ledger = AssetLedger("tutorial", initial_time=CONFIG.start_ts - 86_400, verbose=True)
    authority = derive_authority(CONFIG.new_symbol)
    print(f">>> derive_authority('{CONFIG.new_symbol}') = {authority}")

    ledger.register_asset(CONFIG.old_symbol, decimals=CONFIG.old_decimals,
                          mint_authority="legacy-issuer")
    ledger.register_asset(CONFIG.new_symbol, decimals=CONFIG.new_decimals,
                          mint_authority=authority, freeze_authority="gov")

    for account in ("treasury", "liquidity", "contributors"):
        ledger.open_account(account, CONFIG.new_symbol, owner="gov")
    for holder, whole in (("alice", CONFIG.alice_old), ("bob", CONFIG.bob_old)):
        ledger.open_account(f"{holder}_old", CONFIG.old_symbol, owner=holder)
        ledger.open_account(f"{holder}_new", CONFIG.new_symbol, owner=holder)
        ledger.mint(CONFIG.old_symbol, f"{holder}_old", old_units(whole), "legacy-issuer")

    return ledger


def step_02_plan():
    """Split the total cap into the migration pool and fixed allocations."""
    step_header(2, "The Allocation Plan",
        "Fixed allocations + migration pool must equal the total cap exactly.")

    plan = plan_allocations(CONFIG.total_cap * 10**CONFIG.new_decimals)
    section_header("60 / 20 / 10 / 10")
    print(f"Migration pool: {new_ui(plan.migration_cap)}")
    print(f"Treasury:       {new_ui(plan.treasury_amount)}")
    print(f"Liquidity:      {new_ui(plan.liquidity_amount)}")
    print(f"Contributors:   {new_ui(plan.contributors_amount)}")
    return plan


def step_03_initialize(ledger, plan):
    """Bootstrap the migration."""
    step_header(3, "Initialize",
        "Validate the wiring, mint the fixed allocations, persist the record.")

    program = MigrationProgram(ledger, verbose=True)
    record = program.initialize(InitializeParams(
        admin="gov",
        ratio_numerator=CONFIG.ratio_numerator,
        ratio_denominator=CONFIG.ratio_denominator,
        total_cap=plan.total_cap,
        migration_cap=plan.migration_cap,
        treasury_amount=plan.treasury_amount,
        liquidity_amount=plan.liquidity_amount,
        contributors_amount=plan.contributors_amount,
        start_ts=CONFIG.start_ts,
        end_ts=CONFIG.end_ts,
    ), CONFIG.old_symbol, CONFIG.new_symbol, "treasury", "liquidity", "contributors")

    section_header("Record")
    print(record)
    print(f"\nRecord address: {program.record_address(CONFIG.new_symbol)}")
    return program


# ============================================================================
# PHASE 2: REDEMPTION (Steps 4-6)
# ============================================================================

def step_04_too_early(ledger, program):
    step_header(4, "Before the Window",
        "Redemption is rejected until start_ts.")
    try_redeem(program, "alice", old_units(10))
    ledger.advance_time(CONFIG.start_ts)
    print(f"\n>>> ledger.advance_time({CONFIG.start_ts})")


def step_05_redeem(program):
    step_header(5, "Redeem",
        "Burn old units, mint new units at the fixed ratio, rounding down.")
    record = program.get_record(CONFIG.new_symbol)
    amount = old_units(100_000)
    print(f"Quote for 100,000 {CONFIG.old_symbol}: {new_ui(quote(record, amount))}")
    try_redeem(program, "alice", amount, min_new_out=quote(record, amount))


def step_06_rejections(program):
    step_header(6, "Rejections",
        "Slippage, dust and ownership checks abort the whole redemption.")
    try_redeem(program, "alice", old_units(10), min_new_out=10**18)
    try_redeem(program, "alice", 0)
    try:
        program.redeem("bob", CONFIG.old_symbol, CONFIG.new_symbol,
                       "alice_old", "bob_new", old_units(10), 0)
    except MigrationError as e:
        print(f"    bob spending alice's account rejected: {e.code}")


# ============================================================================
# PHASE 3: ADMIN (Steps 7-8)
# ============================================================================

def step_07_pause(program):
    step_header(7, "Pause Switch", "The admin can halt redemption at any time.")
    program.set_pause("gov", CONFIG.new_symbol, True)
    try_redeem(program, "bob", old_units(10))
    program.set_pause("gov", CONFIG.new_symbol, False)
    try_redeem(program, "bob", old_units(10))


def step_08_window(program):
    step_header(8, "Moving the Window",
        "The admin can extend or shorten the window; inverted windows only warn.")
    program.update_window("gov", CONFIG.new_symbol, CONFIG.end_ts, CONFIG.start_ts)
    try_redeem(program, "bob", old_units(10))
    program.update_window("gov", CONFIG.new_symbol, CONFIG.start_ts, CONFIG.end_ts)


# ============================================================================
# PHASE 4: CLOSING (Steps 9-10)
# ============================================================================

def step_09_cap(ledger, program):
    step_header(9, "Cap Exhaustion",
        "Redemption can never mint beyond the migration pool.")
    try_redeem(program, "bob", old_units(5_000_000))
    remaining = program.get_record(CONFIG.new_symbol).remaining_capacity
    exact_old = remaining * CONFIG.ratio_denominator * 10**CONFIG.old_decimals // (
        CONFIG.ratio_numerator * 10**CONFIG.new_decimals)
    try_redeem(program, "bob", exact_old)
    try_redeem(program, "bob", old_units(1))
    print()
    print(format_status(program.get_record(CONFIG.new_symbol), ledger.current_time))


def step_10_finalize(ledger, program):
    step_header(10, "Finalize",
        "After the window closes, minting of the new asset is revoked forever.")
    try:
        program.finalize("gov", CONFIG.new_symbol)
    except MigrationError as e:
        print(f"    finalize rejected: {e.code}")
    ledger.advance_time(CONFIG.end_ts + 1)
    program.finalize("gov", CONFIG.new_symbol)
    print(f"Mint authority now: {ledger.read_mint_authority(CONFIG.new_symbol)}")

    record = program.get_record(CONFIG.new_symbol)
    stats = compute_stats(program.events, CONFIG.new_symbol)
    audit = audit_migration(ledger, record, program.events)

    section_header("Statistics")
    print(f"Redemptions:      {stats.redeem_count}")
    print(f"Unique redeemers: {stats.unique_redeemers}")
    print(f"Minted:           {new_ui(stats.total_minted)} {CONFIG.new_symbol}")
    section_header("Audit")
    for name, ok in audit['checks'].items():
        print(f"  {'✓' if ok else '✗'} {name}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       REDEEMER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    ledger = step_01_assets()
    wait_for_enter()
    plan = step_02_plan()
    wait_for_enter()
    program = step_03_initialize(ledger, plan)
    wait_for_enter()

    step_04_too_early(ledger, program)
    wait_for_enter()
    step_05_redeem(program)
    wait_for_enter()
    step_06_rejections(program)
    wait_for_enter()

    step_07_pause(program)
    wait_for_enter()
    step_08_window(program)
    wait_for_enter()

    step_09_cap(ledger, program)
    wait_for_enter()
    step_10_finalize(ledger, program)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See redeemer/program.py for every transition and its checks
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
