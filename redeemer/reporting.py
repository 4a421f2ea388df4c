"""
reporting.py - Migration Status, Statistics and Audit

Read-only views over a migration for operators and auditors:
1. get_status() - phase, remaining capacity and progress at a point in time
2. compute_stats() - redemption statistics from the event log
3. audit_migration() - cross-check the record against the asset ledger and events

Nothing here mutates state. All amounts stay in integer base units; ratios
and percentages are exact Decimals.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .core import (
    AssetLedgerView, ConfigurationRecord, MigrationError,
    PROGRAM_ID, derive_authority,
)
from .converter import to_ui_amount
from .events import EventRecord


# ============================================================================
# STATUS
# ============================================================================

class MigrationPhase(Enum):
    """
    Where a migration stands at a given time.

    PENDING: Window has not opened yet.
    ACTIVE: Redemption is currently accepted.
    PAUSED: Inside the window but paused by the admin.
    CLOSED: Window has passed (or is inverted) and minting is not yet revoked.
    FINALIZED: Minting has been revoked; terminal.
    """
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"
    FINALIZED = "finalized"


@dataclass(frozen=True, slots=True)
class MigrationStatus:
    migration: str
    phase: MigrationPhase
    now: int
    migration_minted: int
    migration_cap: int
    remaining_capacity: int
    progress_pct: Decimal
    seconds_until_open: int
    seconds_until_close: int
    can_finalize: bool

    @property
    def is_open(self) -> bool:
        return self.phase is MigrationPhase.ACTIVE


def get_status(record: ConfigurationRecord, now: int) -> MigrationStatus:
    """
    Summarize a migration at time `now`.

    progress_pct is migration_minted / migration_cap * 100 (0 when the cap is 0).
    seconds_until_open / seconds_until_close are clamped at 0.
    """
    if record.finalized:
        phase = MigrationPhase.FINALIZED
    elif now < record.start_ts and record.start_ts <= record.end_ts:
        phase = MigrationPhase.PENDING
    elif not record.window_contains(now):
        phase = MigrationPhase.CLOSED
    elif record.paused:
        phase = MigrationPhase.PAUSED
    else:
        phase = MigrationPhase.ACTIVE

    if record.migration_cap:
        progress = Decimal(record.migration_minted) * 100 / Decimal(record.migration_cap)
    else:
        progress = Decimal(0)

    return MigrationStatus(
        migration=record.new_asset_id,
        phase=phase,
        now=now,
        migration_minted=record.migration_minted,
        migration_cap=record.migration_cap,
        remaining_capacity=record.remaining_capacity,
        progress_pct=progress,
        seconds_until_open=max(record.start_ts - now, 0),
        seconds_until_close=max(record.end_ts - now, 0),
        can_finalize=not record.finalized and now > record.end_ts,
    )


# ============================================================================
# STATISTICS
# ============================================================================

@dataclass(frozen=True, slots=True)
class MigrationStats:
    """
    Aggregate redemption statistics for one migration.

    Attributes:
        redeem_count: Number of Redeemed events
        unique_redeemers: Number of distinct users
        total_burned: Σ burned_old
        total_minted: Σ minted_new
        effective_ratio: total_minted / total_burned (None before any redemption)
        median_minted: Lower median of minted_new per redemption (0 if none)
        largest_minted: Largest single minted_new (0 if none)
        per_user_minted: user -> Σ minted_new
    """
    migration: str
    redeem_count: int
    unique_redeemers: int
    total_burned: int
    total_minted: int
    effective_ratio: Optional[Decimal]
    median_minted: int
    largest_minted: int
    per_user_minted: Dict[str, int]


def compute_stats(events: Iterable[EventRecord], migration: str) -> MigrationStats:
    """
    Aggregate the Redeemed events of one migration.

    Example:
        stats = compute_stats(program.events, "NEW")
        print(stats.redeem_count, stats.unique_redeemers, stats.effective_ratio)
    """
    redeemed = [r.event for r in events
                if r.migration == migration and r.kind == "Redeemed"]

    per_user: Dict[str, int] = {}
    for e in redeemed:
        per_user[e.user] = per_user.get(e.user, 0) + e.minted_new

    total_burned = sum(e.burned_old for e in redeemed)
    total_minted = sum(e.minted_new for e in redeemed)

    if redeemed:
        # uint64 holds every single redemption exactly.
        sizes = np.sort(np.array([e.minted_new for e in redeemed], dtype=np.uint64))
        median_minted = int(sizes[(len(sizes) - 1) // 2])
        largest_minted = int(sizes[-1])
        unique = int(np.unique(np.array([e.user for e in redeemed])).size)
    else:
        median_minted = largest_minted = unique = 0

    effective_ratio = None
    if total_burned:
        effective_ratio = Decimal(total_minted) / Decimal(total_burned)

    return MigrationStats(
        migration=migration,
        redeem_count=len(redeemed),
        unique_redeemers=unique,
        total_burned=total_burned,
        total_minted=total_minted,
        effective_ratio=effective_ratio,
        median_minted=median_minted,
        largest_minted=largest_minted,
        per_user_minted=per_user,
    )


# ============================================================================
# AUDIT
# ============================================================================

def audit_migration(
    ledger: AssetLedgerView,
    record: ConfigurationRecord,
    events: Iterable[EventRecord],
    program_id: str = PROGRAM_ID,
) -> Dict[str, Any]:
    """
    Verify a migration purely from persisted numbers.

    Checks:
    - record invariants (ratio, caps, minted <= cap)
    - Σ Redeemed.minted_new == migration_minted
    - new asset supply == (total_cap - migration_cap) + migration_minted,
      when the ledger exposes total_supply()
    - mint authority is the derived authority, or None once finalized
    - freeze authority is the admin
    - asset decimals still match the record

    Returns:
        Dict with keys:
        - 'valid': bool - True if every check passed
        - 'checks': Dict[str, bool] - Outcome per check
        - 'discrepancies': List[Dict] - check, expected, actual
    """
    checks: Dict[str, bool] = {}
    discrepancies: List[Dict[str, Any]] = []

    def check(name: str, expected: Any, actual: Any) -> None:
        ok = expected == actual
        checks[name] = ok
        if not ok:
            discrepancies.append({'check': name, 'expected': expected, 'actual': actual})

    try:
        record.check_invariants()
        checks['invariants'] = True
    except MigrationError as e:
        checks['invariants'] = False
        discrepancies.append({'check': 'invariants', 'expected': 'ok', 'actual': e.code})

    stats = compute_stats(events, record.new_asset_id)
    check('minted_matches_events', record.migration_minted, stats.total_minted)

    total_supply = getattr(ledger, "total_supply", None)
    if total_supply is not None:
        expected_supply = (record.total_cap - record.migration_cap) + record.migration_minted
        check('new_supply', expected_supply, total_supply(record.new_asset_id))

    expected_authority = None if record.finalized else derive_authority(record.new_asset_id, program_id)
    check('mint_authority', expected_authority, ledger.read_mint_authority(record.new_asset_id))
    check('freeze_authority', record.admin, ledger.read_freeze_authority(record.new_asset_id))
    check('old_decimals', record.old_decimals, ledger.read_asset_decimals(record.old_asset_id))
    check('new_decimals', record.new_decimals, ledger.read_asset_decimals(record.new_asset_id))

    return {
        'valid': len(discrepancies) == 0,
        'checks': checks,
        'discrepancies': discrepancies,
    }


def format_status(record: ConfigurationRecord, now: int) -> str:
    """Render a one-screen status summary in whole-asset units."""
    status = get_status(record, now)
    minted = to_ui_amount(record.migration_minted, record.new_decimals)
    cap = to_ui_amount(record.migration_cap, record.new_decimals)
    lines = [
        f"=== Migration Status: {record.old_asset_id} -> {record.new_asset_id} ===",
        f"Phase      : {status.phase.value}",
        f"Ratio      : {record.ratio_numerator}:{record.ratio_denominator}",
        f"Window     : [{record.start_ts}, {record.end_ts}] (now {now})",
        f"Minted     : {minted} / {cap} ({status.progress_pct:.2f}%)",
        f"Paused     : {record.paused}",
        f"Finalized  : {record.finalized}",
    ]
    return "\n".join(lines)
