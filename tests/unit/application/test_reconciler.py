"""IngestionReconciler: ordering, idempotence, pending/orphan handling, rejection of stale transitions."""

import pytest

from medcross.application.reconciler import OutcomeStatus, _record_from_upload
from medcross.domain.exceptions import InvalidTransitionError, OrphanEventError
from medcross.domain.models.audit_event import AuditEventKind
from medcross.domain.models.authorization import GrantState
from medcross.domain.models.record import ChainId, derive_record_id

CHAIN_A = ChainId.CHAIN_A
R1 = derive_record_id(CHAIN_A, "0xup1")


async def _ingest(reconciler, chain, finalized, *events):
    for event in events:
        await reconciler.submit(event)
    return await reconciler.advance(chain, finalized)


# ---------- Idempotence ----------


async def test_reingesting_the_same_events_changes_nothing(reconciler, record_index, audit_log, events):
    batch = [
        events.upload("0xup1", 100),
        events.grant("0xup1", "0xg1", 105),
        events.access("0xup1", "0xa1", 106),
    ]
    first = await _ingest(reconciler, CHAIN_A, 110, *batch)
    assert [o.status for o in first] == [OutcomeStatus.APPLIED] * 3
    trail_before = await audit_log.query_trail(R1)

    second = await _ingest(reconciler, CHAIN_A, 110, *batch)
    assert [o.status for o in second] == [OutcomeStatus.DUPLICATE] * 3
    assert await audit_log.query_trail(R1) == trail_before
    assert len(await record_index.authorizations(R1)) == 1


async def test_duplicate_within_one_batch_is_applied_once(reconciler, audit_log, events):
    upload = events.upload("0xup1", 100)
    outcomes = await _ingest(reconciler, CHAIN_A, 100, upload, upload)
    assert sorted(o.status for o in outcomes) == sorted([OutcomeStatus.APPLIED, OutcomeStatus.DUPLICATE])
    assert len(await audit_log.query_trail(R1)) == 1


async def test_upload_stored_before_crash_is_completed_on_replay(reconciler, record_index, audit_log, events):
    upload = events.upload("0xup1", 100)
    # Index written, audit append lost.
    await record_index.insert(_record_from_upload(upload))
    outcome = await reconciler.apply(upload)
    assert outcome.status == OutcomeStatus.DUPLICATE
    trail = await audit_log.query_trail(R1)
    assert [e.kind for e in trail] == [AuditEventKind.UPLOAD]


# ---------- Finality and ordering ----------


async def test_events_wait_for_finality(reconciler, record_index, events):
    await reconciler.submit(events.upload("0xup1", 100))
    await reconciler.submit(events.grant("0xup1", "0xg1", 105, grantee="u2"))

    await reconciler.advance(CHAIN_A, 104)
    assert await record_index.get(R1) is not None
    assert await record_index.accessible_record_ids("u2") == set()

    await reconciler.advance(CHAIN_A, 105)
    assert await record_index.accessible_record_ids("u2") == {R1}


async def test_grant_and_revoke_apply_in_block_order_regardless_of_arrival(reconciler, record_index, events):
    outcomes = await _ingest(
        reconciler,
        CHAIN_A,
        120,
        events.revoke("0xup1", "0xr1", 110),
        events.grant("0xup1", "0xg1", 105),
        events.upload("0xup1", 100),
    )
    assert [o.event.ledger_tx_ref for o in outcomes] == ["0xup1", "0xg1", "0xr1"]
    assert all(o.status == OutcomeStatus.APPLIED for o in outcomes)
    assert await record_index.grant_state(R1, "bob") == GrantState.REVOKED


async def test_same_block_orders_by_log_index(reconciler, record_index, events):
    await _ingest(
        reconciler,
        CHAIN_A,
        101,
        events.upload("0xup1", 100),
        events.revoke("0xup1", "0xa-revoke", 101, log_index=1),
        events.grant("0xup1", "0xz-grant", 101, log_index=0),
    )
    assert await record_index.grant_state(R1, "bob") == GrantState.REVOKED


async def test_regrant_while_active_is_audited_as_noop(reconciler, record_index, audit_log, events):
    outcomes = await _ingest(
        reconciler,
        CHAIN_A,
        120,
        events.upload("0xup1", 100),
        events.grant("0xup1", "0xg1", 105),
        events.grant("0xup1", "0xg2", 107),
    )
    assert outcomes[-1].status == OutcomeStatus.NO_OP
    assert len(await record_index.authorizations(R1)) == 1
    grants = [e for e in await audit_log.query_trail(R1) if e.kind == AuditEventKind.GRANT]
    assert [e.no_op for e in grants] == [False, True]


async def test_stale_transition_is_rejected_and_state_kept(reconciler, record_index, audit_log, events):
    await _ingest(
        reconciler,
        CHAIN_A,
        110,
        events.upload("0xup1", 100),
        events.grant("0xup1", "0xg1", 105),
        events.revoke("0xup1", "0xr1", 110),
    )
    # Delivered late, below the last applied transition.
    outcomes = await _ingest(reconciler, CHAIN_A, 110, events.grant("0xup1", "0xg-late", 108))
    assert outcomes[0].status == OutcomeStatus.REJECTED
    assert isinstance(outcomes[0].error, InvalidTransitionError)
    assert await record_index.grant_state(R1, "bob") == GrantState.REVOKED
    assert not await audit_log.contains(outcomes[0].event.event_id)


async def test_finalized_height_never_moves_back(reconciler, events):
    await reconciler.advance(CHAIN_A, 120)
    await reconciler.advance(CHAIN_A, 90)
    assert reconciler.finalized_height(CHAIN_A) == 120


# ---------- Pending and orphans ----------


async def test_grant_before_upload_waits_then_applies(reconciler, record_index, events):
    outcomes = await _ingest(reconciler, CHAIN_A, 105, events.grant("0xup1", "0xg1", 105))
    assert outcomes[0].status == OutcomeStatus.PENDING
    assert reconciler.pending_events(CHAIN_A)[0].ledger_tx_ref == "0xg1"

    outcomes = await _ingest(reconciler, CHAIN_A, 106, events.upload("0xup1", 100))
    assert [o.status for o in outcomes] == [OutcomeStatus.APPLIED, OutcomeStatus.APPLIED]
    assert reconciler.pending_events() == []
    assert await record_index.grant_state(R1, "bob") == GrantState.ACTIVE


async def test_orphan_revoke_resolved_within_retry_window(reconciler, record_index, events):
    await _ingest(reconciler, CHAIN_A, 100, events.upload("0xup1", 100))
    outcomes = await _ingest(reconciler, CHAIN_A, 120, events.revoke("0xup1", "0xr1", 110))
    assert outcomes[0].status == OutcomeStatus.PENDING
    assert isinstance(outcomes[0].error, InvalidTransitionError)

    # The grant it revokes turns up 40 blocks later.
    outcomes = await _ingest(reconciler, CHAIN_A, 150, events.grant("0xup1", "0xg1", 105))
    assert [o.event.ledger_tx_ref for o in outcomes] == ["0xg1", "0xr1"]
    assert await record_index.grant_state(R1, "bob") == GrantState.REVOKED
    assert reconciler.orphans == []


async def test_orphan_revoke_reported_beyond_retry_window(reconciler, record_index, audit_log, events):
    await _ingest(reconciler, CHAIN_A, 100, events.upload("0xup1", 100))
    revoke = events.revoke("0xup1", "0xr1", 110)
    await _ingest(reconciler, CHAIN_A, 120, revoke)

    outcomes = await reconciler.advance(CHAIN_A, 160)
    assert outcomes == []
    outcomes = await reconciler.advance(CHAIN_A, 161)
    assert [o.status for o in outcomes] == [OutcomeStatus.ORPHANED]

    orphan = reconciler.orphans[0]
    assert isinstance(orphan, OrphanEventError)
    assert orphan.event_id == revoke.event_id
    assert isinstance(orphan.__cause__, InvalidTransitionError)
    assert reconciler.pending_events() == []
    assert await record_index.grant_state(R1, "bob") == GrantState.NO_GRANT
    assert not await audit_log.contains(revoke.event_id)


async def test_pending_on_one_chain_does_not_expire_on_another(reconciler, events):
    await _ingest(reconciler, CHAIN_A, 110, events.grant("0xup1", "0xg1", 105))
    await reconciler.advance(ChainId.CHAIN_B, 10_000)
    assert len(reconciler.pending_events(CHAIN_A)) == 1
    assert reconciler.lowest_unapplied_height(CHAIN_A) == 105


# ---------- Reorg ----------


async def test_rewind_drops_unfinalized_events_at_or_above_height(reconciler, record_index, events):
    await reconciler.submit(events.upload("0xup1", 100))
    await reconciler.submit(events.upload("0xstale", 103))
    dropped = reconciler.rewind(CHAIN_A, 103)
    assert dropped == 1
    await reconciler.advance(CHAIN_A, 110)
    assert await record_index.get(R1) is not None
    assert await record_index.get(derive_record_id(CHAIN_A, "0xstale")) is None


@pytest.mark.parametrize("chain", list(ChainId))
async def test_lowest_unapplied_height_empty(reconciler, chain):
    assert reconciler.lowest_unapplied_height(chain) is None
