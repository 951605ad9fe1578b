"""Concurrency tests for the lifecycle service on the in-memory store.

Scenario:
- 10 threads race to move the same PICKUP_PENDING shipment to IN_TRANSIT.
- Exactly one wins; the others see IN_TRANSIT and get an identity
  rejection.  The log holds exactly one IN_TRANSIT event.

A second scenario appends location scans from many threads and checks
that sequences stay gap-free and unique.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import pytest

from modules.shipments.constants import ShipmentStatus
from modules.shipments.exceptions import InvalidTransitionError

pytestmark = pytest.mark.unit

NUM_WORKERS = 10


def test_concurrent_status_changes_serialize(memory_service, shipment_dto):
    shipment = memory_service.create_shipment(shipment_dto())
    barrier = threading.Barrier(NUM_WORKERS)

    def attempt(_: int) -> str:
        barrier.wait()
        try:
            memory_service.change_status(shipment.id, ShipmentStatus.IN_TRANSIT)
        except InvalidTransitionError as exc:
            return exc.reason
        return "success"

    with ThreadPoolExecutor(max_workers=NUM_WORKERS) as pool:
        futures = [pool.submit(attempt, i) for i in range(NUM_WORKERS)]
        results = [future.result() for future in as_completed(futures)]

    assert results.count("success") == 1
    assert results.count("identity transition") == NUM_WORKERS - 1

    events = memory_service.list_events(shipment.id)
    transit_events = [e for e in events if e.resulting_status == ShipmentStatus.IN_TRANSIT]
    assert len(transit_events) == 1
    assert memory_service.get_shipment(shipment.id).status == ShipmentStatus.IN_TRANSIT


def test_concurrent_appends_keep_sequence_gap_free(memory_service, shipment_dto):
    shipment = memory_service.create_shipment(shipment_dto())
    memory_service.change_status(shipment.id, ShipmentStatus.IN_TRANSIT)

    def scan(i: int) -> None:
        memory_service.record_location(shipment.id, f"Hub {i}")

    with ThreadPoolExecutor(max_workers=NUM_WORKERS) as pool:
        for future in as_completed(pool.submit(scan, i) for i in range(NUM_WORKERS * 3)):
            future.result()

    events = memory_service.list_events(shipment.id)
    assert [e.sequence for e in events] == list(range(1, len(events) + 1))
    assert len(events) == 2 + NUM_WORKERS * 3


def test_different_shipments_do_not_share_a_lock(memory_store, memory_service, shipment_dto):
    first = memory_service.create_shipment(shipment_dto("ORD-1"))
    second = memory_service.create_shipment(shipment_dto("ORD-2"))
    holding = threading.Event()
    release = threading.Event()

    def hold_first() -> None:
        with memory_store.unit_of_work(memory_store.lock_for(first.id)):
            holding.set()
            release.wait(timeout=5)

    holder = threading.Thread(target=hold_first)
    holder.start()
    try:
        assert holding.wait(timeout=5)
        # Must not block while the first shipment is locked by another thread.
        result = memory_service.change_status(second.id, ShipmentStatus.IN_TRANSIT)
        assert result.shipment.status == ShipmentStatus.IN_TRANSIT
    finally:
        release.set()
        holder.join(timeout=5)
