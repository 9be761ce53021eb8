import logging
import time

import pytest
from sqlalchemy.dialects import sqlite

from app.crud import BookingManager, InMemoryDocumentStore, PersistenceAdapter
from app.models import BookingStatus, Document
from app.utils.errors import PersistenceError


class BrokenMirror(InMemoryDocumentStore):
    def put(self, collection, doc_id, data):
        raise OSError("disk full")


class SlowStore(InMemoryDocumentStore):
    def ping(self):
        time.sleep(0.3)


def test_write_and_read_fall_back_to_mirror(run, failing_remote, caplog):
    caplog.set_level(logging.WARNING, logger="app.crud.persistence")
    adapter = PersistenceAdapter(failing_remote, InMemoryDocumentStore())

    doc_id = run(adapter.write("bookings", None, {"status": "REQUESTED"}))
    doc = run(adapter.fetch_one("bookings", doc_id))

    assert doc == {"id": doc_id, "status": "REQUESTED"}
    assert failing_remote.calls == 2
    assert any("using local mirror" in r.getMessage() for r in caplog.records)


def test_remote_results_are_mirrored_for_later_outages(run, sql_store, failing_remote):
    mirror = InMemoryDocumentStore()
    adapter = PersistenceAdapter(sql_store, mirror)
    doc_id = run(adapter.write("bookings", "b1", {"status": "REQUESTED", "date": "2024-06-01"}))
    run(adapter.update("bookings", doc_id, {"status": "OFFERED"}))

    adapter.remote = failing_remote
    assert run(adapter.fetch_one("bookings", "b1"))["status"] == "OFFERED"
    assert [d["id"] for d in run(adapter.fetch_collection("bookings", [("status", "==", "OFFERED")]))] == ["b1"]


def test_offline_writes_survive_remote_recovery(run, sql_store, failing_remote):
    adapter = PersistenceAdapter(failing_remote, InMemoryDocumentStore())
    run(adapter.write("bookings", "b1", {"status": "REQUESTED", "date": "2024-06-01"}))
    run(adapter.update("bookings", "b1", {"status": "OFFERED"}))

    adapter.remote = sql_store
    assert run(adapter.fetch_one("bookings", "b1"))["status"] == "OFFERED"
    assert sql_store.get("bookings", "b1")["status"] == "OFFERED"
    assert [d["id"] for d in run(adapter.fetch_collection("bookings"))] == ["b1"]

    # Once replayed, later changes go through the remote store as usual
    won = run(adapter.update_if("bookings", "b1", {"status": ["OFFERED"]}, {"status": "CONFIRMED"}))
    assert won["status"] == "CONFIRMED"
    assert sql_store.get("bookings", "b1")["status"] == "CONFIRMED"


def test_booking_created_offline_is_found_after_recovery(run, sql_store, failing_remote, booking_draft):
    adapter = PersistenceAdapter(failing_remote, InMemoryDocumentStore())
    booking = run(BookingManager(adapter).create(booking_draft(clientName="Northside NHS Trust")))

    adapter.remote = sql_store
    found = run(BookingManager(adapter).get(booking.id))
    assert found is not None
    assert found.status == BookingStatus.REQUESTED


def test_both_paths_failing_reports_write_failed(run, failing_remote):
    adapter = PersistenceAdapter(failing_remote, BrokenMirror())
    with pytest.raises(PersistenceError) as exc:
        run(adapter.write("bookings", None, {"status": "REQUESTED"}))
    assert exc.value.kind == "persistence"
    assert exc.value.message == "write failed"


def test_missing_document_is_none_not_error(run, adapter):
    assert run(adapter.fetch_one("bookings", "nope")) is None
    assert run(adapter.update("bookings", "nope", {"status": "CANCELLED"})) is None


@pytest.mark.parametrize("store_fixture", ["sql_store", "mirror"])
def test_compare_and_set_only_applies_when_expected_holds(run, request, store_fixture):
    store = request.getfixturevalue(store_fixture)
    adapter = PersistenceAdapter(store if store_fixture == "sql_store" else None, InMemoryDocumentStore() if store_fixture == "sql_store" else store)
    run(adapter.write("bookings", "b1", {"status": "OFFERED", "interpreterId": None}))

    lost = run(adapter.update_if("bookings", "b1", {"status": ["CONFIRMED"]}, {"interpreterId": "x"}))
    won = run(adapter.update_if("bookings", "b1", {"status": ["OFFERED", "SEARCHING"]}, {"status": "CONFIRMED", "interpreterId": "x"}))
    again = run(adapter.update_if("bookings", "b1", {"status": ["OFFERED", "SEARCHING"]}, {"interpreterId": "y"}))

    assert lost is None
    assert won["status"] == "CONFIRMED" and won["interpreterId"] == "x"
    assert again is None
    assert run(adapter.fetch_one("bookings", "b1"))["interpreterId"] == "x"


def test_sql_store_bumps_version_on_every_write(sql_store):
    sql_store.put("rates", "r1", {"amountPerUnit": 40})
    sql_store.patch("rates", "r1", {"amountPerUnit": 45})
    with sql_store._session_factory() as db:
        row = db.get(Document, ("rates", "r1"))
        assert row.version == 2
        assert row.data == {"amountPerUnit": 45}


def test_sql_store_filters_in_the_database(sql_store):
    sql_store.put("timesheets", "t1", {"status": "APPROVED", "clientId": "c1", "adminApproved": True, "clientInvoiceId": None})
    sql_store.put("timesheets", "t2", {"status": "INVOICED", "clientId": "c1", "adminApproved": True, "clientInvoiceId": "i1"})
    sql_store.put("timesheets", "t3", {"status": "APPROVED", "clientId": "c2", "adminApproved": True})
    filters = [
        ("clientId", "==", "c1"),
        ("status", "in", ["APPROVED", "INVOICED"]),
        ("adminApproved", "==", True),
        ("clientInvoiceId", "==", None),
    ]

    assert [r["id"] for r in sql_store.query("timesheets", filters)] == ["t1"]
    compiled = str(sql_store._select("timesheets", filters).compile(dialect=sqlite.dialect())).lower()
    assert compiled.count("json_extract") == 2


def test_query_filters_and_ordering(mirror):
    mirror.put("timesheets", "t1", {"status": "APPROVED", "submittedAt": "2024-06-02"})
    mirror.put("timesheets", "t2", {"status": "INVOICED", "submittedAt": "2024-06-03", "interpreterInvoiceId": "i1"})
    mirror.put("timesheets", "t3", {"status": "REJECTED"})

    rows = mirror.query("timesheets", [("status", "in", ["APPROVED", "INVOICED"])], ("submittedAt", True))
    assert [r["id"] for r in rows] == ["t2", "t1"]
    unlinked = mirror.query("timesheets", [("interpreterInvoiceId", "==", None)], ("submittedAt", False))
    assert [r["id"] for r in unlinked] == ["t1", "t3"]
    assert [r["id"] for r in mirror.query("timesheets", [("status", "!=", "REJECTED"), ("submittedAt", ">=", "2024-06-03")])] == ["t2"]
    with pytest.raises(ValueError):
        mirror.query("timesheets", [("status", "like", "A%")])


def test_reads_are_copies(mirror):
    mirror.put("bookings", "b1", {"tags": ["a"]})
    doc = mirror.get("bookings", "b1")
    doc["tags"].append("b")
    assert mirror.get("bookings", "b1")["tags"] == ["a"]


def test_check_connection(run, sql_store, failing_remote):
    assert run(PersistenceAdapter(sql_store).check_connection()) is True
    assert run(PersistenceAdapter(failing_remote).check_connection()) is False
    assert run(PersistenceAdapter(None).check_connection()) is False
    assert run(PersistenceAdapter(SlowStore(), probe_timeout=0.05).check_connection()) is False
