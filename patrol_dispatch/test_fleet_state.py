"""
Tests for the in-memory incident store and its serialised dispatch.
"""

import threading
from datetime import datetime, timedelta, timezone

from patrol_dispatch.fleet_state import IncidentStatus, IncidentStore
from patrol_dispatch.geometry import Location
from patrol_dispatch.incidents import IncidentReport

NOW = datetime(2025, 6, 1, 20, 0, tzinfo=timezone.utc)


def report(lat=-36.8485, lng=174.763, priority=5, description="Suspicious vehicle"):
    return IncidentReport(description=description, priority_level=priority, location=Location(lat, lng))


def test_incident_gets_a_unit():
    store = IncidentStore(fleet_size=80)

    incident = store.create_incident(report(), now=NOW)

    assert incident.assigned_unit_id is not None
    assert incident.assigned_at == NOW
    assert incident.status == IncidentStatus.ASSIGNED
    assert store.busy_unit_ids() == {incident.assigned_unit_id}


def test_busy_units_are_not_reused():
    store = IncidentStore(fleet_size=80)

    first = store.create_incident(report(), now=NOW)
    second = store.create_incident(report(), now=NOW)

    assert first.assigned_unit_id != second.assigned_unit_id


def test_incident_left_unassigned_when_fleet_exhausted():
    store = IncidentStore(fleet_size=2)

    store.create_incident(report(), now=NOW)
    store.create_incident(report(), now=NOW)
    third = store.create_incident(report(), now=NOW)

    assert third.assigned_unit_id is None
    assert third.assigned_at is None
    assert third.status == IncidentStatus.OPEN

    stats = store.get_stats()
    assert stats['incidents_reported'] == 3
    assert stats['incidents_dispatched'] == 2
    assert stats['incidents_unassigned'] == 1
    assert stats['available_units'] == 0


def test_resolving_releases_the_unit():
    store = IncidentStore(fleet_size=1)
    incident = store.create_incident(report(), now=NOW)

    resolved = store.resolve_incident(incident.id, now=NOW + timedelta(minutes=20))

    assert resolved.status == IncidentStatus.RESOLVED
    assert store.busy_unit_ids() == set()
    assert store.open_assignment_records() == []

    # Unit is free for the next incident
    assert store.create_incident(report(), now=NOW).assigned_unit_id == incident.assigned_unit_id


def test_resolve_is_idempotent_and_unknown_ids_are_not_found():
    store = IncidentStore(fleet_size=5)
    incident = store.create_incident(report(), now=NOW)

    store.resolve_incident(incident.id, now=NOW)
    store.resolve_incident(incident.id, now=NOW + timedelta(hours=1))

    assert store.get_incident(incident.id).resolved_at == NOW
    assert store.get_stats()['incidents_resolved'] == 1
    assert store.resolve_incident("missing") is None


def test_open_assignment_records():
    store = IncidentStore(fleet_size=10)
    incident = store.create_incident(report(lat=-36.9, lng=174.8), now=NOW)

    assert store.open_assignment_records() == [{
        'incident_id': incident.id,
        'lat': -36.9,
        'lng': 174.8,
        'assigned_unit_id': incident.assigned_unit_id,
        'assigned_at': NOW,
    }]


def test_dispatcher_receives_current_busy_set():
    calls = []

    def dispatcher(location, busy, timestamp, fleet_size):
        calls.append(set(busy))
        return f"UNIT-{len(calls) - 1:02d}"

    store = IncidentStore(fleet_size=10, dispatcher=dispatcher)
    store.create_incident(report(), now=NOW)
    store.create_incident(report(), now=NOW)

    assert calls == [set(), {"UNIT-00"}]


def test_concurrent_reports_never_share_a_unit():
    store = IncidentStore(fleet_size=5)
    results = []
    barrier = threading.Barrier(10)

    def worker():
        barrier.wait()
        results.append(store.create_incident(report(), now=NOW))

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assigned = [i.assigned_unit_id for i in results if i.assigned_unit_id]
    assert len(assigned) == 5
    assert len(set(assigned)) == 5


def test_incident_serialisation():
    store = IncidentStore(fleet_size=3)
    incident = store.create_incident(report(priority=9), now=NOW)

    data = incident.to_dict(now=NOW + timedelta(minutes=30))

    assert data['severity'] == 'high'
    assert data['freshness'] == 'warm'
    assert data['status'] == 'assigned'
    assert data['assigned_at'] == NOW.isoformat()
    assert data['resolved_at'] is None


def test_state_summary_and_clear():
    store = IncidentStore(fleet_size=3)
    store.create_incident(report(), now=NOW)

    summary = store.get_state_summary(now=NOW)
    assert len(summary['busy_units']) == 1
    assert len(summary['open_incidents']) == 1

    store.clear()
    assert store.list_incidents() == []
    assert store.get_stats()['incidents_reported'] == 0


def test_explicit_fleet_size_is_kept():
    store = IncidentStore(fleet_size=0)
    incident = store.create_incident(report(), now=NOW)

    assert store.fleet_size == 0
    assert incident.assigned_unit_id is None


def test_open_assignment_records_at_an_instant():
    store = IncidentStore(fleet_size=10)
    first = store.create_incident(report(), now=NOW)
    second = store.create_incident(report(lat=-36.9), now=NOW + timedelta(minutes=5))
    store.resolve_incident(first.id, now=NOW + timedelta(minutes=10))

    def open_at(minutes):
        return [r['incident_id'] for r in store.open_assignment_records(at=NOW + timedelta(minutes=minutes))]

    assert open_at(-1) == []
    assert open_at(0) == [first.id]
    assert sorted(open_at(7)) == sorted([first.id, second.id])
    assert open_at(10) == [second.id]
    assert [r['incident_id'] for r in store.open_assignment_records()] == [second.id]
