import time

from plate_assistant.session_store import (
    RESOLVED,
    RESOLVING,
    UNRESOLVED,
    SessionStore,
    new_session_id,
    session_id_timestamp,
)
from plate_assistant.vehicle_record import VehicleRecord, synthesize_demo_record


def _record(registration, make="BMW", model="320d"):
    return VehicleRecord(registration_number=registration, make=make, model=model, found=True)


def test_get_or_create_returns_same_session():
    store = SessionStore()
    first = store.get_or_create("chat-1")
    assert store.get_or_create("chat-1") is first
    assert first.messages == []
    assert first.vehicle_info is None
    assert first.resolution_state == UNRESOLVED


def test_generated_ids_encode_creation_time():
    now = 1_700_000_000.0
    session_id = new_session_id(now)
    assert session_id.startswith("1700000000000-")
    assert session_id_timestamp(session_id) == now
    assert session_id_timestamp("session_1700000000000") == now
    assert session_id_timestamp("customer-42") is None

    created = SessionStore().get_or_create(None)
    assert abs(session_id_timestamp(created.id) - time.time()) < 5


def test_messages_are_ordered_and_windowed():
    store = SessionStore()
    for index in range(12):
        store.append_message("chat-1", "user" if index % 2 == 0 else "assistant", f"m{index}")

    recent = store.recent_messages("chat-1", limit=10)
    assert [message.content for message in recent] == [f"m{index}" for index in range(2, 12)]
    assert len(store.get("chat-1").messages) == 12


def test_attach_vehicle_info_is_idempotent():
    store = SessionStore()
    assert store.attach_vehicle_info("chat-1", _record("ABC123"), {"generation": "E90"})
    assert not store.attach_vehicle_info("chat-1", _record("XYZ987", model="X5"))

    session = store.get("chat-1")
    assert session.vehicle_info.registration_number == "ABC123"
    assert session.recommendations == {"generation": "E90"}
    assert session.resolution_state == RESOLVED


def test_demo_record_also_blocks_reattachment():
    store = SessionStore()
    store.attach_vehicle_info("chat-1", synthesize_demo_record("ABC123"))
    assert not store.attach_vehicle_info("chat-1", _record("ABC123"))
    assert store.get("chat-1").vehicle_info.is_demo


def test_resolution_state_machine():
    store = SessionStore()
    assert store.begin_resolution("chat-1")
    assert store.get("chat-1").resolution_state == RESOLVING
    assert not store.begin_resolution("chat-1")

    store.abort_resolution("chat-1")
    assert store.get("chat-1").resolution_state == UNRESOLVED

    assert store.begin_resolution("chat-1")
    store.attach_vehicle_info("chat-1", _record("ABC123"))
    assert not store.begin_resolution("chat-1")


def test_sweep_removes_sessions_older_than_ttl():
    now = 1_700_010_000.0
    store = SessionStore(ttl_seconds=3600)
    old_id = new_session_id(now - 3600.001)
    fresh_id = new_session_id(now - 10)
    store.get_or_create(old_id)
    store.get_or_create(fresh_id)
    store.get_or_create("customer-42")

    removed = store.sweep_expired(now=now)

    assert removed == [old_id]
    assert old_id not in store
    assert fresh_id in store
    assert "customer-42" in store


def test_expiry_policy_is_injectable():
    created = {"a": 0.0, "b": 100.0}
    store = SessionStore(ttl_seconds=50, created_at_fn=created.get)
    store.get_or_create("a")
    store.get_or_create("b")

    assert store.sweep_expired(now=120.0) == ["a"]
    assert store.is_expired("a", now=120.0)
    assert not store.is_expired("b", now=120.0)


def test_max_sessions_prunes_least_recent():
    store = SessionStore(max_sessions=2)
    store.get_or_create("one")
    store.get_or_create("two")
    store.get("one").updated_at = 1.0
    store.get("two").updated_at = 2.0
    store.get_or_create("three")

    assert len(store) == 2
    assert "one" not in store
    assert "three" in store


def test_sweep_leaves_resolving_session_alone():
    now = 1_700_010_000.0
    store = SessionStore(ttl_seconds=3600)
    old_id = new_session_id(now - 7200)
    store.begin_resolution(old_id)

    assert store.sweep_expired(now=now) == []
    assert store.attach_vehicle_info(old_id, _record("ABC123"))
    assert store.sweep_expired(now=now) == [old_id]


def test_prune_never_drops_resolving_session():
    store = SessionStore(max_sessions=2)
    store.begin_resolution("looking-up")
    resolving = store.get("looking-up")
    resolving.updated_at = 0.0
    store.get_or_create("two")
    store.get("two").updated_at = 2.0
    store.get_or_create("three")

    assert "looking-up" in store
    assert "three" in store
    assert "two" not in store

    store.attach_vehicle_info("looking-up", _record("ABC123"))
    assert store.get("looking-up") is resolving
    assert resolving.vehicle_info.registration_number == "ABC123"
