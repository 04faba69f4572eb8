"""Tests for the in-memory entity store."""

import threading

import pytest

from entity_store import EntityStore, new_entity_id
from exceptions import IllegalTransitionError, StaleEntityError
from models import ApplicationStatus, EntityProfile, EntityType
from utilities.lifecycle import LifecycleAction


def _entity(entity_id="ENT-00000001", status=ApplicationStatus.PEER_REVIEW):
    return EntityProfile(id=entity_id, type=EntityType.COMPANY, name="Store Test Ltd", status=status)


@pytest.fixture
def store():
    return EntityStore([_entity()])


def test_new_entity_id_format():
    entity_id = new_entity_id()
    assert entity_id.startswith("ENT-")
    assert len(entity_id) == 12
    assert entity_id[4:] == entity_id[4:].upper()
    assert new_entity_id() != entity_id


class TestBasics:
    def test_get_unknown(self, store):
        with pytest.raises(KeyError):
            store.get("ENT-MISSING0")

    def test_add_duplicate(self, store):
        with pytest.raises(ValueError):
            store.add(_entity())

    def test_all_in_insertion_order(self, store):
        store.add(_entity("ENT-00000002"))
        assert [e.id for e in store.all()] == ["ENT-00000001", "ENT-00000002"]
        assert len(store) == 2
        assert "ENT-00000002" in store


class TestCompareAndSwap:
    def test_swap_when_status_matches(self, store):
        updated = _entity(status=ApplicationStatus.APPROVED)
        store.compare_and_swap("ENT-00000001", ApplicationStatus.PEER_REVIEW, updated)
        assert store.get("ENT-00000001").status == ApplicationStatus.APPROVED

    def test_stale_write_rejected(self, store):
        store.compare_and_swap("ENT-00000001", ApplicationStatus.PEER_REVIEW, _entity(status=ApplicationStatus.APPROVED))
        with pytest.raises(StaleEntityError) as exc:
            store.compare_and_swap("ENT-00000001", ApplicationStatus.PEER_REVIEW, _entity(status=ApplicationStatus.REJECTED))
        assert exc.value.actual_status == ApplicationStatus.APPROVED
        assert store.get("ENT-00000001").status == ApplicationStatus.APPROVED

    def test_type_is_immutable(self, store):
        changed = _entity().model_copy(update={"type": EntityType.TRUST})
        with pytest.raises(ValueError):
            store.compare_and_swap("ENT-00000001", ApplicationStatus.PEER_REVIEW, changed)

    def test_id_is_immutable(self, store):
        with pytest.raises(ValueError):
            store.update("ENT-00000001", lambda e: e.model_copy(update={"id": "ENT-OTHER000"}))


class TestUpdate:
    def test_failed_mutation_leaves_entity(self, store):
        before = store.get("ENT-00000001")

        def boom(entity):
            raise RuntimeError("mutation failed")

        with pytest.raises(RuntimeError):
            store.update("ENT-00000001", boom)
        assert store.get("ENT-00000001") is before

    def test_transition(self, store):
        entity = store.transition("ENT-00000001", LifecycleAction.APPROVE)
        assert entity.status == ApplicationStatus.APPROVED
        assert store.get("ENT-00000001") is entity

    def test_illegal_transition_leaves_entity(self, store):
        with pytest.raises(IllegalTransitionError):
            store.transition("ENT-00000001", LifecycleAction.CONFIRM_OFFBOARDING)
        assert store.get("ENT-00000001").status == ApplicationStatus.PEER_REVIEW

    def test_concurrent_decisions_only_one_wins(self, store):
        outcomes = []
        barrier = threading.Barrier(2)

        def act(action):
            barrier.wait()
            try:
                outcomes.append(store.transition("ENT-00000001", action).status)
            except IllegalTransitionError:
                outcomes.append("refused")

        threads = [
            threading.Thread(target=act, args=(LifecycleAction.APPROVE,)),
            threading.Thread(target=act, args=(LifecycleAction.REJECT,)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("refused") == 1
        assert store.get("ENT-00000001").status in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED)
