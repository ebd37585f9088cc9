"""Tests for the session wrapper: snapshot reads, all-or-nothing updates, destroy."""
import pytest

from login_web.errors import SessionWriteFailure
from login_web.session import UserSession


class FailingStore(dict):
    """Mapping whose writes fail, standing in for an unavailable session store."""

    def __setitem__(self, key, value):
        raise OSError("store unavailable")

    def update(self, *args, **kwargs):
        raise OSError("store unavailable")


def test_get_empty_session():
    data = UserSession({}).get()
    assert data.state_value is None
    assert data.code_verifier is None
    assert data.user_id is None
    assert data.has_pending_handshake is False


def test_update_merges_fields():
    store = {"userId": 3}
    session = UserSession(store)

    def mutate(d):
        d["state_value"] = "S"
        d["code_verifier"] = "V"

    session.update(mutate)
    assert store == {"userId": 3, "state_value": "S", "code_verifier": "V"}
    assert session.get().has_pending_handshake is True


def test_update_can_remove_fields():
    store = {"state_value": "S", "code_verifier": "V"}
    UserSession(store).update(lambda d: d.clear())
    assert store == {}


def test_update_mutator_error_leaves_session_untouched():
    store = {"userId": 1}

    def mutate(d):
        d["state_value"] = "S"
        raise ValueError("halfway")

    with pytest.raises(SessionWriteFailure):
        UserSession(store).update(mutate)
    assert store == {"userId": 1}


def test_update_rejects_non_serialisable_value():
    store = {}

    def mutate(d):
        d["state_value"] = "S"
        d["code_verifier"] = object()

    with pytest.raises(SessionWriteFailure):
        UserSession(store).update(mutate)
    assert store == {}


def test_update_store_failure_raises_session_write_failure():
    store = FailingStore()
    with pytest.raises(SessionWriteFailure):
        UserSession(store).update(lambda d: d.update(state_value="S", code_verifier="V"))
    assert "state_value" not in store


def test_destroy_clears_everything():
    store = {"userId": 1, "state_value": "S"}
    UserSession(store).destroy()
    assert store == {}
