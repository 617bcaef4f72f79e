import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from snippetbox.auth.session import (
    CSRF_KEY,
    USER_ID_KEY,
    SessionManager,
    SqlStore,
    sign_token,
    unsign_token,
)
from snippetbox.core.errors import NotFound


def test_load_without_token_creates_anonymous_session(manager):
    s = manager.load(None)
    assert s.is_new
    assert s.token
    assert s.user_id is None
    assert s.get(CSRF_KEY)


def test_load_unknown_token_yields_fresh_session(manager):
    s = manager.load("made-up-token")
    assert s.is_new
    assert s.token != "made-up-token"
    assert not manager.valid("made-up-token")


def test_load_existing_token_returns_same_session(manager):
    s = manager.load(None)
    s.put("colour", "blue")
    again = manager.load(s.token)
    assert not again.is_new
    assert again.token == s.token
    assert again.get("colour") == "blue"


def test_put_get_remove_pop(manager):
    token = manager.create()
    manager.put(token, "a", 1)
    assert manager.get(token, "a") == 1
    manager.remove(token, "a")
    assert manager.get(token, "a") is None
    manager.put(token, "flash", "hello")
    assert manager.pop(token, "flash") == "hello"
    assert manager.pop(token, "flash") is None


def test_expired_session_treated_as_absent(manager, clock):
    s = manager.load(None)
    s.put(USER_ID_KEY, 7)
    clock.advance(seconds=3599)
    assert manager.valid(s.token)
    clock.advance(seconds=1)
    assert not manager.valid(s.token)
    assert manager.get(s.token, USER_ID_KEY) is None
    fresh = manager.load(s.token)
    assert fresh.is_new and fresh.token != s.token
    assert fresh.user_id is None


def test_fixed_ttl_is_not_extended_by_activity(manager, clock):
    token = manager.create()
    for _ in range(5):
        clock.advance(minutes=10)
        manager.put(token, "seen", True)
    clock.advance(minutes=15)
    assert not manager.valid(token)


def test_renew_token_moves_data_and_kills_old_token(manager):
    s = manager.load(None)
    s.put("cart", [1, 2])
    csrf = s.csrf_token
    old = s.token

    new = s.renew_token()
    assert new != old
    assert s.rotated
    assert s.get("cart") == [1, 2]
    assert s.csrf_token == csrf

    assert not manager.valid(old)
    assert manager.get(old, "cart") is None
    with pytest.raises(NotFound):
        manager.put(old, "cart", [])
    with pytest.raises(NotFound):
        manager.update(old, "n", lambda v: 1)
    assert manager.load(old).token not in (old, new)


def test_destroy_moves_handle_to_empty_session(manager):
    s = manager.load(None)
    s.put(USER_ID_KEY, 3)
    old = s.token
    s.destroy()
    assert not manager.valid(old)
    assert s.token != old
    assert s.user_id is None


def test_flash_is_one_shot(manager):
    s = manager.load(None)
    s.flash("hi there")
    assert s.pop_flash() == "hi there"
    assert s.pop_flash() == ""


def test_concurrent_increments_on_one_token_are_not_lost(manager):
    token = manager.create()
    n = 200

    with ThreadPoolExecutor(max_workers=16) as pool:
        for f in [pool.submit(manager.update, token, "counter", lambda v: (v or 0) + 1) for _ in range(n)]:
            f.result()

    assert manager.get(token, "counter") == n


def test_concurrent_puts_on_different_keys_all_survive(manager):
    token = manager.create()
    barrier = threading.Barrier(20)

    def worker(i: int) -> None:
        barrier.wait()
        manager.put(token, f"key{i}", i)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for i in range(20):
        assert manager.get(token, f"key{i}") == i


def test_distinct_tokens_do_not_share_a_lock(manager):
    a = manager.create()
    b = manager.create()
    with manager._lock(a):
        # would deadlock if b shared a's lock
        manager.put(b, "x", 1)
        assert list(manager._locks) == [a]
    assert manager.get(b, "x") == 1
    assert manager._locks == {}


def test_lock_entries_do_not_outlive_their_sessions(manager, clock):
    tokens = [manager.load(None).token for _ in range(30)]
    for t in tokens:
        manager.put(t, USER_ID_KEY, 1)
    assert manager._locks == {}

    clock.advance(hours=2)
    assert not manager.valid(tokens[0])
    assert manager.purge_expired() == 29
    assert manager._locks == {}
    assert manager.store._items == {}


def test_lock_entry_shared_while_contended(manager):
    token = manager.create()
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with manager._lock(token):
            entered.set()
            release.wait(5)

    t = threading.Thread(target=holder)
    t.start()
    entered.wait(5)
    with ThreadPoolExecutor(max_workers=1) as pool:
        waiter = pool.submit(manager.update, token, "n", lambda v: (v or 0) + 1)
        assert not waiter.done()
        release.set()
        t.join()
        assert waiter.result(timeout=5) == 1
    assert manager._locks == {}


def test_csrf_token_created_once_and_rotatable(manager):
    s = manager.load(None)
    first = s.csrf_token
    assert s.csrf_token == first
    assert s.rotate_csrf_token() != first
    assert s.csrf_token != first


def test_sql_store_round_trip(engine, clock):
    mgr = SessionManager(SqlStore(engine), lifetime=60, clock=clock)
    s = mgr.load(None)
    s.put(USER_ID_KEY, 42)
    assert mgr.load(s.token).user_id == 42

    old = s.token
    s.renew_token()
    assert not mgr.valid(old)
    assert s.user_id == 42

    clock.advance(seconds=61)
    assert not mgr.valid(s.token)
    assert mgr.purge_expired() == 0  # already removed on access


def test_purge_expired(manager, clock):
    for _ in range(3):
        manager.create()
    clock.advance(hours=2)
    assert manager.purge_expired() == 3


def test_cookie_signature():
    signed = sign_token("abc", secret="k1")
    assert signed != "abc"
    assert unsign_token(signed, secret="k1", max_age=60) == "abc"
    assert unsign_token(signed, secret="other", max_age=60) is None
    assert unsign_token(signed + "x", secret="k1", max_age=60) is None
    assert unsign_token("", secret="k1", max_age=60) is None
