from app.core.session_store import SessionStore, Turn


def _user(text):
    return Turn(role="user", content=text)


def _assistant(text):
    return Turn(role="assistant", content=text)


def test_append_creates_session_lazily():
    store = SessionStore()
    assert store.size() == 0

    store.append("s1", _user("hi"))

    assert store.size() == 1
    assert store.turns("s1") == (_user("hi"),)


def test_recent_returns_bounded_suffix_in_arrival_order():
    store = SessionStore()
    for idx in range(5):
        store.append("s1", _user(f"q{idx}"))
        store.append("s1", _assistant(f"a{idx}"))

    recent = store.recent("s1", 3)

    assert [turn.content for turn in recent] == ["a3", "q4", "a4"]
    assert len(store.recent("s1", 100)) == 10
    assert store.recent("s1", 0) == ()


def test_recent_on_unknown_session_is_empty_and_does_not_create_it():
    store = SessionStore()

    assert store.recent("missing", 8) == ()
    assert store.size() == 0


def test_duplicate_content_is_kept():
    store = SessionStore()
    store.append("s1", _user("same"))
    store.append("s1", _user("same"))

    assert len(store.turns("s1")) == 2


def test_clear_removes_session_and_is_noop_when_missing():
    store = SessionStore()
    store.append("s1", _user("hi"))

    assert store.clear("s1") is True
    assert store.recent("s1", 8) == ()
    assert store.clear("s1") is False
    assert store.clear("never-seen") is False


def test_sessions_are_isolated():
    store = SessionStore()
    store.append("a", _user("for a"))
    store.append("b", _user("for b"))

    assert [turn.content for turn in store.recent("a", 8)] == ["for a"]
    assert [turn.content for turn in store.recent("b", 8)] == ["for b"]


def test_max_sessions_evicts_least_recently_appended():
    store = SessionStore(max_sessions=2)
    store.append("a", _user("1"))
    store.append("b", _user("2"))
    store.append("a", _user("3"))
    store.append("c", _user("4"))

    assert store.size() == 2
    assert store.recent("b", 8) == ()
    assert [turn.content for turn in store.recent("a", 8)] == ["1", "3"]


def test_unbounded_by_default():
    store = SessionStore()
    for idx in range(50):
        store.append(f"s{idx}", _user("x"))

    assert store.size() == 50
