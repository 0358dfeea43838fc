"""Tests for AppDb, the state container."""

from refrax import AppDb


class TestAppDb:
    def test_read_before_seed(self):
        assert AppDb().read() is None

    def test_commit_replaces(self):
        db = AppDb({"n": 0})
        db.commit({"n": 1})
        assert db.read() == {"n": 1}
        assert db.version == 1

    def test_old_snapshot_stays_valid(self):
        first = {"n": 0}
        db = AppDb(first)
        snapshot = db.read()
        db.commit({"n": 1})
        assert snapshot is first
        assert snapshot == {"n": 0}

    def test_listeners_run_before_commit_returns(self):
        db = AppDb("a")
        log = []
        db.watch(lambda old, new: log.append((old, new, db.read())))
        db.commit("b")
        assert log == [("a", "b", "b")]

    def test_unwatch(self):
        db = AppDb(0)
        log = []
        unwatch = db.watch(lambda old, new: log.append(new))
        db.commit(1)
        unwatch()
        unwatch()  # second call is a no-op
        db.commit(2)
        assert log == [1]
