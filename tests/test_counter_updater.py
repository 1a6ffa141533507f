from __future__ import annotations

import unittest

from google.api_core import exceptions as gexc

from follow_counters.counter_updater import CounterDelta, TransactionalCounterUpdater
from follow_counters.event_utils import FollowEdge
from tests.firestore_fakes import FakeDB, FakeFirestoreModule, FakeIncrement


def _updater(db: FakeDB, **kwargs) -> TransactionalCounterUpdater:
    return TransactionalCounterUpdater(db, firestore_module=FakeFirestoreModule(), **kwargs)


class TestTransactionalCounterUpdater(unittest.TestCase):
    def setUp(self) -> None:
        self.db = FakeDB()
        self.db.add_user("U1")
        self.db.add_user("U2")

    def test_edge_deltas_target_followers_and_follower_following(self) -> None:
        upd = _updater(self.db)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U1", follower_uid="U2"), 1)
        self.assertEqual(first.ref.path, "users/U1")
        self.assertEqual(first.field, "followersCount")
        self.assertEqual(second.ref.path, "users/U2")
        self.assertEqual(second.field, "followingCount")
        self.assertEqual((first.delta, second.delta), (1, 1))

    def test_apply_stages_two_relative_increments_in_one_transaction(self) -> None:
        upd = _updater(self.db)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U1", follower_uid="U2"), 1)
        res = upd.apply(first, second)

        self.assertTrue(res.applied)
        self.assertEqual(res.reason, "applied")
        self.assertEqual(len(self.db.transactions), 1)
        writes = self.db.transactions[0].writes
        self.assertEqual([op for op, _, _ in writes], ["update", "update"])
        for _, _, data in writes:
            (value,) = data.values()
            self.assertIsInstance(value, FakeIncrement)
        self.assertEqual(self.db.counters("U1"), (1, 0))
        self.assertEqual(self.db.counters("U2"), (0, 1))

    def test_failed_commit_applies_neither_delta(self) -> None:
        upd = _updater(self.db, max_attempts=2)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U1", follower_uid="U2"), 1)
        self.db.fail_next_commit(gexc.Aborted("contention"), times=2)

        with self.assertRaises(ValueError) as ctx:
            upd.apply(first, second)

        self.assertIsInstance(ctx.exception.__cause__, gexc.Aborted)
        self.assertEqual(self.db.transactions[0].attempts, 2)
        self.assertEqual(self.db.counters("U1"), (0, 0))
        self.assertEqual(self.db.counters("U2"), (0, 0))
        self.assertEqual(self.db.commits, 0)

    def test_aborted_commit_is_rerun_by_the_client_and_applied_once(self) -> None:
        upd = _updater(self.db)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U1", follower_uid="U2"), 1)
        self.db.fail_next_commit(gexc.Aborted("contention"))

        res = upd.apply(first, second)

        self.assertTrue(res.applied)
        self.assertEqual(self.db.transactions[0].attempts, 2)
        self.assertEqual(len(self.db.transactions[0].writes), 2)
        self.assertEqual(self.db.counters("U1"), (1, 0))
        self.assertEqual(self.db.counters("U2"), (0, 1))

    def test_missing_follower_record_fails_whole_transaction(self) -> None:
        upd = _updater(self.db)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U1", follower_uid="ghost"), 1)

        with self.assertRaises(gexc.NotFound):
            upd.apply(first, second)

        # Target side must not have moved on its own.
        self.assertEqual(self.db.counters("U1"), (0, 0))
        self.assertNotIn("users/ghost", self.db.store)

    def test_self_edge_updates_one_doc_once(self) -> None:
        upd = _updater(self.db)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U1", follower_uid="U1"), 1)
        upd.apply(first, second)

        self.assertEqual(len(self.db.transactions[0].writes), 1)
        self.assertEqual(self.db.counters("U1"), (1, 1))

    def test_missing_counter_field_starts_from_zero(self) -> None:
        self.db.store["users/U3"] = {"displayName": "u3"}
        upd = _updater(self.db)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U3", follower_uid="U2"), 1)
        upd.apply(first, second)
        self.assertEqual(self.db.store["users/U3"], {"displayName": "u3", "followersCount": 1})

    def test_custom_collection_and_field_names(self) -> None:
        self.db.store["profiles/A"] = {"nFollowers": 4}
        self.db.store["profiles/B"] = {"nFollowing": 2}
        upd = _updater(self.db, users_collection="profiles", followers_field="nFollowers", following_field="nFollowing")
        first, second = upd.edge_deltas(FollowEdge(target_uid="A", follower_uid="B"), -1)
        upd.apply(first, second)
        self.assertEqual(self.db.store["profiles/A"]["nFollowers"], 3)
        self.assertEqual(self.db.store["profiles/B"]["nFollowing"], 1)

    def test_rejects_zero_and_non_integer_deltas(self) -> None:
        upd = _updater(self.db)
        ref = upd.user_ref("U1")
        ok = CounterDelta(ref=upd.user_ref("U2"), field="followingCount", delta=1)
        for bad in (0, 1.0, True, "1"):
            with self.subTest(delta=bad):
                with self.assertRaises(ValueError):
                    upd.apply(CounterDelta(ref=ref, field="followersCount", delta=bad), ok)
        self.assertEqual(self.db.transactions, [])

    def test_max_attempts_is_passed_to_the_transaction(self) -> None:
        upd = _updater(self.db, max_attempts=2)
        first, second = upd.edge_deltas(FollowEdge(target_uid="U1", follower_uid="U2"), 1)
        upd.apply(first, second)
        self.assertEqual(self.db.transactions[0].max_attempts, 2)


if __name__ == "__main__":
    unittest.main()
