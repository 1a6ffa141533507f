from __future__ import annotations

import unittest

from follow_counters.errors import InvalidEdgeEvent
from follow_counters.event_utils import (
    CREATED,
    DELETED,
    FollowEdge,
    edge_event_kind,
    edge_from_payload,
    normalize_doc_id,
    parse_edge_path,
)


class TestParseEdgePath(unittest.TestCase):
    def test_accepts_relative_subject_and_fully_qualified_paths(self) -> None:
        want = FollowEdge(target_uid="U1", follower_uid="U2")
        for path in (
            "users/U1/followers/U2",
            "/users/U1/followers/U2/",
            "documents/users/U1/followers/U2",
            "projects/demo/databases/(default)/documents/users/U1/followers/U2",
        ):
            with self.subTest(path=path):
                self.assertEqual(parse_edge_path(path), want)

    def test_rejects_paths_that_are_not_follow_edges(self) -> None:
        for path in (
            "",
            "users/U1",
            "users/U1/following/U2",
            "posts/U1/followers/U2",
            "users/U1/followers/U2/extra/doc",
            "users//followers/U2",
        ):
            with self.subTest(path=path):
                with self.assertRaises(InvalidEdgeEvent):
                    parse_edge_path(path)

    def test_custom_collection_names(self) -> None:
        edge = parse_edge_path("profiles/A/fans/B", users_collection="profiles", followers_collection="fans")
        self.assertEqual(edge, FollowEdge(target_uid="A", follower_uid="B"))


class TestEdgeFromPayload(unittest.TestCase):
    def test_explicit_ids(self) -> None:
        self.assertEqual(edge_from_payload({"targetUid": "U1", "followerUid": "U2"}), FollowEdge("U1", "U2"))
        self.assertEqual(edge_from_payload({"target_uid": " U1 ", "follower_uid": "U2"}), FollowEdge("U1", "U2"))

    def test_document_path(self) -> None:
        self.assertEqual(edge_from_payload({"document": "users/U1/followers/U2"}), FollowEdge("U1", "U2"))

    def test_partial_ids_are_rejected(self) -> None:
        with self.assertRaises(InvalidEdgeEvent):
            edge_from_payload({"targetUid": "U1"})
        with self.assertRaises(InvalidEdgeEvent):
            edge_from_payload({"eventType": "created"})


class TestEdgeEventKind(unittest.TestCase):
    def test_known_aliases(self) -> None:
        self.assertEqual(edge_event_kind("google.cloud.firestore.document.v1.created"), CREATED)
        self.assertEqual(edge_event_kind("google.cloud.firestore.document.v1.deleted"), DELETED)
        self.assertEqual(edge_event_kind("onCreate"), CREATED)
        self.assertEqual(edge_event_kind(" deleted "), DELETED)

    def test_updates_and_unknowns_are_none(self) -> None:
        self.assertIsNone(edge_event_kind("google.cloud.firestore.document.v1.updated"))
        self.assertIsNone(edge_event_kind("google.cloud.firestore.document.v1.written"))
        self.assertIsNone(edge_event_kind(None))


class TestNormalizeDocId(unittest.TestCase):
    def test_safe_ids_are_unchanged(self) -> None:
        self.assertEqual(normalize_doc_id("evt-1"), "evt-1")
        self.assertEqual(normalize_doc_id("projects:demo.v1"), "projects:demo.v1")
        self.assertEqual(normalize_doc_id(""), "unknown")

    def test_rewritten_ids_carry_a_digest_of_the_raw_value(self) -> None:
        v = normalize_doc_id("a/b c")
        self.assertTrue(v.startswith("a_b_c_"))
        self.assertEqual(len(v), len("a_b_c_") + 64)
        self.assertEqual(v, normalize_doc_id("a/b c"))
        self.assertNotIn("/", normalize_doc_id("///"))
        self.assertNotIn(normalize_doc_id(".."), ("..", "."))

    def test_distinct_ids_do_not_collide(self) -> None:
        ids = ["evt/1", "evt_1", "evt 1", "evt//1", "x" * 300, "x" * 301]
        self.assertEqual(len({normalize_doc_id(i) for i in ids}), len(ids))

    def test_long_ids_are_capped(self) -> None:
        self.assertEqual(len(normalize_doc_id("x" * 1000)), 256)


if __name__ == "__main__":
    unittest.main()
