"""Unit tests for the union-merge planner.

Covers:
- plan_merge: upload/download split, ordering, never removing local entries
- pending unblocks are not downloaded again
- dedupe: first-seen order
"""

from __future__ import annotations

import unittest

from blocklist_sync.adapters.blocklist_api.sync.merge import dedupe, plan_merge


class TestPlanMerge(unittest.TestCase):
    def test_overlapping_sets(self):
        plan = plan_merge(["alice", "bob"], ["bob", "carol"])

        assert plan.to_upload == ["alice"]
        assert plan.to_download == ["carol"]
        assert plan.merged == ["alice", "bob", "carol"]

    def test_remote_absence_never_removes_local(self):
        """Identities missing remotely are uploaded, not dropped."""
        plan = plan_merge(["alice", "bob"], [])

        assert plan.merged == ["alice", "bob"]
        assert plan.to_upload == ["alice", "bob"]
        assert plan.to_download == []

    def test_merged_is_union_for_assorted_inputs(self):
        cases = [
            ([], []),
            ([], ["x"]),
            (["x"], ["x"]),
            (["a", "b", "c"], ["c", "d"]),
            (["d", "a"], ["a", "b", "c", "d"]),
        ]
        for local, remote in cases:
            with self.subTest(local=local, remote=remote):
                plan = plan_merge(local, remote)
                assert set(plan.merged) == set(local) | set(remote)
                assert plan.merged[: len(local)] == local
                assert len(plan.merged) == len(set(plan.merged))

    def test_pending_unblock_is_not_downloaded(self):
        plan = plan_merge(["alice"], ["alice", "mallory"], pending_unblocks=["mallory"])

        assert plan.to_download == []
        assert plan.merged == ["alice"]

    def test_pending_unblock_does_not_affect_local_entries(self):
        plan = plan_merge(["alice"], [], pending_unblocks=["alice"])

        assert plan.merged == ["alice"]
        assert plan.to_upload == ["alice"]

    def test_duplicate_inputs_are_collapsed(self):
        plan = plan_merge(["alice", "alice"], ["bob", "bob"])

        assert plan.merged == ["alice", "bob"]
        assert plan.to_upload == ["alice"]
        assert plan.to_download == ["bob"]


class TestDedupe(unittest.TestCase):
    def test_keeps_first_seen_order(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_empty(self):
        assert dedupe([]) == []
