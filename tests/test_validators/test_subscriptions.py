"""Tests for SubscriptionStore."""

from __future__ import annotations

import json
from pathlib import Path

from valwatch.validators.subscriptions import SubscriptionStore

ADDR_A = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
ADDR_B = "5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty"


class TestFollow:
    def test_follow_and_list(self) -> None:
        store = SubscriptionStore()
        assert store.follow(ADDR_A, "alice") is True
        assert store.follow(ADDR_B, "alice") is True
        assert store.follow(ADDR_A, "bob") is True

        assert store.followers(ADDR_A) == {"alice", "bob"}
        assert store.following("alice") == sorted([ADDR_A, ADDR_B])
        assert store.following("carol") == []

    def test_follow_twice_reports_no_change(self) -> None:
        store = SubscriptionStore()
        store.follow(ADDR_A, "alice")
        assert store.follow(ADDR_A, "alice") is False
        assert store.followers(ADDR_A) == {"alice"}

    def test_unfollow(self) -> None:
        store = SubscriptionStore()
        store.follow(ADDR_A, "alice")
        assert store.unfollow(ADDR_A, "alice") is True
        assert store.followers(ADDR_A) == set()
        assert store.unfollow(ADDR_A, "alice") is False

    def test_followers_is_a_copy(self) -> None:
        store = SubscriptionStore()
        store.follow(ADDR_A, "alice")
        store.followers(ADDR_A).add("mallory")
        assert store.followers(ADDR_A) == {"alice"}


class TestPersistence:
    def test_changes_written_immediately(self, tmp_path: Path) -> None:
        path = tmp_path / "followers.json"
        store = SubscriptionStore(path)
        store.follow(ADDR_A, "bob")
        store.follow(ADDR_A, "alice")
        assert json.loads(path.read_text()) == {ADDR_A: ["alice", "bob"]}

        store.unfollow(ADDR_A, "alice")
        store.unfollow(ADDR_A, "bob")
        assert json.loads(path.read_text()) == {}

    def test_restore(self, tmp_path: Path) -> None:
        path = tmp_path / "followers.json"
        store = SubscriptionStore(path)
        store.follow(ADDR_A, "alice")
        store.follow(ADDR_B, "bob")

        restored = SubscriptionStore(path)
        assert restored.restore() == 2
        assert restored.followers(ADDR_A) == {"alice"}
        assert restored.following("bob") == [ADDR_B]

    def test_missing_file_starts_empty(self, tmp_path: Path) -> None:
        assert SubscriptionStore(tmp_path / "absent.json").restore() == 0

    def test_corrupt_file_starts_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "followers.json"
        path.write_text("not json at all")
        store = SubscriptionStore(path)
        assert store.restore() == 0
        assert store.followers(ADDR_A) == set()
