"""SubscriptionStore — which subscribers follow which validator."""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from valwatch.validators.storage import read_json, write_json_atomic

logger = structlog.stdlib.get_logger()


class SubscriptionStore:
    """Address → set of subscriber ids, persisted on every change.

    Mutated only by the command surface; the notifier reads it to decide
    whom to mention.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._followers: dict[str, set[str]] = {}

    def followers(self, address: str) -> set[str]:
        """Subscribers of *address* (a copy)."""
        return set(self._followers.get(address, ()))

    def following(self, subscriber_id: str) -> list[str]:
        """Addresses *subscriber_id* follows, sorted."""
        return sorted(a for a, subs in self._followers.items() if subscriber_id in subs)

    def follow(self, address: str, subscriber_id: str) -> bool:
        """Add a follower. Returns False if it was already following."""
        subs = self._followers.setdefault(address, set())
        if subscriber_id in subs:
            return False
        subs.add(subscriber_id)
        self.persist()
        return True

    def unfollow(self, address: str, subscriber_id: str) -> bool:
        """Remove a follower. Returns False if it was not following."""
        subs = self._followers.get(address)
        if not subs or subscriber_id not in subs:
            return False
        subs.discard(subscriber_id)
        if not subs:
            del self._followers[address]
        self.persist()
        return True

    def to_document(self) -> dict[str, list[str]]:
        return {a: sorted(subs) for a, subs in sorted(self._followers.items()) if subs}

    def persist(self) -> None:
        """Write followers to disk.

        Raises:
            PersistenceError: the file could not be written.
        """
        if self._path is None:
            return
        write_json_atomic(self._path, self.to_document())

    def restore(self) -> int:
        """Load followers from disk; starts empty on a missing or corrupt file."""
        self._followers = {}
        if self._path is None or not self._path.exists():
            return 0
        try:
            document = read_json(self._path)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("followers_restore_failed", path=str(self._path), error=str(exc))
            return 0
        if not isinstance(document, dict):
            logger.error(
                "followers_restore_failed",
                path=str(self._path),
                error="top-level document is not an object",
            )
            return 0
        for address, subs in document.items():
            if isinstance(subs, list):
                self._followers[address] = {str(s) for s in subs}
        logger.info("followers_restored", path=str(self._path), validators=len(self._followers))
        return len(self._followers)
