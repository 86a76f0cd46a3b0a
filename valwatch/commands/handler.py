"""Chat command surface — follow, unfollow, following, status, help."""

from __future__ import annotations

import structlog

from valwatch.chain.client import ChainDataSource, is_valid_address
from valwatch.chain.exceptions import ChainError, InvalidAddressError
from valwatch.monitor.formatters import format_address, format_help, format_status
from valwatch.monitor.types import AlertMessage
from valwatch.validators.exceptions import PersistenceError
from valwatch.validators.subscriptions import SubscriptionStore

logger = structlog.stdlib.get_logger()

Reply = AlertMessage | str

_NOT_FOUND = "Validator not found or error retrieving data"


class CommandHandler:
    """Parses ``!command args`` text and runs the matching operation.

    Usage::

        handler = CommandHandler(chain, subscriptions, ss58_format=87)
        reply = await handler.handle("!follow 5Grw...", subscriber_id="1234")
    """

    def __init__(
        self,
        chain: ChainDataSource,
        subscriptions: SubscriptionStore,
        ss58_format: int = 87,
        prefix: str = "!",
    ) -> None:
        self._chain = chain
        self._subscriptions = subscriptions
        self._ss58_format = ss58_format
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    async def handle(self, text: str, subscriber_id: str) -> Reply | None:
        """Run the command in *text*. Returns None if it is not a command."""
        if not text.startswith(self._prefix):
            return None
        parts = text[len(self._prefix):].split()
        if not parts:
            return None
        command, args = parts[0].lower(), parts[1:]

        try:
            if command == "follow" and args:
                return self.follow(args[0], subscriber_id)
            if command == "unfollow" and args:
                return self.unfollow(args[0], subscriber_id)
            if command == "following":
                return self.following(subscriber_id)
            if command == "status" and args:
                return await self.status(args[0])
            if command == "help":
                return self.help()
        except InvalidAddressError:
            return "Invalid address"
        except Exception:
            logger.exception("command_error", command=command, subscriber_id=subscriber_id)
            return "Command failed"
        return None

    # ── Operations ──────────────────────────────────────────────

    def follow(self, address: str, subscriber_id: str) -> str:
        self._validate(address)
        try:
            self._subscriptions.follow(address, subscriber_id)
        except PersistenceError:
            logger.exception("followers_persist_failed", address=address)
        logger.info("validator_followed", address=address, subscriber_id=subscriber_id)
        return f"Now following validator: `{format_address(address)}`"

    def unfollow(self, address: str, subscriber_id: str) -> str:
        try:
            removed = self._subscriptions.unfollow(address, subscriber_id)
        except PersistenceError:
            logger.exception("followers_persist_failed", address=address)
            removed = True
        if not removed:
            return f"You are not following `{format_address(address)}`"
        logger.info("validator_unfollowed", address=address, subscriber_id=subscriber_id)
        return f"Stopped following validator: `{format_address(address)}`"

    def following(self, subscriber_id: str) -> str:
        addresses = self._subscriptions.following(subscriber_id)
        if not addresses:
            return "You're not following any validators."
        return "**You're following:**\n" + "\n".join(format_address(a) for a in addresses)

    async def status(self, address: str) -> Reply:
        self._validate(address)
        try:
            era = await self._chain.current_era()
            if era is None:
                return _NOT_FOUND
            snapshot = await self._chain.fetch_snapshot(address, era)
            active = address in set(await self._chain.active_validators())
        except ChainError as exc:
            logger.warning("status_lookup_failed", address=address, error=str(exc))
            return _NOT_FOUND
        return format_status(snapshot, active)

    def help(self) -> AlertMessage:
        return format_help(self._prefix)

    def _validate(self, address: str) -> None:
        if not is_valid_address(address, self._ss58_format):
            raise InvalidAddressError(address)
