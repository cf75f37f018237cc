"""Asynchronous message channel between two execution contexts."""

import asyncio
from typing import Optional

from loguru import logger

from medication_reminder.config import settings
from medication_reminder.utils import ChannelDeliveryFailure, log_operation

from .messages import Message, decode_message, encode_message


class Endpoint:
    """One side of the channel, owned by a single execution context.

    Outbound messages go to the peer's inbox. Delivery requires the peer
    to be ready; a send to a peer that is not ready waits once for
    readiness and is then dropped with a warning.
    """

    def __init__(self, name: str, ready_timeout: Optional[float] = None):
        """Initialize endpoint.

        Args:
            name: Context name used in logs ("foreground", "background")
            ready_timeout: Seconds to wait for the peer before dropping
        """
        self.name = name
        self.ready_timeout = (
            settings.channel_ready_timeout_seconds
            if ready_timeout is None else ready_timeout
        )
        self.peer: Optional["Endpoint"] = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._ready = asyncio.Event()
        self._pending: set[asyncio.Task] = set()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def mark_ready(self) -> None:
        """Signal that this context accepts messages."""
        self._ready.set()
        logger.debug(f"Channel endpoint ready: {self.name}")

    def restart(self) -> None:
        """Simulate a host restart of this context: lose readiness and queued messages."""
        self._ready.clear()
        dropped = 0
        while not self._inbox.empty():
            self._inbox.get_nowait()
            dropped += 1
        log_operation("channel_endpoint_restarted", endpoint=self.name, dropped=dropped)

    def _deliver(self, payload: str) -> None:
        if self.peer is None or not self.peer.is_ready:
            raise ChannelDeliveryFailure(f"Peer of {self.name} is not ready")
        self.peer._inbox.put_nowait(payload)

    async def send(self, message: Message) -> bool:
        """Send a message, retrying once after waiting for the peer.

        Args:
            message: Message to deliver

        Returns:
            True if delivered, False if dropped
        """
        payload = encode_message(message)
        try:
            self._deliver(payload)
            logger.debug(f"{self.name} -> {message.type.value}")
            return True
        except ChannelDeliveryFailure as e:
            logger.debug(f"{e}, waiting up to {self.ready_timeout}s")

        if self.peer is not None:
            try:
                await asyncio.wait_for(self.peer._ready.wait(), timeout=self.ready_timeout)
            except asyncio.TimeoutError:
                pass

        try:
            self._deliver(payload)
            logger.debug(f"{self.name} -> {message.type.value} (after retry)")
            return True
        except ChannelDeliveryFailure:
            logger.warning(f"Dropping {message.type.value} from {self.name}: peer not ready")
            log_operation("message_dropped", endpoint=self.name, message_type=message.type.value)
            return False

    def post(self, message: Message) -> None:
        """Fire-and-forget form of :meth:`send`.

        Delivers synchronously when the peer is ready so successive posts
        keep their order, otherwise hands the retry to a background task.
        """
        try:
            self._deliver(encode_message(message))
            logger.debug(f"{self.name} -> {message.type.value}")
            return
        except ChannelDeliveryFailure:
            pass

        task = asyncio.create_task(self.send(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait until every deferred post has been delivered or dropped."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def receive(self) -> Message:
        """Wait for the next decodable inbound message."""
        while True:
            payload = await self._inbox.get()
            try:
                return decode_message(payload)
            except ValueError as e:
                logger.warning(f"{self.name} skipped inbound payload: {e}")

    def pending_count(self) -> int:
        """Number of inbound messages not yet received."""
        return self._inbox.qsize()


class MessageChannel:
    """Bidirectional channel linking the foreground and background contexts."""

    def __init__(self, ready_timeout: Optional[float] = None):
        self.foreground = Endpoint("foreground", ready_timeout)
        self.background = Endpoint("background", ready_timeout)
        self.foreground.peer = self.background
        self.background.peer = self.foreground
