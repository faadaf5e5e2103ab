"""
NATS Client Adapter

Async NATS client used as the boundary to the exchange feed: normalized
tickers are published by the feed gateway and consumed by the aggregator.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import nats
from nats.aio.client import Client as NatsConnection
from nats.aio.msg import Msg

logger = logging.getLogger(__name__)


@dataclass
class NatsConfig:
    """NATS connection configuration"""
    servers: list[str] = field(default_factory=lambda: ["nats://localhost:4222"])
    name: str = "candle-ingest"
    reconnect_time_wait: float = 2.0
    max_reconnect_attempts: int = -1  # Infinite reconnects
    ping_interval: int = 20
    max_outstanding_pings: int = 3

    @classmethod
    def from_env(cls, prefix: str = "NATS") -> "NatsConfig":
        """Create config from environment variables"""
        servers = os.getenv(f"{prefix}_SERVERS", "nats://localhost:4222")
        return cls(
            servers=[s.strip() for s in servers.split(",") if s.strip()],
            name=os.getenv(f"{prefix}_CLIENT_NAME", "candle-ingest"),
        )


class NatsClient:
    """
    Async NATS client wrapper.

    A feed disconnect only pauses tick delivery; the client keeps
    reconnecting and the aggregation core simply sees no ticks meanwhile.

    Topic Patterns:
    - tickers.{exchange}.{symbol}  - Normalized bid/ask tickers
    """

    def __init__(self, config: Optional[NatsConfig] = None):
        self.config = config or NatsConfig()
        self._nc: Optional[NatsConnection] = None
        self._subscriptions: dict[str, Any] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if client is connected"""
        return self._connected and self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        """Establish connection to NATS server"""
        if self._connected:
            return

        async def error_handler(e):
            logger.error(f"NATS error: {e}")

        async def closed_handler():
            logger.warning("NATS connection closed")
            self._connected = False

        async def reconnected_handler():
            logger.info("NATS reconnected")
            self._connected = True

        async def disconnected_handler():
            logger.warning("NATS disconnected, tick delivery paused")
            self._connected = False

        try:
            self._nc = await nats.connect(
                servers=self.config.servers,
                name=self.config.name,
                reconnect_time_wait=self.config.reconnect_time_wait,
                max_reconnect_attempts=self.config.max_reconnect_attempts,
                ping_interval=self.config.ping_interval,
                max_outstanding_pings=self.config.max_outstanding_pings,
                error_cb=error_handler,
                closed_cb=closed_handler,
                reconnected_cb=reconnected_handler,
                disconnected_cb=disconnected_handler,
            )
            self._connected = True
            logger.info(f"Connected to NATS: {self.config.servers}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def close(self) -> None:
        """Close NATS connection"""
        if self._nc:
            await self._nc.drain()
            await self._nc.close()
            self._connected = False
            self._subscriptions.clear()
            logger.info("NATS connection closed")

    async def publish_json(self, subject: str, data: str) -> None:
        """
        Publish JSON string to a NATS subject.

        Args:
            subject: NATS subject (e.g., "tickers.ftxus.BTC_USD")
            data: JSON string
        """
        if not self.is_connected:
            raise RuntimeError("NATS client not connected")
        payload = data.encode("utf-8")
        await self._nc.publish(subject, payload)
        logger.debug(f"Published to {subject}: {len(payload)} bytes")

    async def subscribe(
        self,
        subject: str,
        callback: Callable[[Msg], Awaitable[None]],
        queue: Optional[str] = None,
    ) -> None:
        """
        Subscribe to a NATS subject.

        Args:
            subject: NATS subject pattern (supports wildcards: *, >)
            callback: Async callback for received messages
            queue: Optional queue group for load balancing
        """
        if not self.is_connected:
            raise RuntimeError("NATS client not connected")

        if queue:
            sub = await self._nc.subscribe(subject, queue=queue, cb=callback)
        else:
            sub = await self._nc.subscribe(subject, cb=callback)

        self._subscriptions[subject] = sub
        logger.info(f"Subscribed to {subject}" + (f" (queue: {queue})" if queue else ""))

    async def unsubscribe(self, subject: str) -> None:
        """Unsubscribe from a subject"""
        sub = self._subscriptions.pop(subject, None)
        if sub is not None:
            await sub.unsubscribe()
            logger.info(f"Unsubscribed from {subject}")


class Topics:
    """NATS topic name builders"""

    @staticmethod
    def _sanitize(name: str) -> str:
        """
        Sanitize a name for use as a single NATS topic segment.

        Instrument symbols such as "BTC/USD" contain characters NATS treats
        specially, so anything but alphanumerics, hyphens and underscores
        becomes an underscore.
        """
        return "".join(c if c.isalnum() or c in "-_" else "_" for c in name)

    @staticmethod
    def tickers(exchange: str, symbol: str) -> str:
        """Ticker topic for one instrument"""
        return f"tickers.{Topics._sanitize(exchange)}.{Topics._sanitize(symbol)}"

    @staticmethod
    def all_tickers(exchange: str) -> str:
        """Every instrument's tickers on one exchange (wildcard)"""
        return f"tickers.{Topics._sanitize(exchange)}.*"
