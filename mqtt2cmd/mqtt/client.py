"""Async MQTT client wrapper."""

import asyncio
import logging
from typing import Optional, Callable, Awaitable, Dict, List

import aiomqtt

from ..config import MQTTConfig
from ..errors import BusConnectionError, PublishError, SubscribeError

logger = logging.getLogger(__name__)

# Type alias for per-topic message handlers
MessageHandler = Callable[[bytes], Awaitable[None]]

# Type alias for on-connect hooks
ConnectCallback = Callable[[], Awaitable[None]]


class MQTTClient:
    """Async MQTT client with a last will, on-connect hooks and reconnection.

    Wraps aiomqtt. Handlers registered with subscribe() are invoked from
    run() for messages on exactly their topic. Every successful connect,
    including reconnects made by run(), calls the on-connect hooks in
    registration order.
    """

    def __init__(
        self,
        config: MQTTConfig,
        identity: str,
        will_topic: str,
        will_payload: str,
    ):
        """Initialize the MQTT client.

        Args:
            config: MQTT configuration
            identity: MQTT client identifier
            will_topic: Topic of the last will message
            will_payload: Payload of the last will message (published retained)
        """
        self.config = config
        self.identity = identity
        self.will_topic = will_topic
        self.will_payload = will_payload
        self._client: Optional[aiomqtt.Client] = None
        self._connected = False
        self._stopping = False
        self._reconnect_interval = config.reconnect_interval
        self._handlers: Dict[str, MessageHandler] = {}
        self._connect_callbacks: List[ConnectCallback] = []

    @property
    def connected(self) -> bool:
        """Check if connected to MQTT broker."""
        return self._connected

    def on_connect(self, callback: ConnectCallback) -> None:
        """Register a hook called after every successful connect.

        Args:
            callback: Async function without arguments
        """
        self._connect_callbacks.append(callback)

    async def connect(self) -> None:
        """Connect to the MQTT broker and run the on-connect hooks.

        Raises:
            BusConnectionError: If connection fails
        """
        logger.info(f"Connecting to MQTT broker at {self.config.host}:{self.config.port} as {self.identity}")

        client = aiomqtt.Client(
            hostname=self.config.host,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            identifier=self.identity,
            keepalive=self.config.keepalive,
            # Last Will and Testament for availability
            will=aiomqtt.Will(
                topic=self.will_topic,
                payload=self.will_payload,
                qos=self.config.qos,
                retain=True,
            ),
        )
        try:
            await client.__aenter__()
        except aiomqtt.MqttError as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            raise BusConnectionError(f"Cannot connect to {self.config.host}:{self.config.port}: {e}") from e

        self._client = client
        self._connected = True
        logger.info("Connected to MQTT broker")

        for callback in self._connect_callbacks:
            await callback()

    async def disconnect(self) -> None:
        """Disconnect from the MQTT broker and stop run()."""
        self._stopping = True
        await self._close()
        logger.info("Disconnected from MQTT broker")

    async def _close(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client:
            try:
                await client.__aexit__(None, None, None)
            except aiomqtt.MqttError as e:
                logger.debug(f"Error closing MQTT connection: {e}")

    async def publish(self, topic: str, payload: str, retain: bool = True) -> None:
        """Publish a message and wait for the broker to accept it.

        Args:
            topic: MQTT topic
            payload: Message payload
            retain: Whether to retain the message

        Raises:
            PublishError: If not connected or the publish fails
        """
        if not self._client or not self._connected:
            raise PublishError(topic, "not connected to MQTT broker")

        try:
            await self._client.publish(
                topic,
                payload=payload,
                qos=self.config.qos,
                retain=retain,
            )
        except aiomqtt.MqttError as e:
            raise PublishError(topic, str(e)) from e
        logger.debug(f"Published to {topic}: {payload[:100]}")

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Subscribe to a topic and route its messages to a handler.

        Subscribing again replaces the topic's handler.

        Args:
            topic: MQTT topic (no wildcards)
            handler: Async function called with the raw payload

        Raises:
            SubscribeError: If not connected or the subscription fails
        """
        if not self._client or not self._connected:
            raise SubscribeError(topic, "not connected to MQTT broker")

        self._handlers[topic] = handler
        try:
            await self._client.subscribe(topic, qos=self.config.qos)
        except aiomqtt.MqttError as e:
            raise SubscribeError(topic, str(e)) from e
        logger.debug(f"Subscribed to {topic}")

    async def run(self) -> None:
        """Process incoming messages until disconnect() is called.

        On connection loss, reconnects every reconnect_interval seconds.
        """
        while not self._stopping:
            if self._client:
                try:
                    await self._message_loop(self._client)
                except aiomqtt.MqttError as e:
                    if self._stopping:
                        break
                    logger.warning(f"Lost connection to MQTT broker: {e}")
                await self._close()

            if self._stopping:
                break
            await asyncio.sleep(self._reconnect_interval)
            if self._stopping:
                break
            try:
                await self.connect()
            except BusConnectionError as e:
                logger.error(f"MQTT reconnection failed, retrying in {self._reconnect_interval}s: {e}")

    async def _message_loop(self, client: aiomqtt.Client) -> None:
        logger.debug("Starting MQTT message loop")

        async for message in client.messages:
            topic = str(message.topic)

            handler = self._handlers.get(topic)
            if handler is None:
                logger.debug(f"Ignoring message on unhandled topic {topic}")
                continue

            # Get payload as bytes
            if isinstance(message.payload, bytes):
                payload = message.payload
            elif message.payload is None:
                payload = b""
            else:
                payload = str(message.payload).encode()

            logger.debug(f"Received message on {topic}: {payload[:100]}")

            try:
                await handler(payload)
            except Exception as e:
                logger.error(f"Error processing message on {topic}: {e}", exc_info=True)
