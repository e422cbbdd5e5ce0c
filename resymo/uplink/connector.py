import json
import asyncio
from typing import Any, Optional, Protocol, Set, Union

from gmqtt import Client as MQTTClient, Message

from resymo.config import HomeAssistantOptions
from resymo.discovery import Discovery
from resymo.utils import log_errors

PAYLOAD_ONLINE = 'online'
PAYLOAD_OFFLINE = 'offline'


class ConnectorError(Exception):
    pass


class ConnectorHandler(Protocol):

    async def connected(self, state: bool) -> None:
        ...

    async def restarted(self) -> None:
        ...

    async def message(self, topic: str, payload: bytes) -> None:
        ...


class MQTTConnector:
    """
    Owns the broker session: connects with backoff, keeps the device availability topic
    up to date through a retained last will, and forwards session events to a handler.

    A Home Assistant restart is detected through its birth message (`online` on
    `<discovery_prefix>/status`) and reported as `restarted()`.
    """

    def __init__(self, options: HomeAssistantOptions, availability_topic: str, logger):
        self.options = options
        self.availability_topic = availability_topic
        self.status_topic = f'{options.discovery_prefix}/status'
        self.logger = logger
        self.handler: Optional[ConnectorHandler] = None
        self.mqtt_connected = False
        self._stopping = False
        self._tasks: Set[asyncio.Task] = set()

        self._client = MQTTClient(
            options.client_id,
            will_message=Message(availability_topic, PAYLOAD_OFFLINE, retain=True),
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        if options.username or options.password:
            self._client.set_auth_credentials(options.username, options.password)

    @property
    def is_connected(self) -> bool:
        return self.mqtt_connected

    async def start(self) -> None:
        host = self.options.host
        port = self.options.effective_port
        backoff = 5

        while True:
            try:
                self.logger.info(f'Connecting to MQTT server... ({host}:{port}, tls={not self.options.disable_tls})')
                await self._client.connect(
                    host,
                    port,
                    ssl=not self.options.disable_tls,
                    keepalive=max(1, int(self.options.keep_alive)),
                )
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f'Failed to connect to MQTT server: {e}')
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 60)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_connect(self, client, flags, rc, properties) -> None:
        self.logger.info('Successfully connected to MQTT server')
        self.mqtt_connected = True
        try:
            self.publish(self.availability_topic, PAYLOAD_ONLINE, retain=True)
            self.subscribe(self.status_topic)
        except ConnectorError as e:
            self.logger.warning(f'Failed to initialize session: {e}')
        if self.handler:
            self._spawn(self._notify_connected(True))

    def _on_disconnect(self, client, packet, exc=None) -> None:
        level = self.logger.info if self._stopping else self.logger.error
        level('Disconnected from MQTT server')
        self.mqtt_connected = False
        if self.handler and not self._stopping:
            self._spawn(self._notify_connected(False))

    def _on_message(self, client, topic, payload, qos, properties) -> int:
        self.logger.debug(f'Message received: {topic}')
        if self.handler is None:
            return 0
        if topic == self.status_topic:
            if bytes(payload).decode('utf-8', errors='replace').strip() == PAYLOAD_ONLINE:
                self._spawn(self._notify_restarted())
        else:
            self._spawn(self._notify_message(topic, bytes(payload)))
        return 0

    @log_errors('connected')
    async def _notify_connected(self, state: bool) -> None:
        await self.handler.connected(state)

    @log_errors('restarted')
    async def _notify_restarted(self) -> None:
        await self.handler.restarted()

    @log_errors('message')
    async def _notify_message(self, topic: str, payload: bytes) -> None:
        await self.handler.message(topic, payload)

    def publish(self, topic: str, payload: Union[str, bytes], retain: bool = False) -> None:
        if not self.mqtt_connected:
            raise ConnectorError(f'MQTT not connected; cannot publish to {topic}')
        try:
            self._client.publish(topic, payload, retain=retain)
        except Exception as e:
            raise ConnectorError(f'Failed to publish to {topic}: {e}') from e

    def subscribe(self, topic: str) -> None:
        if not self.mqtt_connected:
            raise ConnectorError(f'MQTT not connected; cannot subscribe to {topic}')
        try:
            self._client.subscribe(topic, qos=0)
        except Exception as e:
            raise ConnectorError(f'Failed to subscribe to {topic}: {e}') from e

    def announce(self, component: str, unique_id: str, entity: Discovery) -> None:
        topic = f'{self.options.discovery_prefix}/{component}/{unique_id}/config'
        self.publish(topic, json.dumps(entity.to_payload()), retain=True)

    def update_state(self, topic: str, payload: Any, retain: bool = False) -> None:
        self.publish(topic, payload, retain=retain)

    async def aclose(self) -> None:
        self._stopping = True
        try:
            if self.mqtt_connected:
                self.publish(self.availability_topic, PAYLOAD_OFFLINE, retain=True)
                await asyncio.sleep(0.2)
            await self._client.disconnect()
        except Exception as e:
            self.logger.warning(f'Error while closing MQTT session: {e}')
        for task in list(self._tasks):
            task.cancel()
