import json
import asyncio
import functools
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Optional, Protocol

from resymo.config import HomeAssistantOptions
from resymo.discovery import (
    COMPONENT_BINARY_SENSOR,
    COMPONENT_BUTTON,
    COMPONENT_SENSOR,
    Device,
    Discovery,
    derive,
    mixin_availability,
)
from resymo.registry import Registry
from resymo.uplink.connector import MQTTConnector
from resymo.uplink.runner import PeriodicRunner

PAYLOAD_RUNNING = 'ON'
PAYLOAD_STOPPED = 'OFF'

STATE_INTERVAL = 10.0


def agent_version() -> str:
    try:
        return version('resymo-agent')
    except PackageNotFoundError:
        return '0.0.0'


class UplinkClient(Protocol):
    is_connected: bool

    def subscribe(self, topic: str) -> None:
        ...

    def announce(self, component: str, unique_id: str, entity: Discovery) -> None:
        ...

    def update_state(self, topic: str, payload: Any, retain: bool = False) -> None:
        ...


@dataclass(frozen=True)
class CommandCompletion:
    name: str
    success: bool


class HomeAssistantUplink:
    """
    Maps the registry onto Home Assistant MQTT discovery:

      state:        <base>/<device_id>/<collector>/state
      command:      <base>/<device_id>/<command>/command
      availability: <base>/<device_id>/availability

    Collectors become sensors. Commands with discovery metadata become a button plus a
    binary sensor showing whether the command is running.
    """

    def __init__(
        self,
        client: UplinkClient,
        registry: Registry,
        device_id: str,
        logger,
        base: str = 'resymo',
        interval: float = STATE_INTERVAL,
        sw_version: Optional[str] = None,
    ):
        self.client = client
        self.registry = registry
        self.device_id = device_id
        self.logger = logger
        self.base = f'{base}/{device_id}'
        self.availability_topic = f'{self.base}/availability'
        self.device = Device(
            identifiers=[device_id],
            name=f'ReSyMo: {device_id}',
            sw_version=sw_version or agent_version(),
        )
        self.runner = PeriodicRunner(self.publish_states, interval, logger)
        self._completions: asyncio.Queue = asyncio.Queue()
        self._completion_task: Optional[asyncio.Task] = None

    def state_topic(self, name: str) -> str:
        return f'{self.base}/{name}/state'

    def command_topic(self, name: str) -> str:
        return f'{self.base}/{name}/command'

    async def start(self) -> None:
        self.runner.start()
        if self._completion_task is None:
            self._completion_task = asyncio.create_task(self._completion_loop(), name='command-completions')

    async def stop(self) -> None:
        await self.runner.stop()
        if self._completion_task is not None:
            self._completion_task.cancel()
            try:
                await self._completion_task
            except asyncio.CancelledError:
                pass
            self._completion_task = None

    # connector callbacks

    async def connected(self, state: bool) -> None:
        self.logger.info(f'Connected: {state}')
        if state:
            self.subscribe()
            self.announce()

    async def restarted(self) -> None:
        self.logger.info('Home Assistant restarted, announcing entities again')
        self.announce()

    async def message(self, topic: str, payload: bytes) -> None:
        parts = topic.split('/')
        if len(parts) == 4 and parts[3] == 'command' and f'{parts[0]}/{parts[1]}' == self.base:
            self.handle_command(parts[2], payload.decode('utf-8', errors='replace'))
        else:
            self.logger.warning(f'Received message for unknown topic: {topic}')

    # protocol

    def _publish_state(self, topic: str, payload: Any, retain: bool = False) -> None:
        try:
            self.client.update_state(topic, payload, retain=retain)
        except Exception as e:
            self.logger.warning(f'Failed to publish state to {topic}: {e}')

    def _announce(self, component: str, unique_id: str, entity: Discovery) -> None:
        try:
            self.client.announce(component, unique_id, entity)
        except Exception as e:
            self.logger.warning(f'Failed to announce {component} "{unique_id}": {e}')

    def subscribe(self) -> None:
        for name, command in self.registry.commands.items():
            if command.describe_discovery() is None:
                continue
            topic = self.command_topic(name)
            try:
                self.client.subscribe(topic)
            except Exception as e:
                self.logger.warning(f'Failed to subscribe to {topic}: {e}')

    def announce(self) -> None:
        for name, collector in self.registry.collectors.items():
            state_topic = self.state_topic(name)
            for entity in collector.describe_discovery():
                if entity.unique_id is None:
                    self.logger.debug(f'Skipping entity without id for collector "{name}"')
                    continue
                unique_id = f'{self.device_id}_{name}_{entity.unique_id}'
                entity = derive(entity, unique_id=unique_id, state_topic=state_topic, device=self.device)
                entity = mixin_availability(entity, f'{self.base}/{name}', self.availability_topic)
                self._announce(COMPONENT_SENSOR, unique_id, entity)

        for name, command in self.registry.commands.items():
            entity = command.describe_discovery()
            if entity is None or entity.unique_id is None:
                continue

            unique_id = f'{self.device_id}_{entity.unique_id}'
            button = derive(entity, unique_id=unique_id, command_topic=self.command_topic(name), device=self.device)
            button = mixin_availability(button, f'{self.base}/{name}', self.availability_topic)
            self._announce(COMPONENT_BUTTON, unique_id, button)

            running_id = f'{unique_id}_running'
            running = derive(
                entity,
                unique_id=running_id,
                state_topic=self.state_topic(name),
                device=self.device,
                device_class=None,
                value_template=None,
                command_topic=None,
            )
            running = mixin_availability(running, f'{self.base}/{name}', self.availability_topic)
            self._announce(COMPONENT_BINARY_SENSOR, running_id, running)

            self._publish_state(self.state_topic(name), PAYLOAD_STOPPED, retain=True)

    def handle_command(self, name: str, payload: str) -> None:
        if self.registry.command(name) is None:
            self.logger.warning(f'Received trigger for unknown command: {name}')
            return

        self._publish_state(self.state_topic(name), PAYLOAD_RUNNING, retain=True)
        self.registry.run_command(name, payload, functools.partial(self._post_completion, name))

    def _post_completion(self, name: str, success: bool) -> None:
        self._completions.put_nowait(CommandCompletion(name, success))

    async def _completion_loop(self) -> None:
        while True:
            completion = await self._completions.get()
            self._publish_state(self.state_topic(completion.name), PAYLOAD_STOPPED, retain=True)
            if completion.success:
                self.logger.info(f'Command "{completion.name}" completed: ok')
            else:
                self.logger.info(f'Command "{completion.name}" completed: failed')

    async def publish_states(self) -> None:
        if not self.client.is_connected:
            self.logger.debug('MQTT not connected; skip state update')
            return
        for name, state in (await self.registry.collect_all()).items():
            self._publish_state(self.state_topic(name), json.dumps(state))


async def run(options: HomeAssistantOptions, registry: Registry, logger) -> None:
    base = f'{options.base}/{options.device_id}'
    connector = MQTTConnector(options, f'{base}/availability', logger)
    uplink = HomeAssistantUplink(connector, registry, options.device_id, logger, base=options.base)
    connector.handler = uplink

    logger.info(f'Publishing as: {options.device_id}')
    try:
        await connector.start()
        await uplink.start()
        await asyncio.Event().wait()
    finally:
        await uplink.stop()
        await connector.aclose()
