import logging
import pkgutil
import importlib
from typing import Any, Dict, Mapping, Optional

from .collectors.base import Collector, CollectorError
from .collectors.exec import ExecCollector
from .commands.base import Command, DoneCallback
from .commands.exec import ExecCommand
from .config import exec_items, is_disabled

logger = logging.getLogger(__name__)

_NOT_BUILTIN = ('base', 'exec')


class Registry:
    """
    Name keyed collectors and commands, built once at startup.

    There is no lock across collectors; each collector serializes its own state.
    """

    def __init__(self) -> None:
        self.collectors: Dict[str, Collector] = {}
        self.commands: Dict[str, Command] = {}

    def register(self, name: str, collector: Collector) -> None:
        self.collectors[name] = collector

    def extend_collectors(self, collectors: Mapping[str, Collector]) -> None:
        self.collectors.update(collectors)

    def register_command(self, name: str, command: Command) -> None:
        self.commands[name] = command

    def extend_commands(self, commands: Mapping[str, Command]) -> None:
        self.commands.update(commands)

    async def collect_one(self, name: str) -> Optional[Dict[str, Any]]:
        collector = self.collectors.get(name)
        if collector is None:
            return None
        try:
            return await collector.collect()
        except Exception as e:
            raise CollectorError(str(e)) from e

    async def collect_all(self) -> Dict[str, Any]:
        """
        Collect from every collector, in name order. The first failure aborts the whole call.
        """
        result: Dict[str, Any] = {}
        for name in sorted(self.collectors):
            try:
                result[name] = await self.collectors[name].collect()
            except Exception as e:
                raise CollectorError(str(e)) from e
        return result

    def command(self, name: str) -> Optional[Command]:
        return self.commands.get(name)

    def run_command(self, name: str, payload: str, on_done: DoneCallback) -> bool:
        command = self.commands.get(name)
        if command is None:
            logger.warning(f'Received trigger for unknown command: {name}')
            return False
        command.start(payload, on_done)
        return True

    @classmethod
    def from_config(cls, collectors: Dict[str, Any], commands: Dict[str, Any]) -> 'Registry':
        registry = cls()

        for collector in _load_builtin_collectors():
            if is_disabled(collectors, collector.config_key):
                logger.info(f'Collector disabled: {collector.name}')
                continue
            registry.register(collector.name, collector)

        if not is_disabled(collectors, 'exec'):
            registry.extend_collectors(ExecCollector.from_config(exec_items(collectors)))

        if not is_disabled(commands, 'exec'):
            registry.extend_commands(ExecCommand.from_config(exec_items(commands)))

        logger.info(f'Registered collectors: {sorted(registry.collectors)}')
        logger.info(f'Registered commands: {sorted(registry.commands)}')
        return registry


def _load_builtin_collectors():
    import resymo.collectors as collectors_pkg

    instances = []
    for _, module_name, ispkg in pkgutil.iter_modules(collectors_pkg.__path__):
        if ispkg or module_name in _NOT_BUILTIN:
            continue

        mod = importlib.import_module(f'{collectors_pkg.__name__}.{module_name}')
        collector_cls = getattr(mod, 'COLLECTOR', None)
        if collector_cls is not None:
            instances.append(collector_cls())
    return sorted(instances, key=lambda c: c.name)
