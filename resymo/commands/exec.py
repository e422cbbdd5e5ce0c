import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from resymo.commands.base import DoneCallback
from resymo.discovery import Discovery, derive, with_default_template
from resymo.process import ProcessError, ProcessSpec, run_process
from resymo.utils import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Run:
    process: ProcessSpec
    discovery: Optional[Discovery] = None

    @classmethod
    def from_dict(cls, name: str, data: Any) -> 'Run':
        if not isinstance(data, dict):
            raise ConfigError(f'exec command "{name}": entry must be a mapping')
        discovery = data.get('discovery')
        return cls(
            process=ProcessSpec.from_dict(f'exec command "{name}"', data),
            discovery=Discovery.from_dict(discovery) if discovery is not None else None,
        )


class ExecCommand:
    def __init__(self, name: str, run: Run):
        self.name = name
        self.run = run
        self._tasks: Set[asyncio.Task] = set()

        self._discovery: Optional[Discovery] = None
        if run.discovery is not None:
            discovery = run.discovery
            if discovery.unique_id is None:
                discovery = derive(discovery, unique_id=name)
            self._discovery = with_default_template(discovery)

    @classmethod
    def from_config(cls, items: Dict[str, Any]) -> Dict[str, 'ExecCommand']:
        return {name: cls(name, Run.from_dict(name, run)) for name, run in items.items()}

    def start(self, payload: str, on_done: DoneCallback) -> None:
        logger.info(f'Running command "{self.name}": {payload}')
        task = asyncio.create_task(self._execute(on_done), name=f'command-{self.name}')
        # the event loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, on_done: DoneCallback) -> None:
        success = False
        try:
            output = await run_process(self.run.process)
            success = output.success
            if not success:
                logger.debug(f'Command "{self.name}" exited with {output.status}: {output.stderr.strip()}')
        except ProcessError as e:
            logger.warning(f'Failed to launch command "{self.name}": {e}')
        except Exception as e:
            logger.exception(f'Error running command "{self.name}": {type(e).__name__} - {e}')
        finally:
            on_done(success)

    def describe_discovery(self) -> Optional[Discovery]:
        return self._discovery
