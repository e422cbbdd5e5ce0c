import time
import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from resymo.discovery import Discovery, assign_unique_ids, with_default_template
from resymo.process import ProcessError, ProcessSpec, run_process
from resymo.utils import ConfigError, parse_duration

DEFAULT_PERIOD = 60.0


@dataclass(frozen=True)
class Task:
    process: ProcessSpec
    period: float = DEFAULT_PERIOD
    discovery: List[Discovery] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: Any) -> 'Task':
        if not isinstance(data, dict):
            raise ConfigError(f'exec collector "{name}": task must be a mapping')
        discovery = data.get('discovery') or []
        if not isinstance(discovery, list):
            raise ConfigError(f'exec collector "{name}": "discovery" must be a list')
        return cls(
            process=ProcessSpec.from_dict(f'exec collector "{name}"', data),
            period=parse_duration(data.get('period'), DEFAULT_PERIOD),
            discovery=[Discovery.from_dict(d) for d in discovery],
        )


@dataclass
class CachedResult:
    last_run: Optional[float] = None
    value: Optional[Dict[str, Any]] = None
    error: Optional[str] = 'Not yet initialized'


class ExecCollector:
    """
    Runs an external process and caches its output for `period` seconds.

    The cache lock is held across check, execution and update, so concurrent callers
    trigger at most one execution per task and all of them observe its result.
    """

    def __init__(self, name: str, task: Task, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.task = task
        self._clock = clock
        self._cache = CachedResult()
        self._lock = asyncio.Lock()
        self._descriptors = [
            with_default_template(d) for d in assign_unique_ids(name, task.discovery)
        ]

    @classmethod
    def from_config(cls, items: Dict[str, Any]) -> Dict[str, 'ExecCollector']:
        return {name: cls(name, Task.from_dict(name, task)) for name, task in items.items()}

    @property
    def last_run(self) -> Optional[float]:
        return self._cache.last_run

    def need_run(self) -> bool:
        if self._cache.last_run is None:
            return True
        return self._clock() - self._cache.last_run > self.task.period

    async def _run_once(self) -> None:
        try:
            output = await run_process(self.task.process)
            output.check()
        except Exception as e:
            self._cache.value = None
            self._cache.error = str(e)
        else:
            self._cache.value = output.to_dict()
            self._cache.error = None
        finally:
            self._cache.last_run = self._clock()

    async def run(self) -> Dict[str, Any]:
        async with self._lock:
            if self.need_run():
                await self._run_once()
            if self._cache.error is not None:
                raise ProcessError(self._cache.error)
            return self._cache.value

    async def collect(self) -> Dict[str, Any]:
        return await self.run()

    def describe_discovery(self) -> List[Discovery]:
        return list(self._descriptors)
