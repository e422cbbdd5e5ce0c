import os
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .utils import ConfigError


class ProcessError(Exception):
    pass


@dataclass(frozen=True)
class ProcessSpec:
    command: str
    args: List[str] = field(default_factory=list)
    envs: Dict[str, str] = field(default_factory=dict)
    clean_env: bool = False

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> 'ProcessSpec':
        command = data.get('command')
        if not command or not isinstance(command, str):
            raise ConfigError(f'{name}: "command" is required')
        args = data.get('args') or []
        envs = data.get('envs') or {}
        if not isinstance(args, list):
            raise ConfigError(f'{name}: "args" must be a list')
        if not isinstance(envs, dict):
            raise ConfigError(f'{name}: "envs" must be a mapping')
        return cls(
            command=command,
            args=[str(a) for a in args],
            envs={str(k): str(v) for k, v in envs.items()},
            clean_env=bool(data.get('cleanEnv', False)),
        )

    def environment(self) -> Dict[str, str]:
        if self.clean_env:
            return dict(self.envs)
        env = dict(os.environ)
        env.update(self.envs)
        return env


@dataclass(frozen=True)
class ProcessOutput:
    stdout: str
    stderr: str
    status: Optional[int]

    @property
    def success(self) -> bool:
        return self.status == 0

    def check(self) -> 'ProcessOutput':
        if not self.success:
            raise ProcessError(f'Command failed: rc == {self.status}')
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {'stdout': self.stdout, 'stderr': self.stderr, 'status': self.status}


async def run_process(spec: ProcessSpec) -> ProcessOutput:
    """
    Run the process to completion and capture its output. There is no timeout: a hung
    process keeps the caller waiting. If the awaiting task is cancelled the child is killed.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            spec.command,
            *spec.args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=spec.environment(),
        )
    except (OSError, ValueError) as e:
        # ValueError: embedded NUL in command, args or environment
        raise ProcessError(f'Failed to launch command "{spec.command}": {e}') from e

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        raise

    return ProcessOutput(
        stdout=stdout.decode('utf-8', errors='replace'),
        stderr=stderr.decode('utf-8', errors='replace'),
        status=proc.returncode,
    )
