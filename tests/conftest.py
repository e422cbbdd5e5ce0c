"""Shared fixtures for the agent tests."""

import os
import stat
import logging

import pytest

from resymo.process import ProcessSpec


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingScript:
    """A shell script that appends a line to a counter file every time it runs."""

    def __init__(self, directory, exit_code: int = 0, output: str = 'hello'):
        self.counter = directory / 'counter'
        self.path = directory / 'stub.sh'
        self.path.write_text(
            '#!/bin/sh\n'
            'echo run >> "$RESYMO_COUNTER"\n'
            f'echo "{output}"\n'
            'echo "some warning" >&2\n'
            f'exit {exit_code}\n'
        )
        self.path.chmod(self.path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    @property
    def runs(self) -> int:
        if not self.counter.exists():
            return 0
        return len(self.counter.read_text().splitlines())

    def spec(self, clean_env: bool = False) -> ProcessSpec:
        envs = {'RESYMO_COUNTER': str(self.counter)}
        if clean_env:
            envs['PATH'] = os.environ.get('PATH', '/usr/bin:/bin')
        return ProcessSpec(command=str(self.path), envs=envs, clean_env=clean_env)


class FakeClient:
    """Records everything the uplink sends to the broker."""

    def __init__(self):
        self.is_connected = True
        self.subscriptions = []
        self.announced = []
        self.states = []

    def subscribe(self, topic):
        self.subscriptions.append(topic)

    def announce(self, component, unique_id, entity):
        self.announced.append((component, unique_id, entity))

    def update_state(self, topic, payload, retain=False):
        self.states.append((topic, payload, retain))

    def states_for(self, topic):
        return [payload for t, payload, _ in self.states if t == topic]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def counting_script(tmp_path):
    return CountingScript(tmp_path)


@pytest.fixture
def failing_script(tmp_path):
    return CountingScript(tmp_path, exit_code=3)


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def logger():
    return logging.getLogger('resymo.tests')
