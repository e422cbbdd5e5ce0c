"""Tests for the psutil backed collectors."""

from collections import namedtuple

import pytest

from resymo.collectors import disk_free
from resymo.collectors.disk_free import DiskFreeCollector
from resymo.collectors.load_avg import LoadAvgCollector
from resymo.collectors.memory import MemoryCollector
from resymo.collectors.swap import SwapCollector

Partition = namedtuple('Partition', 'device mountpoint')
Usage = namedtuple('Usage', 'total free')


class TestHostCollectors:
    """Values read from the running host."""

    @pytest.mark.asyncio
    async def test_memory(self):
        data = await MemoryCollector().collect()
        assert set(data) == {'free', 'total', 'used', 'available'}
        assert all(value >= 0 for value in data.values())

    @pytest.mark.asyncio
    async def test_swap(self):
        data = await SwapCollector().collect()
        assert set(data) == {'free', 'total', 'used'}

    @pytest.mark.asyncio
    async def test_load_avg(self):
        data = await LoadAvgCollector().collect()
        assert set(data) == {'one', 'five', 'fifteen'}

    def test_discovery_ids(self):
        assert [e.unique_id for e in LoadAvgCollector().describe_discovery()] == [
            'loadavg_1', 'loadavg_5', 'loadavg_15',
        ]
        assert [e.unique_id for e in MemoryCollector().describe_discovery()] == [
            'free', 'total', 'used', 'available',
        ]


class TestDiskFree:
    """Partition usage with a patched psutil."""

    @pytest.fixture(autouse=True)
    def partitions(self, monkeypatch):
        partitions = [
            Partition('/dev/sda1', '/'),
            Partition('/dev/sda1', '/var/lib/docker'),
            Partition('/dev/sdb1', '/data'),
            Partition('/dev/sdc1', '/gone'),
        ]
        usage = {'/': Usage(100, 25), '/data': Usage(0, 0)}

        def disk_usage(mountpoint):
            if mountpoint not in usage:
                raise PermissionError(mountpoint)
            return usage[mountpoint]

        monkeypatch.setattr(disk_free.psutil, 'disk_partitions', lambda all=False: partitions)
        monkeypatch.setattr(disk_free.psutil, 'disk_usage', disk_usage)

    @pytest.mark.asyncio
    async def test_collect(self):
        data = await DiskFreeCollector().collect()
        assert data == {'disks': {
            '/dev/sda1': {'free': 25, 'total': 100, 'usage': 0.75},
            '/dev/sdb1': {'free': 0, 'total': 0, 'usage': 0.0},
        }}

    def test_discovery(self):
        ids = [e.unique_id for e in DiskFreeCollector().describe_discovery()]
        assert ids == [
            'disk__dev_sda1_free', 'disk__dev_sda1_total', 'disk__dev_sda1_usage',
            'disk__dev_sdb1_free', 'disk__dev_sdb1_total', 'disk__dev_sdb1_usage',
        ]
