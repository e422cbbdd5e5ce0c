from typing import Any, Dict, List

import psutil

from resymo.discovery import Discovery
from resymo.utils import normalize_str


def _partitions() -> Dict[str, Any]:
    """
    Map each mounted device to its usage. The first mountpoint of a device wins.
    """
    result: Dict[str, Any] = {}
    for partition in psutil.disk_partitions(all=False):
        if partition.device in result:
            continue
        try:
            usage = psutil.disk_usage(partition.mountpoint)
        except OSError:
            continue
        result[partition.device] = usage
    return result


class DiskFreeCollector:
    name = 'disk_free'
    config_key = 'diskFree'

    async def collect(self) -> Dict[str, Any]:
        disks = {}
        for device, usage in _partitions().items():
            disks[device] = {
                'free': usage.free,
                'total': usage.total,
                'usage': 1.0 - usage.free / usage.total if usage.total else 0.0,
            }
        return {'disks': disks}

    def describe_discovery(self) -> List[Discovery]:
        entities: List[Discovery] = []
        for device in _partitions():
            id_name = normalize_str(device)
            entities.append(Discovery(
                unique_id=f'disk_{id_name}_free',
                name=f'Disk free {device}',
                state_class='measurement',
                device_class='data_size',
                unit_of_measurement='B',
                value_template=f"{{{{ value_json.disks['{device}'].free }}}}",
            ))
            entities.append(Discovery(
                unique_id=f'disk_{id_name}_total',
                name=f'Disk total {device}',
                state_class='measurement',
                device_class='data_size',
                unit_of_measurement='B',
                value_template=f"{{{{ value_json.disks['{device}'].total }}}}",
            ))
            entities.append(Discovery(
                unique_id=f'disk_{id_name}_usage',
                name=f'Disk usage {device}',
                state_class='measurement',
                unit_of_measurement='%',
                value_template=f"{{{{ value_json.disks['{device}'].usage * 100 }}}}",
            ))
        return entities


COLLECTOR = DiskFreeCollector
