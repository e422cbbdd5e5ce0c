from typing import Any, Dict, List

import psutil

from resymo.discovery import Discovery


def _data_size(unique_id: str, name: str, key: str) -> Discovery:
    return Discovery(
        unique_id=unique_id,
        name=name,
        state_class='measurement',
        device_class='data_size',
        unit_of_measurement='B',
        value_template=f'{{{{ value_json.{key} }}}}',
    )


class MemoryCollector:
    name = 'memory'
    config_key = 'memory'

    async def collect(self) -> Dict[str, Any]:
        mem = psutil.virtual_memory()
        return {
            'free': mem.free,
            'total': mem.total,
            'used': mem.used,
            'available': mem.available,
        }

    def describe_discovery(self) -> List[Discovery]:
        return [
            _data_size('free', 'Free memory', 'free'),
            _data_size('total', 'Total memory', 'total'),
            _data_size('used', 'Used memory', 'used'),
            _data_size('available', 'Available memory', 'available'),
        ]


COLLECTOR = MemoryCollector
