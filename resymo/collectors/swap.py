from typing import Any, Dict, List

import psutil

from resymo.discovery import Discovery


class SwapCollector:
    name = 'swap'
    config_key = 'swap'

    async def collect(self) -> Dict[str, Any]:
        swap = psutil.swap_memory()
        return {
            'free': swap.free,
            'total': swap.total,
            'used': swap.used,
        }

    def describe_discovery(self) -> List[Discovery]:
        entities = []
        for key, label in (('free', 'Free'), ('total', 'Total'), ('used', 'Used')):
            entities.append(
                Discovery(
                    unique_id=key,
                    name=f'{label} swap space',
                    state_class='measurement',
                    device_class='data_size',
                    unit_of_measurement='B',
                    value_template=f'{{{{ value_json.{key} }}}}',
                )
            )
        return entities


COLLECTOR = SwapCollector
