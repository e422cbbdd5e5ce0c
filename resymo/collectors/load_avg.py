from typing import Any, Dict, List

import psutil

from resymo.discovery import Discovery


class LoadAvgCollector:
    name = 'load_avg'
    config_key = 'loadAvg'

    async def collect(self) -> Dict[str, Any]:
        one, five, fifteen = psutil.getloadavg()
        return {'one': one, 'five': five, 'fifteen': fifteen}

    def describe_discovery(self) -> List[Discovery]:
        return [
            Discovery(
                unique_id=f'loadavg_{minutes}',
                name=f'Load Average {minutes}m',
                state_class='measurement',
                value_template=f'{{{{ value_json.{key} }}}}',
            )
            for minutes, key in ((1, 'one'), (5, 'five'), (15, 'fifteen'))
        ]


COLLECTOR = LoadAvgCollector
