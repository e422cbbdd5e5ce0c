from typing import Any, Dict, List, Protocol

from resymo.discovery import Discovery


class CollectorError(Exception):
    """
    Any failure while collecting. The HTTP uplink renders it as
    {"type": "CollectorError", "message": ...}.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Collector(Protocol):

    async def collect(self) -> Dict[str, Any]:
        """Return one JSON serializable snapshot."""
        ...

    def describe_discovery(self) -> List[Discovery]:
        """Describe the Home Assistant entities backed by this collector's state."""
        ...
