from typing import Callable, Optional, Protocol

from resymo.discovery import Discovery

# Called exactly once with True on success, False otherwise
DoneCallback = Callable[[bool], None]


class Command(Protocol):

    def start(self, payload: str, on_done: DoneCallback) -> None:
        """
        Start the action without blocking the caller and report its outcome through `on_done`.
        """
        ...

    def describe_discovery(self) -> Optional[Discovery]:
        ...
