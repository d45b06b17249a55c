"""Clock protocol — source of the current timestamp."""
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int: ...
