from typing import Protocol

from keycheck.models import Snapshot


class BaselineProvider(Protocol):
    def fetch(self) -> Snapshot: ...

    def store(self, snapshot: Snapshot) -> None: ...
