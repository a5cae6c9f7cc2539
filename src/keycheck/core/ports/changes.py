from pathlib import Path
from typing import Protocol


class ChangedFilesProvider(Protocol):
    def changed_files(self, root: Path, since: str) -> list[Path]:
        """Paths changed since `since`, relative to `root`. Raises ConfigError for an unknown reference."""
        ...
