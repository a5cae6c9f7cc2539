import logging
from pathlib import Path

from pydantic import ValidationError

from keycheck.errors import IoError
from keycheck.models import Snapshot

logger = logging.getLogger(__name__)


class FileBaselineProvider:
    """Baseline snapshot kept as a JSON file inside the project."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def fetch(self) -> Snapshot:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise IoError(f"No baseline at {self.path}. Create one with `keycheck baseline create`.") from None
        except OSError as exc:
            raise IoError(f"Cannot read baseline {self.path}: {exc}") from exc
        try:
            return Snapshot.from_json(text, role="baseline")
        except (ValueError, ValidationError) as exc:
            raise IoError(f"Baseline {self.path} is not a valid snapshot: {exc}") from exc

    def store(self, snapshot: Snapshot) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(snapshot.to_json() + "\n", encoding="utf-8")
        except OSError as exc:
            raise IoError(f"Cannot write baseline {self.path}: {exc}") from exc
        logger.info("Stored baseline with %d keys at %s", len(snapshot.keys), self.path)
