"""Package roots from `.dart_tool/package_config.json`."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

from keycheck.errors import ConfigError

logger = logging.getLogger(__name__)

PACKAGE_CONFIG = Path(".dart_tool") / "package_config.json"
WORKSPACE = "workspace"


@dataclass(frozen=True)
class PackageRoot:
    name: str
    root: Path
    package_uri: str
    is_dependency: bool

    @property
    def lib_dir(self) -> Path:
        return self.root / self.package_uri.strip("/")


def _uri_to_path(uri: str, base: Path) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme:
        raise ConfigError(f"Unsupported package rootUri scheme: {uri}")
    return (base / unquote(uri)).resolve()


def _is_dependency(root: Path, project_root: Path) -> bool:
    if ".pub-cache" in root.parts:
        return True
    try:
        root.relative_to(project_root)
    except ValueError:
        return True
    return False


def load_package_roots(project_root: Path) -> list[PackageRoot]:
    """Read the package config next to the project. Missing config means no packages."""
    config_path = project_root / PACKAGE_CONFIG
    if not config_path.is_file():
        logger.debug("No package config at %s", config_path)
        return []
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read package config {config_path}: {exc}") from exc

    resolved_root = project_root.resolve()
    roots = []
    for entry in data.get("packages", []):
        name = entry.get("name")
        root_uri = entry.get("rootUri")
        if not name or not root_uri:
            continue
        # Relative rootUris are resolved against the directory holding package_config.json.
        root = _uri_to_path(root_uri, config_path.parent.resolve())
        roots.append(
            PackageRoot(
                name=name,
                root=root,
                package_uri=entry.get("packageUri", "lib/"),
                is_dependency=_is_dependency(root, resolved_root),
            )
        )
    return sorted(roots, key=lambda package: package.name)
