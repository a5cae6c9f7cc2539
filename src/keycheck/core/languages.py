from pathlib import Path

SOURCE_SUFFIXES = frozenset({".dart"})


def is_source_file(file_path: Path) -> bool:
    return file_path.suffix.lower() in SOURCE_SUFFIXES
