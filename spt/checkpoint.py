# spt/checkpoint.py
"""
Progress checkpoints. One JSON file per batch kind, overwritten on every
write; the file is replaced atomically so a reader never sees half a record.
"""

from pathlib import Path
from typing import Any, Protocol

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_json

from .errors import CheckpointCorruptError, CheckpointIOError, CheckpointNotFoundError
from .utils import write_atomic

# keys used by the two workflows
ACCOUNTS_GET_KEY = "accounts-get"
ACCOUNTS_SET_KEY = "accounts-set"


class CheckpointStore(Protocol):
    def save(self, key: str, value: Any) -> None: ...

    def load(self, key: str, value_type: Any) -> Any: ...


class FileCheckpointStore:
    """Stores `<directory>/<key>.cache` files holding JSON."""

    def __init__(self, directory: Path = Path(".")):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.cache"

    def save(self, key: str, value: Any):
        try:
            payload = to_json(value)
        except (TypeError, ValueError) as exc:
            raise CheckpointIOError(f"couldn't serialize checkpoint '{key}': {exc}") from exc
        try:
            write_atomic(self.path_for(key), payload)
        except OSError as exc:
            raise CheckpointIOError(f"couldn't write checkpoint '{key}': {exc}") from exc

    def load(self, key: str, value_type: Any):
        path = self.path_for(key)
        try:
            content = path.read_bytes()
        except FileNotFoundError as exc:
            raise CheckpointNotFoundError(f"checkpoint file '{path}' not found") from exc
        except OSError as exc:
            raise CheckpointIOError(f"couldn't read checkpoint file '{path}': {exc}") from exc
        try:
            return TypeAdapter(value_type).validate_json(content)
        except ValidationError as exc:
            raise CheckpointCorruptError(f"checkpoint file '{path}' is corrupt: {exc}") from exc

