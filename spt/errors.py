# spt/errors.py
"""Exceptions raised by the permissions tool."""


class SptError(Exception):
    """Base error for the tool."""


class ConfigError(SptError):
    """Settings file is missing, unreadable or invalid."""


class ManifestParseError(SptError):
    """XML manifest is malformed or holds a non-numeric id."""


class ItemError(SptError):
    """Failure bound to one batch item. Counted, never fatal by itself."""


class ManifestReferenceError(ItemError):
    """Manifest account refers to a client/category id that is not declared."""

    def __init__(self, message: str, *, login: str = "", missing_id=None):
        super().__init__(message)
        self.login = login
        self.missing_id = missing_id


class CollaboratorError(ItemError):
    """Browser/navigation failure while handling an item."""

    def __init__(self, message: str, *, step: str = ""):
        super().__init__(message)
        self.step = step


class CheckpointIOError(SptError):
    """Checkpoint could not be read or written."""


class CheckpointNotFoundError(CheckpointIOError):
    pass


class CheckpointCorruptError(CheckpointIOError):
    pass
