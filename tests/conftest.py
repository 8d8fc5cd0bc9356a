"""Shared test fixtures: a scripted sysPass UI and an in-memory checkpoint store."""

import json

import pytest
import yaml
from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_json

from spt.config import AppConfig
from spt.errors import CheckpointCorruptError, CheckpointIOError, CheckpointNotFoundError, CollaboratorError
from spt.logger import JobLogger
from spt.models import AccountSnapshot


def snap(name, login=None, category="Apps", client="Acme"):
    return AccountSnapshot(name=name, login=login or name.lower().replace(" ", "."),
                           category=category, client=client)


class FakeSyspassUI:
    """Serves scripted search result pages and records every call."""

    def __init__(self, pages=None, empty=(), failing=(), source_fails_at=None):
        self.pages = pages if pages is not None else [[]]
        self.page = 0
        self.empty = set(empty)
        self.failing = set(failing)
        self.source_fails_at = source_fails_at
        self.calls = []
        self.read = []
        self.applied = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def login(self):
        self.calls.append("login")

    def relogin_if_required(self):
        self.calls.append("relogin_check")

    def reset_search(self):
        self.calls.append("reset_search")

    def search_candidate(self, offset):
        if self.source_fails_at == (self.page, offset):
            raise CollaboratorError("search list is gone", step="search_item")
        items = self.pages[self.page]
        return items[offset] if offset < len(items) else None

    def next_search_page(self):
        if self.page + 1 < len(self.pages):
            self.page += 1
            self.calls.append(f"page_{self.page}")
            return True
        return False

    def has_empty_permissions(self, account):
        self.read.append(account)
        if account in self.failing:
            raise CollaboratorError(f"couldn't open {account.login}", step="read_permissions")
        return account in self.empty

    def set_permissions(self, account, permissions):
        if account in self.failing:
            raise CollaboratorError(f"couldn't find account '{account.login}'", step="set_permissions")
        self.applied.append(account)

    def close(self):
        self.closed = True


class MemoryCheckpointStore:
    """Keeps checkpoints as JSON strings and records every write in order."""

    def __init__(self, fail_saves=0):
        self.data = {}
        self.writes = []
        self.fail_saves = fail_saves

    def save(self, key, value):
        if self.fail_saves:
            self.fail_saves -= 1
            raise CheckpointIOError("disk full")
        self.data[key] = to_json(value).decode("utf-8")
        self.writes.append((key, json.loads(self.data[key])))

    def load(self, key, value_type):
        if key not in self.data:
            raise CheckpointNotFoundError(f"checkpoint '{key}' not found")
        try:
            return TypeAdapter(value_type).validate_json(self.data[key])
        except ValidationError as exc:
            raise CheckpointCorruptError(f"checkpoint '{key}' is corrupt") from exc


def config_dict(tmp_path, **overrides):
    data = {
        "syspass-url": "https://syspass.test/",
        "auth": {"login": "admin", "password": "secret"},
        "ignore-errors": False,
        "permissions": {
            "user": {"view": ["Ivan Petrov"], "edit": []},
            "group": {"view": ["Support"], "edit": ["Admins"]},
            "owner": "Admin",
            "main-group": "Admins",
        },
        "delays": {"after-login": 0, "after-redirect-to-edit": 0, "after-page-change": 0, "after-tab-switch": 0},
        "progress-cache": {"get-accounts": 1, "set-accounts": 1, "directory": str(tmp_path / "cache")},
        "logging": {"directory": str(tmp_path / "logs"), "level": "debug"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        return AppConfig.model_validate(config_dict(tmp_path, **overrides))
    return _make


@pytest.fixture
def config_file(tmp_path):
    def _write(**overrides):
        path = tmp_path / "spt.yml"
        path.write_text(yaml.safe_dump(config_dict(tmp_path, **overrides)), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def logger(tmp_path):
    return JobLogger("test-job", storage=tmp_path / "logs", level="debug")


@pytest.fixture
def store():
    return MemoryCheckpointStore()
