# spt/workflows.py
"""
The two batch jobs of the tool.

- DiscoveryWorkflow walks the sysPass search results page by page and collects
  accounts whose user/group permission lists are all empty.
- ProvisioningWorkflow applies the configured permissions to every account
  declared in the import manifest.

Both only talk to sysPass through a `SyspassUI` implementation.
"""

from typing import List, Optional, Protocol

from .batch import BatchProcessor, ListSource
from .checkpoint import ACCOUNTS_GET_KEY, ACCOUNTS_SET_KEY, CheckpointStore
from .config import AppConfig, PermissionsConfig
from .errors import CheckpointIOError, CheckpointNotFoundError
from .logger import JobLogger
from .manifest import resolve_account
from .models import AccountFilter, AccountSnapshot, BatchResult, ManifestAccount, ManifestModel


class SyspassUI(Protocol):
    def login(self) -> None: ...

    def relogin_if_required(self) -> None: ...

    def reset_search(self) -> None: ...

    def search_candidate(self, offset: int) -> Optional[AccountSnapshot]: ...

    def next_search_page(self) -> bool: ...

    def has_empty_permissions(self, account: AccountSnapshot) -> bool: ...

    def set_permissions(self, account: AccountSnapshot, permissions: PermissionsConfig) -> None: ...

    def close(self) -> None: ...


class _SearchResultsSource:
    def __init__(self, ui: SyspassUI):
        self.ui = ui

    def candidate(self, offset: int) -> Optional[AccountSnapshot]:
        return self.ui.search_candidate(offset)

    def next_page(self) -> bool:
        return self.ui.next_search_page()


class DiscoveryWorkflow:

    def __init__(self, ui: SyspassUI, store: CheckpointStore, config: AppConfig, logger: JobLogger,
                 account_filter: AccountFilter = None, resume: bool = False):
        self.ui = ui
        self.store = store
        self.config = config
        self.logger = logger
        self.account_filter = account_filter or AccountFilter()
        self.resume = resume

    def load_checkpoint(self) -> List[AccountSnapshot]:
        try:
            accounts = self.store.load(ACCOUNTS_GET_KEY, List[AccountSnapshot])
        except CheckpointNotFoundError as exc:
            self.logger.log("discover_cache", True, f"no accounts cache, start from the beginning: {exc}")
            return []
        except CheckpointIOError as exc:
            self.logger.error("discover_cache", f"couldn't load accounts from cache, skip: {exc}")
            return []
        self.logger.log("discover_cache", True, f"{len(accounts)} account(s) loaded from cache")
        return accounts

    def _read_permissions(self, _item: AccountSnapshot, account: AccountSnapshot) -> Optional[AccountSnapshot]:
        if self.ui.has_empty_permissions(account):
            return account
        self.logger.debug("discover_permissions", f"account {account} has permissions")
        return None

    def run(self) -> BatchResult:
        self.logger.log("discover", True, "get accounts with empty permissions from syspass instance",
                        extra={"filter": self.account_filter.model_dump()})
        seed = self.load_checkpoint() if self.resume else []

        self.ui.login()
        self.ui.reset_search()

        processor = BatchProcessor(
            name="discover",
            source=_SearchResultsSource(self.ui),
            snapshot_of=lambda account: account,
            apply=self._read_permissions,
            store=self.store,
            checkpoint_key=ACCOUNTS_GET_KEY,
            checkpoint_value=lambda last, results: list(results),
            logger=self.logger,
            cadence=self.config.progress_cache.get_accounts,
            ignore_errors=self.config.ignore_errors,
            account_filter=self.account_filter,
            resume_from=seed[-1] if seed else None,
            seed_results=seed,
        )
        return processor.run()


class ProvisioningWorkflow:

    def __init__(self, ui: SyspassUI, store: CheckpointStore, config: AppConfig, logger: JobLogger,
                 manifest: ManifestModel, resume: bool = False):
        self.ui = ui
        self.store = store
        self.config = config
        self.logger = logger
        self.manifest = manifest
        self.resume = resume

    def load_checkpoint(self) -> Optional[AccountSnapshot]:
        try:
            account = self.store.load(ACCOUNTS_SET_KEY, AccountSnapshot)
        except CheckpointNotFoundError as exc:
            self.logger.log("provision_cache", True, f"no progress cache, start from the beginning: {exc}")
            return None
        except CheckpointIOError as exc:
            self.logger.error("provision_cache", f"couldn't load latest processed account, skip: {exc}")
            return None
        self.logger.log("provision_cache", True, f"latest processed account {account}")
        return account

    def _apply_permissions(self, account: ManifestAccount, snapshot: AccountSnapshot) -> None:
        self.ui.relogin_if_required()
        self.ui.set_permissions(snapshot, self.config.permissions)
        self.logger.log("provision_done", True, f"permissions have been set for account login '{account.login}'")
        return None

    def run(self) -> BatchResult:
        resume_from = self.load_checkpoint() if self.resume else None

        self.ui.login()
        self.logger.log("provision", True, f"user '{self.config.auth.login}' logged to syspass",
                        extra={"accounts": len(self.manifest.accounts)})

        processor = BatchProcessor(
            name="provision",
            source=ListSource(self.manifest.accounts),
            snapshot_of=lambda account: resolve_account(self.manifest, account),
            apply=self._apply_permissions,
            store=self.store,
            checkpoint_key=ACCOUNTS_SET_KEY,
            checkpoint_value=lambda last, results: last,
            logger=self.logger,
            cadence=self.config.progress_cache.set_accounts,
            ignore_errors=self.config.ignore_errors,
            resume_from=resume_from,
        )
        result = processor.run()
        if result.outcome.succeeded and not result.outcome.had_errors:
            self.logger.log("provision", True, "permissions have been set for accounts")
        elif result.outcome.succeeded:
            self.logger.log("provision", True, "permissions have been partially set for accounts")
        return result
