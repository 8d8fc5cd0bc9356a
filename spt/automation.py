# spt/automation.py
"""
Playwright automation for the sysPass 3 web UI.
- Launches the configured browser channel, falls back to Playwright bundled Chromium.
- Every UI step sleeps a fixed settle delay afterwards; sysPass renders asynchronously.
- Playwright failures are raised as CollaboratorError with a screenshot saved next to the job log.
"""

import time
from contextlib import contextmanager
from typing import List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .config import AppConfig, PermissionsConfig
from .errors import CollaboratorError
from .logger import JobLogger
from .models import AccountSnapshot

UNSUPPORTED_UI_VERSION_ERROR = "unsupported ui version, check logs for details"

# login page
USER_INPUT = "#user"
PASSWORD_INPUT = "#pass"
LOGIN_BUTTON = "#btnLogin"
LOGIN_FORM = "#frmLogin"
LOGGED_IN_MARKER = ".mdl-textfield__label"

# search page
SEARCH_INPUT = "#search"
SEARCH_RESET = "#btn-reset"
SEARCH_ITEM = ".account-label"
ITEM_NAME = ".field-account .field-text"
ITEM_LOGIN = ".field-user .field-text"
ITEM_CATEGORY = ".field-category .field-text"
ITEM_CLIENT = ".mdl-chip__text"
ITEM_VIEW_LINK = ".field-account .btn-action"
ITEM_ACTIONS_BUTTON = ".account-actions button"
ITEM_MENU_ACTION = ".mdl-menu__container .btn-action"
PAGER_NEXT = "#btn-pager-next"
PAGER_LAST = "#btn-pager-last"

# account page
TABS = ".mdl-tabs__tab"
PERMISSION_PANEL = "#permission-panel"
TAG_LIST_BOX = ".tag-list-box"
TAG_ITEM = ".item"
TAG_REMOVE = ".remove"
OPTION = ".option"
SELECTIZE = ".selectize-control"
SWITCH = ".mdl-switch"
SWITCH_CHECKED = ".is-checked"
ACCOUNT_FORM = "#frmAccount"
SAVE_BUTTON = "[id='1']"
BACK_BUTTON = "#btnBack"


def _safe_screenshot(page):
    """Capture screenshot bytes safely."""
    try:
        return page.screenshot()
    except PlaywrightError:
        return None


def _text(locator) -> str:
    return locator.inner_text().strip()


class SyspassBrowser:
    """Drives one browser session against a sysPass instance. Use as a context manager."""

    def __init__(self, config: AppConfig, logger: JobLogger):
        self.config = config
        self.logger = logger
        self._playwright = None
        self._browser = None
        self.page = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # --- session ---

    def start(self):
        self._playwright = sync_playwright().start()
        browser_cfg = self.config.browser

        def _try_channel(channel_name=None):
            """Try launching with specific channel (e.g., msedge) or bundled Chromium."""
            kwargs = {"headless": browser_cfg.headless, "args": list(browser_cfg.args)}
            if channel_name:
                kwargs["channel"] = channel_name
            try:
                return self._playwright.chromium.launch(**kwargs)
            except PlaywrightError as e:
                self.logger.error("browser_launch", f"Channel={channel_name} exception: {e}")
                return None

        self._browser = _try_channel(browser_cfg.channel) if browser_cfg.channel else None
        if self._browser is None:
            self.logger.log("browser_fallback", True, "Falling back to bundled Chromium")
            self._browser = _try_channel(None)
        if self._browser is None:
            self._playwright.stop()
            self._playwright = None
            raise CollaboratorError("Playwright could not launch any browser", step="browser_launch")

        try:
            self.page = self._browser.new_page()
            self.page.set_default_timeout(browser_cfg.timeout_ms)
        except PlaywrightError as e:
            self.logger.error("browser_page", f"{e}")
            self.close()
            raise CollaboratorError(f"couldn't open browser page: {e}", step="browser_page") from e

    def close(self):
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError as e:
                self.logger.error("browser_close", f"{e}")
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        self.page = None

    def _settle(self, millis: int, step: str):
        self.logger.debug("settle", f"wait after {step} {millis} ms")
        time.sleep(millis / 1000.0)

    @contextmanager
    def _step(self, step: str):
        try:
            yield
        except PlaywrightError as e:
            shot = _safe_screenshot(self.page) if self.page is not None else None
            extra = {}
            if shot:
                extra["screenshot"] = self.logger.save_screenshot(shot, name_suffix=f"{step}.png")
            self.logger.error(step, f"{e}", extra=extra)
            raise CollaboratorError(f"{step} failed: {e}", step=step) from e

    # --- login ---

    def login(self):
        auth = self.config.auth
        url = f"{self.config.base_url}/index.php?r=login"
        self.logger.log("login", True, f"login to syspass '{self.config.base_url}' with '{auth.login}'")
        with self._step("login"):
            self.page.goto(url)
            self.page.fill(USER_INPUT, auth.login)
            self.page.fill(PASSWORD_INPUT, auth.password)
            self.page.click(LOGIN_BUTTON)
            self.page.wait_for_selector(LOGGED_IN_MARKER)
        self.logger.log("login", True, f"user '{auth.login}' logged to syspass")
        self._settle(self.config.delays.after_login, "login redirect")

    def relogin_if_required(self):
        with self._step("relogin_check"):
            expired = self.page.locator(LOGIN_FORM).count() > 0
        if expired:
            self.logger.log("relogin", True, "relogin..")
            self.login()

    # --- search results ---

    def reset_search(self):
        with self._step("reset_search"):
            self.page.click(SEARCH_RESET)
        self._settle(self.config.delays.after_login, "search reset")

    def _read_item(self, item) -> AccountSnapshot:
        return AccountSnapshot(
            name=_text(item.locator(ITEM_NAME).first),
            login=_text(item.locator(ITEM_LOGIN).first),
            category=_text(item.locator(ITEM_CATEGORY).first),
            client=_text(item.locator(ITEM_CLIENT).first),
        )

    def search_candidate(self, offset: int) -> Optional[AccountSnapshot]:
        with self._step("search_item"):
            # an empty item list only means "end of page" on the search page itself
            if self.page.locator(SEARCH_INPUT).count() == 0:
                self.logger.error("search_item", "search page isn't open")
                raise CollaboratorError("search page isn't open, can't continue", step="search_item")
            items = self.page.locator(SEARCH_ITEM)
            count = items.count()
            self.logger.debug("search_item", f"search items: {count}, offset: {offset}")
            if offset >= count:
                return None
            return self._read_item(items.nth(offset))

    def next_search_page(self) -> bool:
        with self._step("next_page"):
            if self.page.locator(PAGER_LAST).count() == 0:
                self.logger.debug("next_page", "last search results page")
                return False
            button = self.page.locator(PAGER_NEXT)
            button.scroll_into_view_if_needed()
            button.click()
        self._settle(self.config.delays.after_page_change, "page change")
        return True

    def _find_item(self, account: AccountSnapshot, match_name: bool = True):
        items = self.page.locator(SEARCH_ITEM)
        for i in range(items.count()):
            item = items.nth(i)
            found = self._read_item(item)
            if match_name and found == account:
                return item
            if not match_name and (found.login, found.client, found.category) == \
                    (account.login, account.client, account.category):
                return item
        return None

    # --- permissions ---

    def _open_permissions_tab(self):
        tabs = self.page.locator(TABS)
        if tabs.count() < 2:
            self.logger.error("permissions_tab", "expected permissions tab on account page")
            raise CollaboratorError(UNSUPPORTED_UI_VERSION_ERROR, step="permissions_tab")
        tabs.nth(1).click()
        self._settle(self.config.delays.after_tab_switch, "tab switch")

    def _tags(self, list_box) -> List[str]:
        return [_text(tag) for tag in list_box.locator(TAG_ITEM).all()]

    def _read_permission_tags(self, account: AccountSnapshot) -> dict:
        self._open_permissions_tab()

        rows = self.page.locator(PERMISSION_PANEL).locator("tr")
        if rows.count() < 2:
            self.logger.error("read_permissions", "expected at least two 'tr' rows on permissions tab")
            raise CollaboratorError(UNSUPPORTED_UI_VERSION_ERROR, step="read_permissions")

        tags = {}
        for row_index, entity in ((0, "users"), (1, "groups")):
            boxes = rows.nth(row_index).locator(TAG_LIST_BOX)
            if boxes.count() < 2:
                self.logger.error("read_permissions", f"expected two 'tag-list-box' divs for {entity}")
                raise CollaboratorError(UNSUPPORTED_UI_VERSION_ERROR, step="read_permissions")
            tags[f"{entity}_view"] = self._tags(boxes.first)
            tags[f"{entity}_edit"] = self._tags(boxes.last)
        self.logger.debug("read_permissions", f"permissions of {account}", extra=tags)
        return tags

    def _back_to_search(self):
        self.logger.debug("read_permissions", "back to search page")
        with self._step("back_to_search"):
            self.page.click(BACK_BUTTON)
        self._settle(self.config.delays.after_redirect_to_edit, "redirect to search page")

    def has_empty_permissions(self, account: AccountSnapshot) -> bool:
        with self._step("read_permissions"):
            item = self._find_item(account)
            if item is None:
                raise CollaboratorError(f"account {account} wasn't found on search page", step="read_permissions")
            item.scroll_into_view_if_needed()
            item.locator(ITEM_VIEW_LINK).first.click()
        self._settle(self.config.delays.after_redirect_to_edit, "redirect to account page")

        # the account page replaces the results, go back even when the read fails
        try:
            with self._step("read_permissions"):
                tags = self._read_permission_tags(account)
        finally:
            self._back_to_search()
        return not any(tags.values())

    def _search(self, login: str):
        self.page.goto(f"{self.config.base_url}/index.php?r=index")
        self._settle(self.config.delays.after_page_change, "index page")
        search = self.page.locator(SEARCH_INPUT)
        search.fill("")
        search.fill(login)
        search.press("Enter")
        self._settle(self.config.delays.after_page_change, "search")

    def _set_tags(self, box, values: List[str], close_target):
        self.logger.debug("set_permissions", f"set permissions for security entity: {values}")
        if not values:
            return
        box.click()
        for current in box.locator(TAG_REMOVE).all():
            current.click()
        for value in values:
            for option in box.locator(OPTION).all():
                if _text(option) == value:
                    self.logger.log("set_permissions", True, f"- add '{value}' - success")
                    option.click()
                    break
            else:
                self.logger.error("set_permissions", f"- add '{value}' - option not found")
        box.click()
        close_target.click()

    def _set_selectize(self, row, value: str):
        if not value:
            return
        row.locator(SELECTIZE).click()
        for option in row.locator(OPTION).all():
            if _text(option) == value:
                self.logger.log("set_permissions", True, f"- set '{value}' - success")
                option.click()
                return
        self.logger.error("set_permissions", f"- set '{value}' - option not found")

    def _set_switch(self, row, enabled: bool):
        current = row.locator(SWITCH_CHECKED).count() > 0
        self.logger.debug("set_permissions", f"checkbox enabled: {current}")
        if current != enabled:
            row.locator(SWITCH).click()

    def set_permissions(self, account: AccountSnapshot, permissions: PermissionsConfig):
        self.logger.log("set_permissions", True, f"set permissions for syspass account '{account.login}'")
        with self._step("set_permissions"):
            self._search(account.login)
            item = self._find_item(account, match_name=False)
            if item is None:
                raise CollaboratorError(f"couldn't find account '{account.login}'", step="set_permissions")

            item.locator(ITEM_ACTIONS_BUTTON).first.click()
            self._settle(self.config.delays.after_tab_switch, "actions menu")
            actions = item.locator(ITEM_MENU_ACTION)
            if actions.count() == 0:
                self.logger.error("set_permissions", "couldn't find 'btn-action' element inside 'mdl-menu__container'")
                raise CollaboratorError(UNSUPPORTED_UI_VERSION_ERROR, step="set_permissions")
            actions.first.click()
            self._settle(self.config.delays.after_redirect_to_edit, "redirect to edit page")
            self._open_permissions_tab()

            close_target = self.page.locator(ACCOUNT_FORM)
            boxes = self.page.locator(TAG_LIST_BOX)
            if boxes.count() != 4:
                self.logger.error("set_permissions", "4 divs expected with class 'tag-list-box'")
                raise CollaboratorError(UNSUPPORTED_UI_VERSION_ERROR, step="set_permissions")

            self._set_tags(boxes.nth(0), permissions.user.view, close_target)
            self._set_tags(boxes.nth(1), permissions.user.edit, close_target)
            self._set_tags(boxes.nth(2), permissions.group.view, close_target)
            self._set_tags(boxes.nth(3), permissions.group.edit, close_target)

            panel = self.page.locator(PERMISSION_PANEL)
            rows = panel.locator("tr")
            if rows.count() < 6:
                self.logger.error("set_permissions", f"expected 6 rows on permissions tab, got {rows.count()}")
                raise CollaboratorError(UNSUPPORTED_UI_VERSION_ERROR, step="set_permissions")

            self._set_selectize(rows.nth(2), permissions.owner)
            close_target.click()
            self._set_selectize(rows.nth(3), permissions.main_group)
            self._set_switch(rows.nth(4), permissions.private_account)
            self._set_switch(rows.nth(5), permissions.private_account_for_group)

            panel.locator(SAVE_BUTTON).click()
            self.logger.log("set_permissions", True, "settings have been saved")
            self.page.goto(f"{self.config.base_url}/index.php?r=index")
        self._settle(self.config.delays.after_page_change, "index page")


def open_browser(config: AppConfig, logger: JobLogger) -> SyspassBrowser:
    return SyspassBrowser(config, logger)
