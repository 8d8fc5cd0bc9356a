# spt/manifest.py
"""
Streaming reader for the import manifest.

    <Import>
      <Categories><Category id="1"><name>Apps</name></Category></Categories>
      <Clients><Client id="1"><name>Acme</name></Client></Clients>
      <Accounts>
        <Account id="1">
          <name>Jane Roe</name><login>jroe</login>
          <clientId>1</clientId><categoryId>1</categoryId>
        </Account>
      </Accounts>
    </Import>

Only the tags above matter; wrapper elements are ignored. The document is fed
to a pull parser in chunks and every entity element is cleared once emitted.
"""

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from .errors import ManifestParseError, ManifestReferenceError
from .logger import JobLogger
from .models import ID_MAX, AccountSnapshot, ManifestAccount, ManifestEntity, ManifestModel

CHUNK_SIZE = 16 * 1024

ENTITY_TAGS = ("Category", "Client", "Account")
TEXT_TAGS = ("name", "login", "clientId", "categoryId")


class _Scratch:
    """Fields collected for the entity currently open."""

    def __init__(self):
        self.id = None
        self.name = ""
        self.login = ""
        self.client_id = None
        self.category_id = None

    def clear_entity(self, clear_name: bool):
        self.id = None
        if clear_name:
            self.name = ""

    def clear_all(self):
        self.__init__()


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse_u16(value: str, what: str) -> int:
    text = (value or "").strip()
    if not (text.isascii() and text.isdigit()) or int(text) > ID_MAX:
        raise ManifestParseError(f"{what} must be an integer in 0..{ID_MAX}, got '{value}'")
    return int(text)


class _ManifestReader:

    def __init__(self, logger: Optional[JobLogger]):
        self.logger = logger
        self.scratch = _Scratch()
        self.categories = []
        self.clients = []
        self.accounts = []

    def _debug(self, step, message):
        if self.logger:
            self.logger.debug(step, message)

    def handle(self, event: str, elem: ET.Element):
        tag = _local_name(elem.tag)
        if event == "start":
            if tag in ENTITY_TAGS:
                raw_id = elem.get("id")
                if raw_id is None:
                    if self.logger:
                        self.logger.error("manifest_missing_id", f"<{tag}> doesn't have 'id' attribute")
                else:
                    self.scratch.id = _parse_u16(raw_id, f"<{tag}> id")
                    self._debug("manifest_open", f"<{tag}> id {self.scratch.id}")
            return

        # text of child elements is complete only on their closing tag
        if tag in TEXT_TAGS:
            text = (elem.text or "").strip()
            if tag == "name":
                self.scratch.name = text
            elif tag == "login":
                self.scratch.login = text
            elif tag == "clientId":
                self.scratch.client_id = _parse_u16(text, "clientId")
            else:
                self.scratch.category_id = _parse_u16(text, "categoryId")
            return

        s = self.scratch
        if tag == "Category":
            self.categories.append(ManifestEntity(id=s.id, name=s.name))
            s.clear_entity(clear_name=False)
        elif tag == "Client":
            self.clients.append(ManifestEntity(id=s.id, name=s.name))
            s.clear_entity(clear_name=True)
        elif tag == "Account":
            self.accounts.append(ManifestAccount(
                id=s.id, name=s.name, login=s.login,
                client_id=s.client_id, category_id=s.category_id,
            ))
            s.clear_all()
        else:
            return
        self._debug("manifest_close", f"</{tag}>")
        elem.clear()


def parse_manifest(document: str, logger: JobLogger = None) -> ManifestModel:
    """Parse manifest text. Raises ManifestParseError; never returns a partial model."""
    parser = ET.XMLPullParser(events=("start", "end"))
    reader = _ManifestReader(logger)
    syntax_error = None

    for pos in range(0, len(document), CHUNK_SIZE):
        if syntax_error is not None:
            # drain the rest of the input, nothing more is parsed
            continue
        try:
            parser.feed(document[pos:pos + CHUNK_SIZE])
            for event, elem in parser.read_events():
                reader.handle(event, elem)
        except ET.ParseError as exc:
            syntax_error = exc

    if syntax_error is None:
        try:
            parser.close()
            for event, elem in parser.read_events():
                reader.handle(event, elem)
        except ET.ParseError as exc:
            syntax_error = exc

    if syntax_error is not None:
        if logger:
            logger.error("manifest_syntax", f"malformed manifest: {syntax_error}")
        raise ManifestParseError(f"malformed manifest: {syntax_error}") from syntax_error

    model = ManifestModel(categories=reader.categories, clients=reader.clients, accounts=reader.accounts)
    if logger:
        logger.log("manifest_loaded", True,
                   f"categories {len(model.categories)}, clients {len(model.clients)}, "
                   f"accounts {len(model.accounts)}")
    return model


def load_manifest(path: Path, logger: JobLogger = None) -> ManifestModel:
    if logger:
        logger.log("manifest_load", True, f"load xml manifest from file '{path}'")
    try:
        document = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestParseError(f"couldn't read xml file '{path}': {exc}") from exc
    return parse_manifest(document, logger)


def resolve_account(manifest: ManifestModel, account: ManifestAccount) -> AccountSnapshot:
    """Build the live-account snapshot for a manifest account.

    Raises ManifestReferenceError when its client or category id is not declared.
    """
    client = next((c for c in manifest.clients
                   if account.client_id is not None and c.id == account.client_id), None)
    if client is None:
        raise ManifestReferenceError(
            f"account configuration error, client wasn't found by id {account.client_id}",
            login=account.login, missing_id=account.client_id,
        )
    category = next((c for c in manifest.categories
                     if account.category_id is not None and c.id == account.category_id), None)
    if category is None:
        raise ManifestReferenceError(
            f"account configuration error, category wasn't found by id {account.category_id}",
            login=account.login, missing_id=account.category_id,
        )
    return AccountSnapshot(name=account.name, login=account.login,
                           category=category.name, client=client.name)
