# spt/models.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# u16 ids as used by the import manifest
ID_MIN = 0
ID_MAX = 65535


class ManifestEntity(BaseModel):
    """Category or Client declared in the manifest. `id` is None when the tag had no id."""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = Field(default=None, ge=ID_MIN, le=ID_MAX)
    name: str = ""


class ManifestAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = Field(default=None, ge=ID_MIN, le=ID_MAX)
    name: str = ""
    login: str = ""
    client_id: Optional[int] = Field(default=None, ge=ID_MIN, le=ID_MAX)
    category_id: Optional[int] = Field(default=None, ge=ID_MIN, le=ID_MAX)

    def __str__(self):
        return f"{self.name} (login '{self.login}')"


class ManifestModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: List[ManifestEntity] = []
    clients: List[ManifestEntity] = []
    accounts: List[ManifestAccount] = []


class AccountSnapshot(BaseModel):
    """Observed state of one sysPass account. Equality covers all four fields."""
    model_config = ConfigDict(frozen=True)

    name: str
    login: str
    category: str
    client: str

    def __str__(self):
        return f"'{self.name}' (login '{self.login}', client '{self.client}', category '{self.category}')"


class AccountFilter(BaseModel):
    """Inclusion filter for discovery. Blank fields impose no constraint."""
    model_config = ConfigDict(frozen=True)

    category_name: Optional[str] = None
    client_name: Optional[str] = None
    login_prefix: Optional[str] = None
    name_prefix: Optional[str] = None


class BatchOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    succeeded: bool
    had_errors: bool


class BatchState(str, Enum):
    SCANNING = "scanning"
    PROCESSING = "processing"
    CHECKPOINTING = "checkpointing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class BatchResult(BaseModel):
    outcome: BatchOutcome
    state: BatchState
    results: List[AccountSnapshot] = []
    processed: int = 0
    skipped: int = 0
    failed: int = 0


# --- job API ---

class JobKind(str, Enum):
    DISCOVER = "discover"
    PROVISION = "provision"


class DiscoverJobRequest(BaseModel):
    resume: bool = False
    category: Optional[str] = None
    client: Optional[str] = None
    login_prefix: Optional[str] = None
    name_prefix: Optional[str] = None


class ProvisionJobRequest(BaseModel):
    xml_file: str = "import.xml"
    resume: bool = False


class LogEntry(BaseModel):
    timestamp: str
    step: str
    success: bool
    message: str
    extra: Optional[Dict[str, Any]] = None


class JobResult(BaseModel):
    job_id: str
    kind: JobKind
    status: str  # queued, running, completed, failed
    outcome: Optional[BatchOutcome] = None
    results: List[AccountSnapshot] = []
    error: Optional[str] = None
    logs: List[LogEntry] = []
