# spt/logger.py
import json
from datetime import datetime, timezone
from pathlib import Path

DEFAULT_STORAGE = Path("storage")

LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40, "off": 100}


def now_iso():
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class JobLogger:
    """Writes one JSON line per step into `<storage>/<job_id>.log.jsonl`.

    Entries below the configured level are dropped. Failures (`success=False`)
    are always kept unless the level is `off`.
    """

    def __init__(self, job_id: str, storage: Path = DEFAULT_STORAGE, level: str = "info"):
        self.job_id = job_id
        self.storage = Path(storage)
        self.storage.mkdir(parents=True, exist_ok=True)
        self.path = self.storage / f"{job_id}.log.jsonl"
        self.level = LEVELS.get(level, LEVELS["info"])
        self.entries = []

    def log(self, step: str, success: bool, message: str, extra: dict = None, level: str = "info"):
        threshold = LEVELS["error"] if not success else LEVELS.get(level, LEVELS["info"])
        if threshold < self.level:
            return None
        entry = {
            "timestamp": now_iso(),
            "step": step,
            "success": success,
            "message": message,
            "extra": extra or {}
        }
        self.entries.append(entry)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        return entry

    def debug(self, step: str, message: str, extra: dict = None):
        return self.log(step, True, message, extra, level="debug")

    def error(self, step: str, message: str, extra: dict = None):
        return self.log(step, False, message, extra)

    def save_screenshot(self, img_bytes: bytes, name_suffix="error.png"):
        out = self.storage / f"{self.job_id}_{name_suffix}"
        with open(out, "wb") as f:
            f.write(img_bytes)
        return str(out)
