# spt/utils.py
import os
import tempfile
from pathlib import Path


def write_atomic(out_path: Path, data: bytes):
    """
    Write `data` to `out_path` through a temp file in the same directory and
    rename it into place, so the target holds either the old or the new content.
    Returns the str(path).
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{out_path.name}.", dir=out_path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, out_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return str(out_path)
