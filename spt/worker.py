# spt/worker.py
"""
Background job runner for the HTTP API. One worker thread takes jobs off the
queue in order, so at most one browser session runs at a time.
"""

import os
import threading, queue, uuid
from pathlib import Path

from . import automation
from .checkpoint import FileCheckpointStore
from .config import CONFIG_FILE, load_config
from .errors import SptError
from .logger import JobLogger
from .manifest import load_manifest
from .models import AccountFilter, DiscoverJobRequest, JobKind, ProvisionJobRequest
from .workflows import DiscoveryWorkflow, ProvisioningWorkflow

CONFIG_PATH = Path(os.environ.get("SPT_CONFIG", CONFIG_FILE))

JOB_QUEUE = queue.Queue()
JOBS = {}  # job_id -> dict

STOP_TIMEOUT = 10.0  # seconds to wait for the running job on shutdown

_worker_thread = None
_start_lock = threading.Lock()


def _discover(request: DiscoverJobRequest, logger: JobLogger, config):
    account_filter = AccountFilter(
        category_name=request.category, client_name=request.client,
        login_prefix=request.login_prefix, name_prefix=request.name_prefix,
    )
    store = FileCheckpointStore(config.progress_cache.directory)
    with automation.open_browser(config, logger) as ui:
        return DiscoveryWorkflow(ui, store, config, logger,
                                 account_filter=account_filter, resume=request.resume).run()


def _provision(request: ProvisionJobRequest, logger: JobLogger, config):
    xml_file = Path(request.xml_file)
    if not xml_file.is_file():
        raise SptError(f"xml file wasn't found '{xml_file}'")
    manifest = load_manifest(xml_file, logger)
    store = FileCheckpointStore(config.progress_cache.directory)
    with automation.open_browser(config, logger) as ui:
        return ProvisioningWorkflow(ui, store, config, logger, manifest, resume=request.resume).run()


def run_job(job_id: str):
    job = JOBS[job_id]
    job["status"] = "running"
    logger = None
    try:
        config = load_config(CONFIG_PATH)
        logger = JobLogger(job_id, storage=config.logging.directory, level=config.logging.level)
        job["log_path"] = str(logger.path)
        logger.log("job_start", True, f"Starting {job['kind']} job")
        if job["kind"] == JobKind.DISCOVER.value:
            result = _discover(DiscoverJobRequest(**job["request"]), logger, config)
        else:
            result = _provision(ProvisionJobRequest(**job["request"]), logger, config)

        job["outcome"] = result.outcome.model_dump()
        job["results"] = [a.model_dump() for a in result.results]
        job["status"] = "completed" if result.outcome.succeeded else "failed"
    except SptError as e:
        if logger:
            logger.log("fatal_error", False, f"{e}")
        job["status"] = "failed"
        job["error"] = str(e)
    finally:
        if logger:
            job["logs"] = list(logger.entries)


def _worker_loop():
    while True:
        job_id = JOB_QUEUE.get()
        if job_id is None:
            JOB_QUEUE.task_done()
            break
        try:
            run_job(job_id)
        except Exception as e:
            # keep the worker alive for the next job
            JOBS[job_id]["status"] = "failed"
            JOBS[job_id]["error"] = f"unexpected error: {e}"
        JOB_QUEUE.task_done()


def start_worker():
    global _worker_thread
    with _start_lock:
        if _worker_thread is None or not _worker_thread.is_alive():
            _worker_thread = threading.Thread(target=_worker_loop, daemon=True)
            _worker_thread.start()


def _cancel_queued():
    """Fail every job still waiting in the queue."""
    while True:
        try:
            job_id = JOB_QUEUE.get_nowait()
        except queue.Empty:
            return
        if job_id is not None:
            JOBS[job_id]["status"] = "failed"
            JOBS[job_id]["error"] = "cancelled: server shutting down"
        JOB_QUEUE.task_done()


def stop_worker():
    global _worker_thread
    if _worker_thread is not None and _worker_thread.is_alive():
        _cancel_queued()
        JOB_QUEUE.put(None)
        _worker_thread.join(timeout=STOP_TIMEOUT)
        for job in JOBS.values():
            if job["status"] == "running":
                job["status"] = "failed"
                job["error"] = "interrupted: server shut down before the job finished"
    _worker_thread = None


def submit_job(kind: JobKind, request) -> str:
    job_id = str(uuid.uuid4())
    JOBS[job_id] = {
        "job_id": job_id,
        "kind": kind.value,
        "status": "queued",
        "request": request.model_dump(),
        "outcome": None,
        "results": [],
        "error": None,
        "logs": [],
    }
    start_worker()
    JOB_QUEUE.put(job_id)
    return job_id
