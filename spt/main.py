# spt/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from .models import DiscoverJobRequest, JobKind, JobResult, ProvisionJobRequest
from .worker import JOBS, start_worker, stop_worker, submit_job


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_worker()
    yield
    stop_worker()


app = FastAPI(title="sysPass permissions tool", lifespan=lifespan)


@app.post("/jobs/discover")
async def create_discover_job(req: DiscoverJobRequest):
    job_id = submit_job(JobKind.DISCOVER, req)
    return {"job_id": job_id, "status": "queued"}


@app.post("/jobs/provision")
async def create_provision_job(req: ProvisionJobRequest):
    job_id = submit_job(JobKind.PROVISION, req)
    return {"job_id": job_id, "status": "queued"}


@app.get("/jobs/{job_id}", response_model=JobResult)
async def get_job(job_id: str):
    job = JOBS.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")
    return job


@app.get("/jobs")
async def list_jobs():
    """List all jobs with basic info."""
    return {
        "jobs": [
            {
                "job_id": job["job_id"],
                "kind": job["kind"],
                "status": job["status"],
                "had_errors": (job["outcome"] or {}).get("had_errors"),
                "results": len(job["results"]),
            }
            for job in JOBS.values()
        ]
    }
