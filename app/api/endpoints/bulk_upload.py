import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from loguru import logger

from app.api.deps import get_bulk_pipeline
from app.core.config import settings
from app.models.product import BatchFinishedEvent, CategoryChoice, ItemStatus
from app.services.bulk_upload_service import BulkUploadPipeline, CancellationToken, build_queue

router = APIRouter()

# In-memory job store
jobs = {}


def _snapshot(job: dict) -> dict:
    items = job["items"]
    return {
        "status": job["status"],
        "category": job["category"],
        "total_items": len(items),
        "processed_items": sum(1 for i in items if i.status.is_terminal),
        "pending_items": sum(1 for i in items if i.status is ItemStatus.PENDING),
        "items": [i.model_dump(mode="json") for i in items],
        "result": job["result"].model_dump() if job["result"] else None,
        "stopped": job["stopped"],
    }


@router.post("")
async def start_bulk_upload(
    background_tasks: BackgroundTasks,
    images: List[UploadFile] = File(...),
    category: Optional[str] = Form(None),
    new_category: Optional[str] = Form(None),
    pipeline: BulkUploadPipeline = Depends(get_bulk_pipeline),
):
    """
    Queue image files for ingestion into one category and start processing
    them sequentially in the background.
    """
    for img in images:
        if img.content_type not in settings.ALLOWED_IMAGE_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid image type: {img.filename}")

    files = [(img.filename or "", await img.read()) for img in images]
    items = build_queue(files)
    choice = CategoryChoice(selected=category, is_new=new_category is not None, new_name=new_category)

    token = CancellationToken()
    # Raises ValidationError before any item is touched
    events = pipeline.run(items, choice, token)

    job_id = f"job_{uuid.uuid4().hex[:12]}"
    jobs[job_id] = {
        "status": "running",
        "category": (new_category or "").strip() if choice.is_new else category,
        "items": items,
        "token": token,
        "result": None,
        "stopped": False,
    }

    async def run_and_track():
        logger.info(f"🚀 Job {job_id} started")
        try:
            async for event in events:
                if isinstance(event, BatchFinishedEvent):
                    jobs[job_id]["result"] = event.result
                    jobs[job_id]["stopped"] = event.stopped
            jobs[job_id]["status"] = "stopped" if jobs[job_id]["stopped"] else "completed"
        except Exception as e:
            logger.exception(f"Job {job_id} crashed: {e}")
            jobs[job_id]["status"] = "failed"
            jobs[job_id]["error"] = str(e)
        finally:
            # Finished jobs keep statuses only, not the uploaded bytes
            for item in items:
                item.content = b""

    background_tasks.add_task(run_and_track)

    return {
        "job_id": job_id,
        "status": "processing_started",
        "items_count": len(items),
        "items": [i.model_dump(mode="json") for i in items],
    }


@router.get("/status/{job_id}")
async def get_job_status(job_id: str):
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job ID not found")
    return _snapshot(jobs[job_id])


@router.post("/stop/{job_id}")
async def stop_job(job_id: str):
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job ID not found")
    jobs[job_id]["token"].cancel()
    logger.warning(f"Stop requested for {job_id}")
    return {"job_id": job_id, "status": "stopping"}
