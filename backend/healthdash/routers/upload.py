import logging

from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from healthdash.config import settings
from healthdash.database import get_db
from healthdash.parsers.export_parser import InvalidArchiveError, ParseDiagnostics
from healthdash.schemas import HealthDataStore
from healthdash.services.data_sources import get_data_source
from healthdash.services.health_store import create_data_source, upsert_source
from healthdash.services.store_repository import get_health_data_store, save_health_data_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])


@router.post("/upload")
async def upload_export(
    file: UploadFile = File(...),
    source: str = Query(settings.DEFAULT_SOURCE_ID),
    db: Session = Depends(get_db),
):
    """Upload a data export ZIP. Replaces every record of that source."""
    definition = get_data_source(source)
    if definition is None:
        raise HTTPException(status_code=400, detail=f"Unknown data source: {source}")
    if not file.filename or not file.filename.lower().endswith(".zip"):
        raise HTTPException(status_code=400, detail="Please upload a ZIP file")

    content = await file.read()
    diagnostics = ParseDiagnostics()
    try:
        metrics = await definition.parse(content, diagnostics)
    except InvalidArchiveError as e:
        raise HTTPException(status_code=400, detail=str(e))

    store = get_health_data_store(db) or HealthDataStore()
    store = upsert_source(store, create_data_source(source, metrics))
    save_health_data_store(db, store)
    logger.info("Imported %s from %s: %s", source, file.filename, diagnostics.counts)

    return {
        "status": "success",
        "source": source,
        "summary": diagnostics.counts,
        "missing": diagnostics.missing,
        "unrecognized": diagnostics.unrecognized,
        "failed": diagnostics.failed,
    }
