import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_database
from api.schemas import HealthResponse
from database.engine import Database, DatabasePersistenceError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System Health"])


@router.get("/health", response_model=HealthResponse)
def health(database: Database = Depends(get_database)):
    """
    Liveness plus a database round trip.
    """
    try:
        database.verify_connection()
    except DatabasePersistenceError as e:
        logger.warning(f"Health check: database unavailable: {e}")
        return HealthResponse(status="degraded", database="unavailable")
    return HealthResponse(status="ok", database="ok")
