"""
Health check endpoint.
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from invoicer.config import API_VERSION
from invoicer.db import get_db
from invoicer.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Liveness plus a database round trip.

    Returns:
        { status: "ok" | "degraded", database: "ok" | "unavailable", timestamp, version }
    """
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database query failed: {e}")
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "version": API_VERSION,
    }
