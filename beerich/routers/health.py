"""
Health Check Router
Liveness plus DynamoDB table reachability.
"""
from fastapi import APIRouter
from datetime import datetime, timezone

from beerich.core.config import settings
from beerich.db import dynamo

router = APIRouter()


@router.get("/health")
def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/status")
def dynamo_status():
    """
    Check that the users and expenses tables are reachable.
    """
    tables = dynamo.table_status()
    connected = all(table["status"] == "accessible" for table in tables.values())
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {"dynamodb": {"connected": connected, "region": settings.DYNAMO_REGION, "tables": tables}},
        "overall_status": "healthy" if connected else "degraded",
    }
