"""
Health Check Router

System health monitoring endpoints.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from ...services import Services
from ..dependencies import get_services


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Basic health check.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "inbox-courier"
    }


@router.get("/health/detailed")
async def detailed_health_check(services: Services = Depends(get_services)):
    """
    Detailed health check with component status.

    Returns:
        Detailed health status for all components
    """
    config = services.config
    health = {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "components": {}
    }

    # Check database
    try:
        services.db.check_connection()
        health["components"]["database"] = {
            "status": "healthy",
            "message": "Database connection OK"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database error: {str(e)}"
        }
        health["status"] = "degraded"

    # Configuration only; no outbound calls from a health probe
    health["components"]["graph_api"] = {
        "status": "configured" if config.graph_api.is_configured() else "not_configured",
        "mailbox": config.graph_api.mailbox or None,
    }
    health["components"]["telegram"] = {
        "status": "configured" if config.telegram.is_configured() else "not_configured",
        "subscribers": len(services.registry.chat_ids()),
        "max_subscribers": config.app.max_subscribers,
    }
    health["components"]["claude_api"] = {
        "status": "configured" if config.claude.api_key else "not_configured",
        "model": config.claude.model,
        "generation_enabled": config.app.generation_enabled,
    }

    problems = config.validate()
    if problems:
        health["components"]["configuration"] = {"status": "incomplete", "problems": problems}
        if health["status"] == "healthy":
            health["status"] = "degraded"
    else:
        health["components"]["configuration"] = {"status": "ok"}

    return health
