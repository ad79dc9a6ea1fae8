"""
Gate for development-only diagnostic endpoints.

Usage:
    @router.get("/sessions/{session_id}", dependencies=[Depends(require_development)])
    async def get_session(...):
        ...
"""
from fastapi import HTTPException, Request, status

from splitbill.core.config import settings
from splitbill.core.logging import get_logger
from splitbill.core.middleware import mask_path_pii

logger = get_logger(__name__)


async def require_development(request: Request) -> None:
    """
    Hide the endpoint outside ENVIRONMENT=development.

    Answers 404 rather than 403 so production does not advertise it.
    """
    if not settings.is_development:
        logger.warning(
            "Diagnostic endpoint requested outside development",
            extra_data={
                "path": mask_path_pii(request.url.path),
                "environment": settings.ENVIRONMENT,
            }
        )
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
