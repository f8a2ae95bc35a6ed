"""Admin login."""

import structlog
from fastapi import APIRouter

from app.core.security import issue_admin_token
from app.schemas.admin import LoginRequest, LoginResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest) -> LoginResponse:
    token = issue_admin_token(body.username, body.password)
    logger.info("admin_login", username=body.username)
    return LoginResponse(access_token=token)
