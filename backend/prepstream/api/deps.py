"""
Request dependencies.

Services are built once in the application lifespan and stored on
app.state; routes receive them through FastAPI dependencies so tests can
override them.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from prepstream.config import Settings
from prepstream.models.documents import User
from prepstream.services.ai_logger import AILogger
from prepstream.services.interviews import InterviewRepository
from prepstream.services.pocketbase import PocketbaseError, PocketbaseService
from prepstream.services.quota import QuotaGate
from prepstream.services.streaming import GenerationOrchestrator, StreamTracker
from prepstream.services.users import UserRepository

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    cache: object
    pocketbase: PocketbaseService
    tracker: StreamTracker
    orchestrator: GenerationOrchestrator
    users: UserRepository
    interviews: InterviewRepository
    quota: QuotaGate
    ai_logger: AILogger


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def get_current_user(
    x_user_id: Optional[str] = Header(None, description="Clerk user id"),
    services: ServiceContainer = Depends(get_services),
) -> User:
    """
    Resolve the calling user.

    Raises 401 when the header is missing or names an unknown user.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        user = await services.users.find_by_clerk_id(x_user_id)
    except PocketbaseError as e:
        logger.error("User lookup failed for %s: %s", x_user_id, e.message)
        raise HTTPException(status_code=503, detail="User service unavailable")

    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user
