"""
Interview generation API endpoints.

Producer endpoints answer with a Server-Sent Events stream. Anything that
goes wrong before the stream opens is a normal JSON error; afterwards
errors arrive as an in-band "error" event.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, Field

from prepstream.ai.context import GenerationContext, PlanContext
from prepstream.models.content import AnalogyStyle
from prepstream.models.documents import Interview, User
from prepstream.services.pocketbase import PocketbaseError
from prepstream.services.quota import QuotaExceededError
from prepstream.services.streaming import JobKey, StreamRequest, read_replay, read_status
from prepstream.services.streaming.modules import (
    ContentModule,
    ModuleKind,
    TopicRewriteModule,
    module_for,
)

from .deps import ServiceContainer, get_current_user, get_services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/interview", tags=["interview"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class GenerateRequest(BaseModel):
    module: ModuleKind
    instructions: Optional[str] = None


class AddMoreRequest(BaseModel):
    module: ModuleKind
    count: Optional[int] = Field(None, ge=1, le=50)
    instructions: Optional[str] = None


class RegenerateTopicRequest(BaseModel):
    style: AnalogyStyle
    instructions: Optional[str] = None


class StreamListResponse(BaseModel):
    streams: list[dict]


async def load_owned_interview(services: ServiceContainer, interview_id: str, user: User) -> Interview:
    try:
        interview = await services.interviews.find_by_id(interview_id)
    except PocketbaseError as e:
        logger.error("Failed to load interview %s: %s", interview_id, e.message)
        raise HTTPException(status_code=503, detail="Interview service unavailable")

    if not interview:
        raise HTTPException(status_code=404, detail="Interview not found")
    if interview.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not authorized")
    return interview


def build_context(
    interview: Interview,
    user: User,
    instructions: Optional[str] = None,
    existing_ids: tuple[str, ...] = (),
) -> GenerationContext:
    """Stored interview instructions take precedence over the request's."""
    return GenerationContext(
        resume_text=interview.resume_context,
        job_description=interview.job_details.description,
        job_title=interview.job_details.title,
        company=interview.job_details.company,
        existing_content=existing_ids,
        custom_instructions=interview.custom_instructions or instructions,
        plan_context=PlanContext(plan=user.plan),
    )


async def start_stream(
    services: ServiceContainer,
    user: User,
    interview: Interview,
    module: ContentModule,
    ctx: GenerationContext,
    count: Optional[int] = None,
) -> StreamingResponse:
    """Check quota, start the producer and wrap its channel in an SSE response."""
    try:
        await services.quota.check_and_consume(user)
    except QuotaExceededError as e:
        raise HTTPException(status_code=429, detail=e.message)
    except PocketbaseError as e:
        logger.error("Failed to consume quota for user %s: %s", user.id, e.message)
        raise HTTPException(status_code=503, detail="User service unavailable")

    request = StreamRequest(
        stream_id=uuid.uuid4().hex,
        job_key=JobKey(interview.id, module.module_key),
        user_id=user.id,
        interview_id=interview.id,
        module=module,
        context=ctx,
        count=count,
        api_key=user.byok_api_key,
        byok_tiers=user.byok_tiers(),
        prompt_summary=module.describe(ctx, count),
    )
    channel = await services.orchestrator.start(request)

    headers = {
        **SSE_HEADERS,
        "X-Stream-Id": request.stream_id,
        "X-Interview-Id": interview.id,
    }
    if "topicId" in module.tag:
        headers["X-Topic-Id"] = module.tag["topicId"]
    else:
        headers["X-Module"] = module.tag["module"]

    return StreamingResponse(channel.frames(), media_type="text/event-stream", headers=headers)


@router.post("/{interview_id}/generate")
async def generate_module(
    interview_id: str,
    body: GenerateRequest,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> StreamingResponse:
    """Generate (or regenerate) one interview module, replacing stored content."""
    interview = await load_owned_interview(services, interview_id, user)
    module = module_for(body.module)
    ctx = build_context(interview, user, body.instructions)
    return await start_stream(services, user, interview, module, ctx)


@router.post("/{interview_id}/add-more")
async def add_more(
    interview_id: str,
    body: AddMoreRequest,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> StreamingResponse:
    """Append new items to a list module, skipping ids that already exist."""
    try:
        module = module_for(body.module, append=True)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    interview = await load_owned_interview(services, interview_id, user)
    existing_ids = tuple(interview.modules.ids_for(module.store_field))
    ctx = build_context(interview, user, body.instructions, existing_ids)
    return await start_stream(services, user, interview, module, ctx, count=body.count or module.default_count)


@router.post("/{interview_id}/topic/{topic_id}/regenerate")
async def regenerate_topic(
    interview_id: str,
    topic_id: str,
    body: RegenerateTopicRequest,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> StreamingResponse:
    """Rewrite one revision topic in a different analogy style."""
    interview = await load_owned_interview(services, interview_id, user)

    topic = interview.modules.find_topic(topic_id)
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")

    module = TopicRewriteModule(topic, body.style)
    ctx = build_context(interview, user, body.instructions)
    return await start_stream(services, user, interview, module, ctx)


@router.get("/{interview_id}/streams", response_model=StreamListResponse)
async def list_streams(
    interview_id: str,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> StreamListResponse:
    """All tracked generations for an interview."""
    await load_owned_interview(services, interview_id, user)
    jobs = await services.tracker.jobs_for_parent(interview_id)
    return StreamListResponse(
        streams=[{"module": job.job_key.module_key, **job.status_payload()} for job in jobs],
    )


@router.get("/{interview_id}/stream/{module_key}")
async def get_stream_status(
    interview_id: str,
    module_key: str,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """
    Status of a generation for reconnecting clients.

    Returns {"status": "none"} when nothing is tracked, otherwise
    status, streamId and createdAt.
    """
    await load_owned_interview(services, interview_id, user)
    return await read_status(services.tracker, JobKey(interview_id, module_key))


@router.get("/{interview_id}/stream/{module_key}/replay")
async def replay_stream(
    interview_id: str,
    module_key: str,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
) -> Response:
    """Everything sent so far on a stream, as SSE frames. 204 if nothing is buffered."""
    await load_owned_interview(services, interview_id, user)

    content = await read_replay(services.tracker, JobKey(interview_id, module_key))
    if content is None:
        return Response(status_code=204)

    return Response(
        content=content,
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Stream-Resumed": "true"},
    )
