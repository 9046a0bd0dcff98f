"""
Generation routes for Nuvix: the raw chat stream and the project pipeline.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from supabase import Client

from auth.dependencies import get_supabase_client, get_credit_service, require_generation_credits
from models.generation import GenerationRequest
from services.credit_service import CreditService
from services.gemini_service import get_gemini_service
from services.generation_service import (
    COULD_NOT_CONNECT_MESSAGE,
    ProjectGenerationRunner,
    stream_generation_markup,
)
from services.project_service import ProjectService

router = APIRouter(prefix="/api", tags=["Generation"])
logger = logging.getLogger(__name__)

def get_ui_generator():
    return get_gemini_service()

@router.post("/chat")
async def chat(
    request: GenerationRequest,
    current_user: dict = Depends(require_generation_credits),
    credit_service: CreditService = Depends(get_credit_service),
    generator=Depends(get_ui_generator),
):
    """
    Streams the model's markup for one chat turn as text/plain, with the
    start, error and credits markers embedded.
    """
    if not request.message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")

    logger.info(f"Chat generation for user {current_user['id']} with mode: {request.device_mode.value}")
    try:
        upstream = await generator.open_stream(request, request.history, current_user.get("tier", "free"))
    except Exception as e:
        logger.error(f"Error opening generation stream for user {current_user['id']}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=COULD_NOT_CONNECT_MESSAGE)

    return StreamingResponse(
        stream_generation_markup(upstream, current_user["id"], credit_service),
        media_type="text/plain; charset=utf-8",
    )

@router.post("/projects/{project_id}/generate")
async def generate_for_project(
    project_id: str,
    request: GenerationRequest,
    current_user: dict = Depends(require_generation_credits),
    supabase: Client = Depends(get_supabase_client),
    credit_service: CreditService = Depends(get_credit_service),
    generator=Depends(get_ui_generator),
):
    """
    Runs one chat turn against a project and streams NDJSON events: frame
    updates, credits charged, warnings, then `done` or `error`. Frames and the
    assistant message are saved once the stream has completed.
    """
    if not request.message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")

    project_service = ProjectService(supabase)
    project = await project_service.get_project(project_id, current_user["id"])
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")

    request.current_design = None
    if request.frame_id:
        frame = await project_service.get_frame(project_id, request.frame_id)
        if not frame:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Frame not found")
        request.current_design = frame.get("content") or ""

    history = await project_service.get_conversation_history(project_id)
    runner = ProjectGenerationRunner(
        project_service=project_service,
        credit_service=credit_service,
        generator=generator,
        project=project,
        user=current_user,
        request=request,
        history=history,
    )

    async def event_lines():
        async for event in runner.run():
            yield event.model_dump_json(exclude_none=True) + "\n"

    return StreamingResponse(event_lines(), media_type="application/x-ndjson")
