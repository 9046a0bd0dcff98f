"""
Generation pipeline for Nuvix.

`stream_generation_markup` is the raw chat stream: the model's markup with
the start, error and credits markers embedded. `ProjectGenerationRunner`
consumes that same stream for a project, splits it into frames, and persists
the result once the stream has completed.
"""
import logging
from contextlib import aclosing
from typing import AsyncIterator, Dict, Any, List, Optional

from config.settings import CLEANUP_FRAMES_ON_FAILURE
from models.generation import GenerationEvent, GenerationRequest, HistoryMessage
from models.project import Frame
from services.credit_service import CreditService, calculate_credit_cost, format_credits_marker, format_error_marker
from services.frame_splitter import FrameSplitter, PROCESSING_START_MARKER
from services.project_service import ProjectService

logger = logging.getLogger(__name__)

COULD_NOT_CONNECT_MESSAGE = "Could not connect to AI service. (Timeout or Network Issue)"


async def stream_generation_markup(upstream, user_id: str, credit_service: CreditService) -> AsyncIterator[str]:
    """
    Pipe an open upstream stream to the client.

    The start marker goes out first to keep the connection warm. Once the
    upstream is exhausted the usage is charged and the deducted amount is
    appended as a credits marker. An upstream failure ends the stream with an
    error marker instead, and nothing is charged.
    """
    yield PROCESSING_START_MARKER
    try:
        async for text in upstream:
            yield text
    except Exception as e:
        logger.error(f"Upstream stream failed for user {user_id}: {str(e)}", exc_info=True)
        yield format_error_marker(str(e) or "Generation failed")
        return

    usage = upstream.usage
    cost = calculate_credit_cost(usage.input_tokens, usage.output_tokens)
    logger.info(f"Usage for user {user_id}: input {usage.input_tokens}, output {usage.output_tokens}. Cost: {cost} credits")

    deducted = await credit_service.deduct_credits(user_id, cost)
    if deducted is not None:
        yield format_credits_marker(deducted)


def _frames_event(frames: List[Frame]) -> GenerationEvent:
    return GenerationEvent(type="frames", frames=[frame.model_dump(mode="json") for frame in frames])


def assistant_summary(message: str) -> str:
    short = message if len(message) <= 50 else message[:50] + "..."
    return f'I\'ve created the design based on your request: "{short}". Feel free to click on the frame to make edits!'


class ProjectGenerationRunner:
    """
    One chat turn against a project. Yields GenerationEvents in order:
    frame updates while streaming, the credits charged, the final frames,
    warnings for any row that failed to save, and finally `done` (or a
    terminal `error`).
    """

    def __init__(
        self,
        project_service: ProjectService,
        credit_service: CreditService,
        generator,
        project: Dict[str, Any],
        user: Dict[str, Any],
        request: GenerationRequest,
        history: Optional[List[HistoryMessage]] = None,
        cleanup_on_failure: bool = CLEANUP_FRAMES_ON_FAILURE,
        splitter: Optional[FrameSplitter] = None,
    ):
        self.project_service = project_service
        self.credit_service = credit_service
        self.generator = generator
        self.project = project
        self.user = user
        self.request = request
        self.history = history or []
        self.cleanup_on_failure = cleanup_on_failure
        self.splitter = splitter or FrameSplitter(
            request.device_mode,
            edit_frame_id=request.frame_id if request.is_edit else None,
        )

    async def run(self) -> AsyncIterator[GenerationEvent]:
        project_id = self.project["id"]
        user_id = self.user["id"]
        logger.info(f"[{project_id}] Starting generation for user {user_id} (edit={self.splitter.is_edit})")

        warning = self._save_message("user", self.request.message, image=self.request.image)
        if warning:
            yield warning

        yield _frames_event(self.splitter.snapshot())

        try:
            upstream = await self.generator.open_stream(self.request, self.history, self.user.get("tier", "free"))
        except Exception as e:
            logger.error(f"[{project_id}] Could not open upstream stream: {str(e)}", exc_info=True)
            yield self._failure(COULD_NOT_CONNECT_MESSAGE)
            return

        async with aclosing(stream_generation_markup(upstream, user_id, self.credit_service)) as markup:
            async for chunk in markup:
                for event in self.splitter.feed(chunk):
                    if event.kind == "frames":
                        yield _frames_event(event.frames)
                    elif event.kind == "credits":
                        yield GenerationEvent(type="credits", amount=event.amount)
                    elif event.kind == "error":
                        yield self._failure(f"AI Error: {event.message}")
                        return

        frames = self.splitter.finalize()
        yield _frames_event(frames)

        warning = self._save_message("assistant", assistant_summary(self.request.message))
        if warning:
            yield warning

        for frame in frames:
            try:
                self.project_service.upsert_frame(project_id, frame)
            except Exception as e:
                logger.error(f"[{project_id}] Error saving frame {frame.id}: {str(e)}")
                yield GenerationEvent(type="warning", message=f"Database Error (Frame {frame.id}): {e}")

        logger.info(f"[{project_id}] Generation finished with {len(frames)} frame(s)")
        yield GenerationEvent(type="done", message=assistant_summary(self.request.message))

    def _save_message(self, role: str, content: str, image: Optional[str] = None) -> Optional[GenerationEvent]:
        try:
            self.project_service.add_message(self.project["id"], role, content, image=image)
            return None
        except Exception as e:
            logger.error(f"[{self.project['id']}] Error saving {role} message: {str(e)}")
            label = "User Message" if role == "user" else "Messages"
            return GenerationEvent(type="warning", message=f"Database Error ({label}): {e}")

    def _failure(self, message: str) -> GenerationEvent:
        discarded = []
        if self.cleanup_on_failure and not self.splitter.is_edit:
            discarded = self.splitter.frame_ids
        return GenerationEvent(type="error", message=message, discarded_frame_ids=discarded)
