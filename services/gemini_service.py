"""
Gemini client for Nuvix UI generation (google-genai, streaming)
"""
import base64
import logging
from functools import lru_cache
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

from google import genai
from google.genai import errors, types

from config.settings import (
    GEMINI_API_KEY,
    GEMINI_MODEL,
    GEMINI_FALLBACK_MODEL,
    GEMINI_MAX_OUTPUT_TOKENS,
    TRAINING_DESIGNS_DIR,
)
from config.plan_config import get_tier_features
from models.generation import GenerationRequest, HistoryMessage, TokenUsage
from prompts.ui_prompts import build_system_prompt, build_user_message

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPES = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".webp": "image/webp"}
FALLBACK_STATUS_CODES = {404, 429, 503}


def parse_data_url(data_url: str) -> Optional[Tuple[bytes, str]]:
    """Split a `data:<mime>;base64,<payload>` URL into bytes and mime type."""
    try:
        header, payload = data_url.split(",", 1)
        mime_type = header.split(";")[0].split(":")[1]
        return base64.b64decode(payload), mime_type
    except (ValueError, IndexError) as e:
        logger.warning(f"Ignoring malformed image data URL: {e}")
        return None


@lru_cache(maxsize=4)
def load_training_designs(directory: str = TRAINING_DESIGNS_DIR) -> Tuple[Tuple[bytes, str], ...]:
    """Reference designs shipped with the deployment, sent with every generation."""
    path = Path(directory)
    if not path.is_dir():
        logger.info("No training-designs folder found. Skipping training images.")
        return ()
    designs = []
    for file in sorted(path.iterdir()):
        mime_type = IMAGE_MIME_TYPES.get(file.suffix.lower())
        if mime_type:
            designs.append((file.read_bytes(), mime_type))
    logger.info(f"Loaded {len(designs)} training design(s) from {directory}")
    return tuple(designs)


def should_use_fallback(error: Exception) -> bool:
    code = getattr(error, "code", None)
    if code in FALLBACK_STATUS_CODES:
        return True
    message = str(error).lower()
    return any(hint in message for hint in ("overloaded", "not found", "resource has been exhausted", "503", "404", "429"))


class UpstreamStream:
    """
    Text chunks from one model response. `usage` holds the token counts
    reported by the model and is complete once iteration has finished.
    """

    def __init__(self, first_chunk, chunks: AsyncIterator, model_name: str):
        self._first_chunk = first_chunk
        self._chunks = chunks
        self.model_name = model_name
        self.usage = TokenUsage()

    def _record_usage(self, chunk) -> None:
        metadata = getattr(chunk, "usage_metadata", None)
        if metadata:
            self.usage = TokenUsage(
                input_tokens=metadata.prompt_token_count or 0,
                output_tokens=metadata.candidates_token_count or 0,
            )

    async def __aiter__(self):
        if self._first_chunk is not None:
            self._record_usage(self._first_chunk)
            if self._first_chunk.text:
                yield self._first_chunk.text
        async for chunk in self._chunks:
            self._record_usage(chunk)
            if chunk.text:
                yield chunk.text


class GeminiService:
    def __init__(self, client: Optional[genai.Client] = None):
        if client is None:
            if not GEMINI_API_KEY:
                raise ValueError("GEMINI_API_KEY not found in environment variables")
            client = genai.Client(api_key=GEMINI_API_KEY)
        self.client = client

    def build_contents(self, request: GenerationRequest, history: List[HistoryMessage], user_tier: str) -> Tuple[List[types.Content], types.GenerateContentConfig]:
        designs = load_training_designs()
        screen_count = get_tier_features(user_tier)["screens_per_flow"]
        system_prompt = build_system_prompt(
            request.device_mode.value,
            current_design=request.current_design,
            screen_count=screen_count,
            has_reference_designs=bool(designs),
        )

        primer_parts = [types.Part(text=system_prompt)]
        primer_parts.extend(types.Part.from_bytes(data=data, mime_type=mime) for data, mime in designs)
        acknowledgement = (
            f"Understood! I've analyzed {len(designs)} reference design(s). I will generate HTML code that matches their style, colors, layouts, and quality."
            if designs else
            "Understood! I will generate HTML code for beautiful, modern UI designs. Ready to create!"
        )
        contents = [
            types.Content(role="user", parts=primer_parts),
            types.Content(role="model", parts=[types.Part(text=acknowledgement)]),
        ]
        for message in history:
            contents.append(types.Content(role="user" if message.role == "user" else "model", parts=self._message_parts(message.content, message.image)))

        user_text = build_user_message(request.message, request.device_mode.value, is_edit=request.is_edit)
        contents.append(types.Content(role="user", parts=self._message_parts(user_text, request.image)))

        config = types.GenerateContentConfig(
            temperature=1.0,
            top_k=40,
            top_p=0.95,
            max_output_tokens=GEMINI_MAX_OUTPUT_TOKENS,
        )
        return contents, config

    async def open_stream(self, request: GenerationRequest, history: Optional[List[HistoryMessage]] = None, user_tier: str = "free") -> UpstreamStream:
        """
        Start a streaming generation. The first chunk is awaited here so that
        connection errors surface before anything is sent to the client.
        """
        contents, config = self.build_contents(request, history or [], user_tier)
        try:
            return await self._start(GEMINI_MODEL, contents, config)
        except errors.APIError as e:
            if not should_use_fallback(e):
                raise
            logger.warning(f"Model {GEMINI_MODEL} unavailable ({e}), falling back to {GEMINI_FALLBACK_MODEL}")
        return await self._start(GEMINI_FALLBACK_MODEL, contents, config)

    async def _start(self, model_name: str, contents, config) -> UpstreamStream:
        logger.info(f"Opening Gemini stream with model {model_name}")
        stream = await self.client.aio.models.generate_content_stream(model=model_name, contents=contents, config=config)
        chunks = stream.__aiter__()
        try:
            first_chunk = await chunks.__anext__()
        except StopAsyncIteration:
            first_chunk = None
        return UpstreamStream(first_chunk, chunks, model_name)

    @staticmethod
    def _message_parts(text: str, image: Optional[str]) -> List[types.Part]:
        parts = [types.Part(text=text)]
        if image:
            decoded = parse_data_url(image)
            if decoded:
                data, mime_type = decoded
                parts.append(types.Part.from_bytes(data=data, mime_type=mime_type))
        return parts


gemini_service = None

def get_gemini_service() -> GeminiService:
    """Get or create the shared Gemini service"""
    global gemini_service
    if gemini_service is None:
        gemini_service = GeminiService()
    return gemini_service
