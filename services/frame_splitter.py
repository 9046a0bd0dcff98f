"""
Streaming frame splitter for Nuvix.

The model answers a chat turn with one fenced ```html block per generated
screen. Text arrives in chunks; every chunk is absorbed into a per-generation
buffer and the buffer is split into candidate blocks, each routed to a stable
frame id. The stream also carries inline control markers (start, error,
credits deducted) which are stripped before block matching and reported as
side-channel events.

A FrameSplitter performs no I/O and never raises on malformed input: missing
fences degrade to the markup fallback, and ids that never matched a block
finalize with empty content.
"""
import re
import time
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

from config.settings import STREAM_THROTTLE_MS
from models.generation import DeviceMode
from models.project import Frame

logger = logging.getLogger(__name__)

PROCESSING_START_MARKER = "<!-- PROCESSING_START -->"
STREAM_ERROR_OPENER = "<!-- STREAM_ERROR: "
CREDITS_DEDUCTED_OPENER = "<!-- CREDITS_DEDUCTED: "
MARKER_CLOSER = " -->"

# Longest run of text held back while waiting for a marker to terminate.
MAX_MARKER_LENGTH = 1024

MARKER_PATTERN = re.compile(
    r"<!-- (?:(?P<start>PROCESSING_START)"
    r"|STREAM_ERROR: (?P<error>.*?)"
    r"|CREDITS_DEDUCTED: (?P<credits>\d+)) -->"
)

# Opening fence, optional language tag, body, then a closing fence or the end
# of the buffer. An unterminated trailing block is still a candidate.
FENCED_BLOCK_PATTERN = re.compile(r"```(?:\w*)\s*(?P<body>[\s\S]*?)(?P<close>```|\Z)")

MARKUP_START_TOKENS: Tuple[str, ...] = ("<!DOCTYPE", "<html", "<div")

_MARKER_OPENERS = (PROCESSING_START_MARKER, STREAM_ERROR_OPENER, CREDITS_DEDUCTED_OPENER)


class MarkerEvent(BaseModel):
    kind: str  # "start" | "error" | "credits"
    message: Optional[str] = None
    amount: Optional[int] = None


class SplitterEvent(BaseModel):
    kind: str  # "start" | "frames" | "credits" | "error"
    frames: Optional[List[Frame]] = None
    amount: Optional[int] = None
    message: Optional[str] = None


def _block_body(match: "re.Match") -> str:
    return match.group("body").rstrip()


def markup_fallback(text: str, tokens: Tuple[str, ...] = MARKUP_START_TOKENS) -> Optional[str]:
    """Return the text from the first '<' onward if it looks like raw markup."""
    if not any(token in text for token in tokens):
        return None
    start = text.find("<")
    return text[start:] if start >= 0 else None


def scan_blocks(text: str, tokens: Tuple[str, ...] = MARKUP_START_TOKENS) -> List[str]:
    """
    Full, stateless scan of a buffer.

    Returns the bodies of all fenced blocks in order of appearance. When the
    buffer holds no fence at all but contains a markup start token, the whole
    markup tail is returned as a single implicit block.
    """
    blocks = [_block_body(match) for match in FENCED_BLOCK_PATTERN.finditer(text)]
    if blocks:
        return blocks
    fallback = markup_fallback(text, tokens)
    return [fallback] if fallback is not None else []


class FenceScanner:
    """
    Incremental equivalent of scan_blocks for an append-only buffer.

    A block closed by a fence can no longer change once the buffer grows, so
    only the text after the last closed block is matched again on each append.
    """

    def __init__(self, tokens: Tuple[str, ...] = MARKUP_START_TOKENS):
        self.tokens = tokens
        self._text = ""
        self._closed: List[str] = []
        self._open: Optional[str] = None
        self._resume_at = 0
        self._markup_seen = False
        self._first_tag_at: Optional[int] = None
        self._token_overlap = max(len(token) for token in tokens) - 1 if tokens else 0

    @property
    def text(self) -> str:
        return self._text

    def feed(self, chunk: str) -> None:
        if not chunk:
            return
        previous_length = len(self._text)
        self._text += chunk

        self._open = None
        for match in FENCED_BLOCK_PATTERN.finditer(self._text, self._resume_at):
            if match.group("close"):
                self._closed.append(_block_body(match))
                self._resume_at = match.end()
            else:
                self._open = _block_body(match)

        if self._first_tag_at is None:
            found = self._text.find("<", previous_length)
            if found >= 0:
                self._first_tag_at = found
        if not self._markup_seen:
            window = self._text[max(0, previous_length - self._token_overlap):]
            self._markup_seen = any(token in window for token in self.tokens)

    def candidates(self) -> List[str]:
        blocks = list(self._closed)
        if self._open is not None:
            blocks.append(self._open)
        if blocks:
            return blocks
        if self._markup_seen and self._first_tag_at is not None:
            return [self._text[self._first_tag_at:]]
        return []


class MarkerFilter:
    """
    Strips control markers from the stream.

    Markers are recognised across chunk boundaries: a trailing fragment that
    may still turn into a marker is held back until the next chunk resolves it.
    """

    def __init__(self):
        self._pending = ""

    def feed(self, chunk: str) -> List[Union[str, MarkerEvent]]:
        text = self._pending + chunk
        self._pending = ""
        items: List[Union[str, MarkerEvent]] = []
        position = 0

        for match in MARKER_PATTERN.finditer(text):
            if match.start() > position:
                items.append(text[position:match.start()])
            items.append(self._to_event(match))
            position = match.end()

        rest = text[position:]
        hold_from = self._hold_position(rest)
        if hold_from is not None:
            self._pending = rest[hold_from:]
            rest = rest[:hold_from]
        if rest:
            items.append(rest)
        return items

    def flush(self) -> str:
        pending, self._pending = self._pending, ""
        return pending

    @staticmethod
    def _to_event(match: "re.Match") -> MarkerEvent:
        if match.group("start"):
            return MarkerEvent(kind="start")
        if match.group("credits") is not None:
            return MarkerEvent(kind="credits", amount=int(match.group("credits")))
        return MarkerEvent(kind="error", message=match.group("error").strip())

    @staticmethod
    def _hold_position(rest: str) -> Optional[int]:
        # An opener that is already complete but not yet terminated
        for opener in (STREAM_ERROR_OPENER, CREDITS_DEDUCTED_OPENER):
            index = rest.rfind(opener)
            if index >= 0 and len(rest) - index <= MAX_MARKER_LENGTH:
                return index
        # A tail that is the beginning of some opener
        longest = 0
        for opener in _MARKER_OPENERS:
            for size in range(min(len(opener) - 1, len(rest)), longest, -1):
                if rest.endswith(opener[:size]):
                    longest = size
                    break
        return len(rest) - longest if longest else None


class FrameSplitter:
    """
    Per-generation context that routes streamed markup to frame ids.

    In creation mode (no `edit_frame_id`) one placeholder id is allocated up
    front and more are allocated, never removed, as further blocks appear.
    In edit mode the single target id receives the first block, or the raw
    buffer when there is none.

    Frame updates are emitted at most once per `throttle_ms`; every chunk is
    absorbed into the buffer regardless.
    """

    def __init__(
        self,
        device_mode: Union[DeviceMode, str] = DeviceMode.MOBILE,
        edit_frame_id: Optional[str] = None,
        throttle_ms: int = STREAM_THROTTLE_MS,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.device_mode = DeviceMode(device_mode).value
        self.edit_frame_id = edit_frame_id
        self.throttle_ms = throttle_ms
        self._clock = clock
        self._wall_clock = wall_clock
        self._markers = MarkerFilter()
        self._scanner = FenceScanner()
        self._id_base = int(wall_clock() * 1000)
        self._frame_ids: List[str] = []
        self._created_at: Dict[str, datetime] = {}
        self._last_emit: Optional[float] = None

        self.started = False
        self.failed = False
        self.error_message: Optional[str] = None
        self.credits_deducted: Optional[int] = None

        if edit_frame_id:
            self._register(edit_frame_id)
        else:
            self._allocate(1)

    @property
    def is_edit(self) -> bool:
        return self.edit_frame_id is not None

    @property
    def frame_ids(self) -> List[str]:
        return list(self._frame_ids)

    @property
    def buffer(self) -> str:
        return self._scanner.text

    def feed(self, chunk: str) -> List[SplitterEvent]:
        """Absorb one chunk and return the side-channel and frame events it produced."""
        if self.failed or not chunk:
            return []

        events: List[SplitterEvent] = []
        absorbed = False
        for item in self._markers.feed(chunk):
            if isinstance(item, str):
                self._scanner.feed(item)
                absorbed = True
                continue
            if item.kind == "error":
                self.failed = True
                self.error_message = item.message or "Unknown error"
                logger.warning(f"Stream error marker received: {self.error_message}")
                events.append(SplitterEvent(kind="error", message=self.error_message))
                return events
            if item.kind == "credits":
                self.credits_deducted = item.amount
                events.append(SplitterEvent(kind="credits", amount=item.amount))
            else:
                self.started = True
                events.append(SplitterEvent(kind="start"))

        if absorbed:
            contents = self._reconcile(self._scanner.candidates())
            now = self._clock()
            if self._last_emit is None or (now - self._last_emit) * 1000 >= self.throttle_ms:
                self._last_emit = now
                events.append(SplitterEvent(kind="frames", frames=self._build_frames(contents)))
        return events

    def snapshot(self) -> List[Frame]:
        """Current frames without waiting for the throttle window."""
        return self._build_frames(self._reconcile(self._scanner.candidates()))

    def finalize(self) -> List[Frame]:
        """
        Authoritative final scan of the complete buffer. Ids that never
        received a block keep empty content.
        """
        if not self.failed:
            self._scanner.feed(self._markers.flush())
        contents = self._reconcile(scan_blocks(self._scanner.text, self._scanner.tokens))
        return self._build_frames(contents)

    def _reconcile(self, candidates: List[str]) -> List[str]:
        if self.is_edit:
            return [candidates[0] if candidates else self._scanner.text]
        if len(candidates) > len(self._frame_ids):
            self._allocate(len(candidates) - len(self._frame_ids))
        return [candidates[i] if i < len(candidates) else "" for i in range(len(self._frame_ids))]

    def _allocate(self, count: int) -> None:
        for _ in range(count):
            self._register(str(self._id_base + len(self._frame_ids)))

    def _register(self, frame_id: str) -> None:
        self._frame_ids.append(frame_id)
        self._created_at[frame_id] = datetime.fromtimestamp(self._wall_clock(), tz=timezone.utc)

    def _build_frames(self, contents: List[str]) -> List[Frame]:
        return [
            Frame(id=frame_id, content=content, type=self.device_mode, created_at=self._created_at[frame_id])
            for frame_id, content in zip(self._frame_ids, contents)
        ]
