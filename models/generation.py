"""
Generation models for Nuvix: the chat request, upstream token usage and the
events streamed back while frames are generated.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from enum import Enum

class DeviceMode(str, Enum):
    MOBILE = "mobile"
    DESKTOP = "desktop"

class HistoryMessage(BaseModel):
    role: str
    content: str
    image: Optional[str] = None

class GenerationRequest(BaseModel):
    """
    One chat turn. `current_design` is the markup of the frame being edited,
    `frame_id` identifies that frame when the turn runs against a project.
    """
    message: str = Field(..., description="User's prompt for the UI generation")
    image: Optional[str] = Field(default=None, description="Optional reference image as a data URL")
    device_mode: DeviceMode = Field(default=DeviceMode.MOBILE, alias="deviceMode")
    current_design: Optional[str] = Field(default=None, alias="currentDesign")
    frame_id: Optional[str] = Field(default=None, alias="frameId")
    history: List[HistoryMessage] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @property
    def is_edit(self) -> bool:
        return self.current_design is not None

class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

class GenerationEvent(BaseModel):
    """
    One line of the NDJSON stream returned by the project generation endpoint.
    """
    type: Literal["frames", "credits", "warning", "error", "done"]
    frames: Optional[List[dict]] = None
    amount: Optional[int] = None
    message: Optional[str] = None
    discarded_frame_ids: Optional[List[str]] = None
