"""
Project, message and frame models for Nuvix
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from models.generation import DeviceMode

class ProjectCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)

class ProjectRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)

class ProjectResponse(BaseModel):
    id: str
    user_id: str
    name: str
    created_at: Optional[datetime] = None

class MessageResponse(BaseModel):
    id: Optional[str] = None
    project_id: str
    role: str
    content: str
    image: Optional[str] = None
    type: str = "normal"
    created_at: Optional[datetime] = None

class Frame(BaseModel):
    """
    A named slot for one generated screen's markup.
    """
    id: str
    content: str = ""
    type: DeviceMode = DeviceMode.MOBILE
    created_at: datetime

    class Config:
        use_enum_values = True

class FrameSyncRequest(BaseModel):
    frames: List[Frame]
