"""
Project service for Nuvix database operations: projects, chat messages and
generated frames.
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
import logging
from supabase import Client

from config.decorators import retry_on_ssl_error
from models.generation import HistoryMessage
from models.project import Frame

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "My First App"


class FrameConflictError(ValueError):
    """A frame id is already used by a different project."""


class ProjectService:
    def __init__(self, supabase_client: Client):
        self.supabase = supabase_client

    # ---- projects ----

    async def list_projects(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Get the user's projects, newest first
        """
        try:
            response = self.supabase.table("projects").select("*").eq("user_id", user_id).order("created_at", desc=True).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing projects for user {user_id}: {str(e)}")
            return []

    async def get_project(self, project_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a project by ID (with user ownership check)
        """
        try:
            response = self.supabase.table("projects").select("*").eq("id", project_id).eq("user_id", user_id).single().execute()
            return response.data
        except Exception as e:
            logger.error(f"Error getting project {project_id}: {str(e)}")
            return None

    async def create_project(self, user_id: str, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        try:
            if not name:
                existing = await self.list_projects(user_id)
                name = f"App {len(existing) + 1}" if existing else DEFAULT_PROJECT_NAME

            response = self.supabase.table("projects").insert({
                "user_id": user_id,
                "name": name,
                "created_at": datetime.now().isoformat(),
            }).execute()

            if response.data:
                logger.info(f"Created project '{name}' for user {user_id}")
                return response.data[0]
            return None
        except Exception as e:
            logger.error(f"Error creating project for user {user_id}: {str(e)}", exc_info=True)
            return None

    async def rename_project(self, project_id: str, user_id: str, name: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.supabase.table("projects").update({"name": name}).eq("id", project_id).eq("user_id", user_id).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error renaming project {project_id}: {str(e)}")
            return None

    async def delete_project(self, project_id: str, user_id: str) -> bool:
        """
        Delete a project with its frames and messages
        """
        try:
            project = await self.get_project(project_id, user_id)
            if not project:
                return False
            self.supabase.table("frames").delete().eq("project_id", project_id).execute()
            self.supabase.table("messages").delete().eq("project_id", project_id).execute()
            self.supabase.table("projects").delete().eq("id", project_id).eq("user_id", user_id).execute()
            logger.info(f"Deleted project {project_id} for user {user_id}")
            return True
        except Exception as e:
            logger.error(f"Error deleting project {project_id}: {str(e)}")
            return False

    # ---- messages ----

    async def list_messages(self, project_id: str) -> List[Dict[str, Any]]:
        try:
            response = self.supabase.table("messages").select("*").eq("project_id", project_id).order("created_at").execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing messages for project {project_id}: {str(e)}")
            return []

    async def get_conversation_history(self, project_id: str) -> List[HistoryMessage]:
        """
        Chat transcript sent back to the model; system/status entries are excluded
        """
        messages = await self.list_messages(project_id)
        return [
            HistoryMessage(role=m["role"], content=m["content"], image=m.get("image"))
            for m in messages
            if m.get("role") != "system"
        ]

    @retry_on_ssl_error
    def add_message(self, project_id: str, role: str, content: str, image: Optional[str] = None, message_type: str = "normal") -> Dict[str, Any]:
        """
        Insert a chat message. Errors propagate so the caller can surface them.
        """
        response = self.supabase.table("messages").insert({
            "project_id": project_id,
            "role": role,
            "content": content,
            "image": image,
            "type": message_type,
            "created_at": datetime.now().isoformat(),
        }).execute()
        return response.data[0] if response.data else {}

    # ---- frames ----

    async def list_frames(self, project_id: str) -> List[Dict[str, Any]]:
        try:
            response = self.supabase.table("frames").select("*").eq("project_id", project_id).order("created_at").execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing frames for project {project_id}: {str(e)}")
            return []

    async def get_frame(self, project_id: str, frame_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.supabase.table("frames").select("*").eq("id", frame_id).eq("project_id", project_id).single().execute()
            return response.data
        except Exception as e:
            logger.error(f"Error getting frame {frame_id}: {str(e)}")
            return None

    @retry_on_ssl_error
    def upsert_frame(self, project_id: str, frame: Frame) -> None:
        """
        Insert or replace one frame of this project by id. The SQL function
        refuses an id that belongs to another project. Errors propagate so the
        caller can keep saving the remaining frames.
        """
        self.supabase.rpc("upsert_project_frame", {
            "project_id_arg": project_id,
            "frame_arg": self._frame_row(project_id, frame),
        }).execute()

    @retry_on_ssl_error
    def sync_frames(self, project_id: str, frames: List[Frame]) -> None:
        """
        Make the project's stored frames exactly `frames`: upsert them and
        delete every other frame of the project, in one transaction.
        Raises FrameConflictError when an id belongs to another project.
        """
        foreign = self._foreign_frame_ids(project_id, [frame.id for frame in frames])
        if foreign:
            raise FrameConflictError(f"Frame ids belong to another project: {', '.join(foreign)}")

        self.supabase.rpc("sync_project_frames", {
            "project_id_arg": project_id,
            "frames_arg": [self._frame_row(project_id, frame) for frame in frames],
        }).execute()
        logger.info(f"Synced {len(frames)} frames for project {project_id}")

    def _foreign_frame_ids(self, project_id: str, frame_ids: List[str]) -> List[str]:
        if not frame_ids:
            return []
        response = self.supabase.table("frames").select("id, project_id").in_("id", frame_ids).execute()
        return [row["id"] for row in (response.data or []) if row["project_id"] != project_id]

    @staticmethod
    def _frame_row(project_id: str, frame: Frame) -> Dict[str, Any]:
        return {
            "id": frame.id,
            "project_id": project_id,
            "content": frame.content,
            "type": frame.type,
            "created_at": frame.created_at.isoformat(),
        }
