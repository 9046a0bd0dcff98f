"""
Project routes for Nuvix: projects, chat transcript and frames
"""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging
from supabase import Client

from auth.dependencies import get_current_user, get_supabase_client
from models.project import ProjectCreate, ProjectRename, ProjectResponse, MessageResponse, FrameSyncRequest
from services.project_service import ProjectService, FrameConflictError

router = APIRouter(prefix="/api/projects", tags=["Projects"])
logger = logging.getLogger(__name__)

async def _owned_project(project_id: str, user_id: str, project_service: ProjectService) -> dict:
    project = await project_service.get_project(project_id, user_id)
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project

@router.get("", response_model=List[ProjectResponse])
async def list_projects(current_user: dict = Depends(get_current_user), supabase: Client = Depends(get_supabase_client)):
    return await ProjectService(supabase).list_projects(current_user["id"])

@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: ProjectCreate,
    current_user: dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client)
):
    project = await ProjectService(supabase).create_project(current_user["id"], request.name)
    if not project:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create project")
    return project

@router.patch("/{project_id}", response_model=ProjectResponse)
async def rename_project(
    project_id: str,
    request: ProjectRename,
    current_user: dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client)
):
    project_service = ProjectService(supabase)
    await _owned_project(project_id, current_user["id"], project_service)
    project = await project_service.rename_project(project_id, current_user["id"], request.name)
    if not project:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to rename project")
    return project

@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client)
):
    project_service = ProjectService(supabase)
    await _owned_project(project_id, current_user["id"], project_service)
    if not await project_service.delete_project(project_id, current_user["id"]):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete project")

@router.get("/{project_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client)
):
    project_service = ProjectService(supabase)
    await _owned_project(project_id, current_user["id"], project_service)
    return await project_service.list_messages(project_id)

@router.get("/{project_id}/frames")
async def list_frames(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client)
):
    project_service = ProjectService(supabase)
    await _owned_project(project_id, current_user["id"], project_service)
    return {"frames": await project_service.list_frames(project_id)}

@router.put("/{project_id}/frames")
async def sync_frames(
    project_id: str,
    request: FrameSyncRequest,
    current_user: dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client)
):
    """
    Replace the project's frames with the given set (undo/redo restores a
    whole snapshot). Frames missing from the set are deleted.
    """
    project_service = ProjectService(supabase)
    await _owned_project(project_id, current_user["id"], project_service)
    try:
        project_service.sync_frames(project_id, request.frames)
    except FrameConflictError as e:
        logger.warning(f"Rejected frame sync for project {project_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Frame belongs to another project")
    except Exception as e:
        logger.error(f"Error syncing frames for project {project_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save frames")
    return {"frames": [frame.id for frame in request.frames]}
