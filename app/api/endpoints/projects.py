# app/api/endpoints/projects.py
from typing import List

from fastapi import APIRouter, Depends, Response, status

from app.api.deps import get_repositories
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.logging import logger
from app.middleware.auth import get_current_user
from app.repositories.base import Repositories
from app.schemas.project import Project, ProjectCreate, ProjectUpdate
from app.schemas.user import AuthUser

router = APIRouter()


def _clean_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValidationError("Project name must not be blank")
    return name


@router.get("", response_model=List[Project])
def list_projects(
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    """
    List all projects by name, each with the number of scans in it.
    """
    return repos.projects.list()


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
def create_project(
    project_in: ProjectCreate,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    values = project_in.model_dump()
    values["name"] = _clean_name(values["name"])
    if repos.projects.get_by_name(values["name"]):
        raise ConflictError("A project with this name already exists")

    project = repos.projects.create(values)
    logger.info(f"Created project {project.id} ({project.name})")
    return project


@router.get("/{project_id}", response_model=Project)
def get_project(
    project_id: int,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    project = repos.projects.get(project_id)
    if not project:
        raise NotFoundError("Project not found")
    return project


@router.put("/{project_id}", response_model=Project)
def update_project(
    project_id: int,
    project_in: ProjectUpdate,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    project = repos.projects.get(project_id)
    if not project:
        raise NotFoundError("Project not found")

    values = project_in.model_dump(exclude_unset=True)
    if values.get("name") is None:
        values.pop("name", None)
    if "name" in values:
        values["name"] = _clean_name(values["name"])
        if values["name"] != project.name and repos.projects.get_by_name(values["name"]):
            raise ConflictError("A project with this name already exists")

    return repos.projects.update(project_id, values)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: int,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    """
    Delete a project. Its scans stay, detached from any project.
    """
    if not repos.projects.get(project_id):
        raise NotFoundError("Project not found")

    repos.projects.delete(project_id)
    logger.info(f"Deleted project {project_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
