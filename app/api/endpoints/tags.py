# app/api/endpoints/tags.py
from typing import List

from fastapi import APIRouter, Depends, Response, status

from app.api.deps import get_repositories
from app.core.errors import ConflictError, NotFoundError
from app.core.logging import logger
from app.middleware.auth import get_current_user
from app.repositories.base import Repositories
from app.schemas.tag import Tag, TagCreate, TagUpdate
from app.schemas.user import AuthUser

router = APIRouter()


@router.get("", response_model=List[Tag])
def list_tags(
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    """
    List all tags by name with how many scans use each one.
    """
    return repos.tags.list()


@router.post("", response_model=Tag, status_code=status.HTTP_201_CREATED)
def create_tag(
    tag_in: TagCreate,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    name = tag_in.name.strip()
    if repos.tags.get_by_name(name):
        raise ConflictError("A tag with this name already exists")

    tag = repos.tags.create({"name": name, "color": tag_in.color})
    logger.info(f"Created tag {tag.id} ({tag.name})")
    return tag


@router.get("/{tag_id}", response_model=Tag)
def get_tag(
    tag_id: int,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    tag = repos.tags.get(tag_id)
    if not tag:
        raise NotFoundError("Tag not found")
    return tag


@router.put("/{tag_id}", response_model=Tag)
def update_tag(
    tag_id: int,
    tag_in: TagUpdate,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    tag = repos.tags.get(tag_id)
    if not tag:
        raise NotFoundError("Tag not found")

    # Neither column is nullable, so an explicit null means "leave as is"
    values = {k: v for k, v in tag_in.model_dump(exclude_unset=True).items() if v is not None}
    if "name" in values:
        values["name"] = values["name"].strip()
        if values["name"] != tag.name and repos.tags.get_by_name(values["name"]):
            raise ConflictError("A tag with this name already exists")

    if not values:
        return tag
    return repos.tags.update(tag_id, values)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tag(
    tag_id: int,
    repos: Repositories = Depends(get_repositories),
    current_user: AuthUser = Depends(get_current_user),
):
    """
    Delete a tag and detach it from every scan.
    """
    if not repos.tags.get(tag_id):
        raise NotFoundError("Tag not found")

    repos.tags.delete(tag_id)
    logger.info(f"Deleted tag {tag_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
