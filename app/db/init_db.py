# app/db/init_db.py
from app.core.config import Settings
from app.core.logging import logger
from app.core.security import get_password_hash
from app.repositories.base import DataBackend, Repositories

DEFAULT_TAGS = [
    ("prototype", "#f59e0b"),
    ("archived", "#6b7280"),
    ("reviewed", "#10b981"),
]
DEFAULT_PROJECT = ("General", "Scans that do not belong to a specific project")


def create_first_user(repos: Repositories, settings: Settings) -> None:
    """Create the FIRST_USER_* account unless it already exists."""
    if not settings.FIRST_USER_EMAIL or not settings.FIRST_USER_PASSWORD:
        return

    if repos.users.get_by_email(settings.FIRST_USER_EMAIL):
        logger.info("First user already exists, skipping")
        return

    user = repos.users.create(
        email=settings.FIRST_USER_EMAIL,
        password_hash=get_password_hash(settings.FIRST_USER_PASSWORD),
        name=settings.FIRST_USER_NAME,
    )
    logger.info(f"Created first user: {user.email}")


def seed_catalog(repos: Repositories) -> None:
    """Add the default project and tags that are missing."""
    name, description = DEFAULT_PROJECT
    if repos.projects.get_by_name(name) is None:
        repos.projects.create({"name": name, "description": description})
        logger.info(f"Created default project: {name}")

    for tag_name, color in DEFAULT_TAGS:
        if repos.tags.get_by_name(tag_name) is None:
            repos.tags.create({"name": tag_name, "color": color})
            logger.info(f"Created default tag: {tag_name}")


def init_db(backend: DataBackend, settings: Settings) -> None:
    """Prepare the store and create the optional first account."""
    backend.init()
    with backend.session() as repos:
        create_first_user(repos, settings)
