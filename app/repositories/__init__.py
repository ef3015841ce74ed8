from app.core.config import Settings
from app.repositories.base import DataBackend, Repositories, ScanFilters


def create_data_backend(settings: Settings) -> DataBackend:
    """Build the metadata store selected by DATA_BACKEND."""
    if settings.DATA_BACKEND == "supabase":
        from app.db.rest import SupabaseRestClient
        from app.repositories.rest import RestDataBackend

        client = SupabaseRestClient(
            settings.SUPABASE_URL,
            settings.supabase_key,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        return RestDataBackend(client)

    from app.repositories.sql import SqlDataBackend

    return SqlDataBackend(settings.SQLALCHEMY_DATABASE_URI)
