# app/db/rest.py
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from app.core.errors import ConflictError, DataStoreError
from app.core.logging import logger

Params = Sequence[Tuple[str, str]]


def eq(value: Any) -> str:
    if value is None:
        return "is.null"
    return f"eq.{value}"


def in_list(values: Sequence[Any]) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


def ilike_contains(term: str) -> str:
    """
    Quoted ``*term*`` pattern usable inside an ``or=(...)`` group.
    LIKE wildcards in the term are escaped so they match literally.
    """
    like = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    quoted = like.replace("\\", "\\\\").replace('"', '\\"')
    return f'"*{quoted}*"'


class SupabaseRestClient:
    """
    Thin PostgREST client for a Supabase project.

    Every call goes through one ``requests.Session`` carrying the API key, and
    any transport failure or non-2xx answer is raised as DataStoreError
    (ConflictError for unique-constraint violations).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url or not api_key:
            raise DataStoreError("Supabase URL and key must be configured")
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Params] = None,
        body: Any = None,
        prefer: Optional[str] = None,
    ):
        url = f"{self.rest_url}/{table}"
        headers = {"Prefer": prefer} if prefer else None
        data = json.dumps(body, default=str) if body is not None else None
        try:
            response = self.session.request(
                method, url, params=list(params or []), data=data, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Supabase {method} {table} failed: {str(e)}")
            raise DataStoreError("Data store is unreachable") from e

        if response.status_code >= 400:
            logger.error(f"Supabase {method} {table} returned {response.status_code}: {response.text}")
            if response.status_code == 409:
                raise ConflictError()
            raise DataStoreError()
        return response

    def select(self, table: str, params: Params) -> List[Dict[str, Any]]:
        return self._request("GET", table, params=params).json()

    def select_one(self, table: str, params: Params) -> Optional[Dict[str, Any]]:
        rows = self.select(table, list(params) + [("limit", "1")])
        return rows[0] if rows else None

    def insert(self, table: str, rows: Any, select: str = "*") -> List[Dict[str, Any]]:
        response = self._request(
            "POST", table, params=[("select", select)], body=rows, prefer="return=representation"
        )
        return response.json()

    def update(self, table: str, filters: Params, values: Dict[str, Any], select: str = "*") -> List[Dict[str, Any]]:
        response = self._request(
            "PATCH", table, params=list(filters) + [("select", select)], body=values,
            prefer="return=representation",
        )
        return response.json()

    def delete(self, table: str, filters: Params) -> None:
        self._request("DELETE", table, params=filters, prefer="return=minimal")

    def count(self, table: str, filters: Params) -> int:
        response = self._request(
            "HEAD", table, params=[("select", "id")] + list(filters), prefer="count=exact"
        )
        # Content-Range looks like "0-24/3572" or "*/0"
        content_range = response.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0

    def close(self) -> None:
        self.session.close()
