"""Thin client for the Supabase PostgREST endpoint used by the seeder.

Talks to ``/rest/v1/<table>`` with the service-role key so upserts bypass
row-level security and stay idempotent on the table's conflict key.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

DEFAULT_TIMEOUT = 30

_retry_reads = retry(
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    stop=stop_after_attempt(3),
    reraise=True,
)


class SupabaseError(RuntimeError):
    """Raised when the Supabase REST API returns a non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SupabaseClient:
    """Thin wrapper around the Supabase PostgREST endpoint."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
                "Content-Type": "application/json",
            }
        )

    def close(self) -> None:
        self.session.close()

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    # ---- REST helpers -------------------------------------------------
    def _handle(self, response: requests.Response) -> List[dict]:
        if 200 <= response.status_code < 300:
            if response.content:
                try:
                    return response.json()
                except ValueError as exc:
                    raise SupabaseError(
                        f"Failed to decode JSON response from {response.url}",
                        status_code=response.status_code,
                    ) from exc
            return []
        raise SupabaseError(
            f"{response.request.method} {response.url} failed with "
            f"status {response.status_code}: {response.text}",
            status_code=response.status_code,
        )

    def upsert(
        self,
        table: str,
        rows: Sequence[dict],
        on_conflict: str,
        ignore_duplicates: bool = False,
        returning: str = "minimal",
    ) -> List[dict]:
        if not rows:
            return []
        resolution = "ignore-duplicates" if ignore_duplicates else "merge-duplicates"
        response = self.session.post(
            self._url(table),
            json=list(rows),
            params={"on_conflict": on_conflict},
            headers={"Prefer": f"resolution={resolution},return={returning}"},
            timeout=self.timeout,
        )
        return self._handle(response)

    @_retry_reads
    def select(
        self,
        table: str,
        select: str,
        filters: Optional[Dict[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        params = {"select": select, **(filters or {})}
        if limit is not None:
            params["limit"] = str(limit)
        response = self.session.get(self._url(table), params=params, timeout=self.timeout)
        return self._handle(response)

    @_retry_reads
    def count(self, table: str) -> int:
        """Exact row count, read from the ``Content-Range`` header."""
        response = self.session.head(
            self._url(table),
            params={"select": "*"},
            headers={"Prefer": "count=exact"},
            timeout=self.timeout,
        )
        self._handle(response)
        return parse_content_range_total(response.headers.get("Content-Range"))

    def table_exists(self, table: str, column: str = "type_code") -> bool:
        try:
            self.select(table, select=column, limit=1)
        except SupabaseError:
            return False
        return True


def parse_content_range_total(header: Optional[str]) -> int:
    """Extract the total from ``0-24/573`` or ``*/573``."""
    if not header or "/" not in header:
        raise SupabaseError(f"Missing row count in Content-Range header: {header!r}")
    total = header.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        raise SupabaseError(f"Unknown row count in Content-Range header: {header!r}")
    return int(total)
