"""MyCase case-management API client."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import httpx

from app.core.config import MyCaseSettings
from app.core.errors import IntegrationAPIError, UnauthorizedError
from app.models.oauth import Integration, OFFICE_SUBJECT
from app.schemas.mycase import CaseSummary

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.services.token_refresher import TokenRefresher

logger = logging.getLogger(__name__)

_CLIENT_FIELDS = "id,first_name,last_name"


def _updated_sort_key(summary: CaseSummary) -> datetime:
    if not summary.updated_at:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(summary.updated_at.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _full_name(person: Optional[Dict[str, Any]]) -> str:
    if not person:
        return ""
    return f"{person.get('first_name') or ''} {person.get('last_name') or ''}".strip()


class MyCaseClient:
    """Read clients and cases from the office's shared MyCase account."""

    def __init__(
        self,
        token_refresher: "TokenRefresher",
        settings: MyCaseSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = token_refresher
        self._base_url = settings.api_base_url.rstrip("/")
        self._page_size = settings.page_size
        self._timeout = timeout
        self._transport = transport

    async def list_cases(self) -> List[Dict[str, Any]]:
        """Every case visible to the office account, deduplicated by id."""
        record = await self._tokens.get_fresh_token(OFFICE_SUBJECT)
        async with self._http(record.access_token) as client:
            return await self._get_all_pages(
                client,
                "/cases",
                {"page_size": str(self._page_size), "field[client]": _CLIENT_FIELDS},
            )

    async def list_clients(self) -> List[CaseSummary]:
        """One summary per case, labelled with its primary client, newest first."""
        summaries = []
        for case in await self.list_cases():
            clients = case.get("clients") or []
            client_name = _full_name(clients[0]) if clients else ""
            summaries.append(
                CaseSummary.from_case(case, client_name=client_name or "Unknown Client")
            )
        summaries.sort(key=_updated_sort_key, reverse=True)
        return summaries

    async def search_clients(self, query: str) -> List[CaseSummary]:
        """Find clients by first or last name and list each client's cases."""
        parts = query.split()
        if not parts:
            return []
        first_name = parts[0]
        last_name = parts[-1] if len(parts) > 1 else ""

        record = await self._tokens.get_fresh_token(OFFICE_SUBJECT)
        async with self._http(record.access_token) as client:
            filters = [("filter[first_name]", first_name)]
            if last_name:
                filters.append(("filter[last_name]", last_name))

            matched: Dict[Any, Dict[str, Any]] = {}
            for field, value in filters:
                found = await self._get_all_pages(
                    client, "/clients", {field: value, "page_size": "50"}
                )
                for person in found:
                    matched.setdefault(person.get("id"), person)
            logger.debug("MyCase search %r matched %d clients", query, len(matched))

            results: List[CaseSummary] = []
            for person in matched.values():
                cases = await self._get_all_pages(
                    client,
                    f"/clients/{person['id']}/cases",
                    {"page_size": str(self._page_size), "field[client]": _CLIENT_FIELDS},
                )
                client_name = _full_name(person)
                results.extend(
                    CaseSummary.from_case(case, client_name=client_name) for case in cases
                )

        results.sort(key=_updated_sort_key, reverse=True)
        return results

    def _http(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _get_all_pages(
        self, client: httpx.AsyncClient, path: str, params: Dict[str, str]
    ) -> List[Dict[str, Any]]:
        """
        Follow ``Link: <...page_token=...>; rel="next"`` until it disappears.

        Pages are concatenated in order and entities that reappear on a later
        page are dropped, keyed by their ``id``.
        """
        items: List[Dict[str, Any]] = []
        seen_ids: set = set()
        seen_tokens: set = set()
        page_token: Optional[str] = None
        page = 0

        while True:
            page += 1
            page_params = dict(params)
            if page_token:
                page_params["page_token"] = page_token
            response = await self._get(client, path, page_params)

            try:
                payload = response.json()
            except ValueError as exc:
                raise IntegrationAPIError(
                    f"MyCase returned a non-JSON body for {path}.",
                    integration=Integration.MYCASE.value,
                    upstream_status=response.status_code,
                ) from exc
            if not isinstance(payload, list) or not all(
                isinstance(item, dict) for item in payload
            ):
                raise IntegrationAPIError(
                    f"Unexpected MyCase response shape for {path}.",
                    integration=Integration.MYCASE.value,
                )
            for item in payload:
                item_id = item.get("id")
                if item_id in seen_ids:
                    continue
                seen_ids.add(item_id)
                items.append(item)

            page_token = self._next_page_token(response)
            logger.debug(
                "MyCase %s page %d: %d items, %d total, next=%s",
                path,
                page,
                len(payload),
                len(items),
                "yes" if page_token else "no",
            )
            if not page_token:
                return items
            if page_token in seen_tokens:
                logger.warning("MyCase %s repeated page token; stopping", path)
                return items
            seen_tokens.add(page_token)

    async def _get(
        self, client: httpx.AsyncClient, path: str, params: Dict[str, str]
    ) -> httpx.Response:
        try:
            response = await client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise IntegrationAPIError(
                f"MyCase request failed: {exc}",
                integration=Integration.MYCASE.value,
            ) from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise UnauthorizedError(
                "MyCase rejected the stored authorization; please reconnect.",
                integration=Integration.MYCASE.value,
            )
        if response.is_error:
            raise IntegrationAPIError(
                f"MyCase API error: {response.status_code} - {response.text}",
                integration=Integration.MYCASE.value,
                upstream_status=response.status_code,
            )
        return response

    @staticmethod
    def _next_page_token(response: httpx.Response) -> Optional[str]:
        next_link = response.links.get("next", {}).get("url")
        if not next_link:
            return None
        return httpx.URL(next_link).params.get("page_token") or None


__all__ = ["MyCaseClient"]
