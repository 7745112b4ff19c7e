"""Assessment tool registry and cross-tool catalogue search."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.constants import SUPPORTED_QUESTION_TYPES
from edbilling.db.encryption import decrypt_credential, encrypt_credential
from edbilling.errors import AssessmentToolError
from edbilling.http_client import get_http_client
from edbilling.models.assessment_tool import AssessmentTool
from edbilling.schemas.assessment import AssessmentSearchQuery, ToolRegistration

logger = logging.getLogger(__name__)


class AssessmentToolClient(Protocol):
    """Catalogue access for one registered tool."""

    async def search_assessments(self, query: AssessmentSearchQuery) -> dict[str, Any]:
        """Return ``{"items": [...], "total": int}`` for this tool."""
        ...


class HttpAssessmentToolClient:
    """Queries a tool's REST catalogue at ``{base_url}/assessments``."""

    def __init__(self, tool: AssessmentTool, http: httpx.AsyncClient):
        self.tool = tool
        self._http = http

    def _headers(self) -> dict[str, str]:
        if self.tool.api_key:
            return {"Authorization": f"Bearer {decrypt_credential(self.tool.api_key)}"}
        return {}

    async def search_assessments(self, query: AssessmentSearchQuery) -> dict[str, Any]:
        params: dict[str, Any] = {"q": query.query}
        if query.type:
            params["type"] = query.type

        resp = await self._http.get(
            f"{self.tool.base_url.rstrip('/')}/assessments",
            params=params,
            headers=self._headers(),
        )
        resp.raise_for_status()
        data = resp.json()

        items = [{**item, "tool_id": self.tool.id} for item in data.get("items", [])]
        return {"items": items, "total": int(data.get("total", len(items)))}


ClientFactory = Callable[[AssessmentTool], AssessmentToolClient]


def http_client_factory(tool: AssessmentTool) -> AssessmentToolClient:
    return HttpAssessmentToolClient(tool, get_http_client())


class AssessmentToolService:
    def __init__(self, db: AsyncSession, client_factory: ClientFactory = http_client_factory):
        self.db = db
        self._client_factory = client_factory

    async def register_tool(self, tenant_id: str, data: ToolRegistration) -> AssessmentTool:
        """Store a new tool in ``pending`` status with its credentials encrypted."""
        unsupported = set(data.supported_question_types) - set(SUPPORTED_QUESTION_TYPES)
        if unsupported:
            raise ValueError(f"Unsupported question types: {', '.join(sorted(unsupported))}")

        tool = AssessmentTool(
            tenant_id=tenant_id,
            name=data.name,
            description=data.description,
            type=data.type,
            base_url=str(data.base_url),
            api_key=encrypt_credential(data.api_key),
            api_secret=encrypt_credential(data.api_secret),
            oauth_client_id=data.oauth_client_id,
            oauth_client_secret=encrypt_credential(data.oauth_client_secret),
            oauth_token_url=data.oauth_token_url,
            status="pending",
            supported_question_types=data.supported_question_types,
            settings=data.settings,
        )
        self.db.add(tool)
        await self.db.commit()
        await self.db.refresh(tool)
        logger.info(f"Registered assessment tool {tool.id} ({tool.name}) for tenant {tenant_id}")
        return tool

    async def get_tool(self, tenant_id: str, tool_id: int) -> AssessmentTool:
        result = await self.db.execute(
            select(AssessmentTool).where(
                AssessmentTool.id == tool_id, AssessmentTool.tenant_id == tenant_id
            )
        )
        tool = result.scalar_one_or_none()
        if not tool:
            raise AssessmentToolError(f"Assessment tool {tool_id} not found")
        return tool

    async def set_tool_status(self, tenant_id: str, tool_id: int, status: str) -> AssessmentTool:
        tool = await self.get_tool(tenant_id, tool_id)
        tool.status = status
        await self.db.commit()
        return tool

    async def get_active_tools(self, tenant_id: str) -> list[AssessmentTool]:
        result = await self.db.execute(
            select(AssessmentTool)
            .where(AssessmentTool.tenant_id == tenant_id, AssessmentTool.status == "active")
            .order_by(AssessmentTool.id)
        )
        return list(result.scalars().all())

    async def search_assessments(self, tenant_id: str, query: AssessmentSearchQuery) -> dict[str, Any]:
        """Search every active tool concurrently and paginate the combined results.

        A failing tool is logged and skipped; the others still contribute.
        Pagination is applied after aggregation, not pushed down to the tools.
        """
        tools = await self.get_active_tools(tenant_id)
        if query.tools:
            tools = [t for t in tools if t.id in query.tools]

        results = await asyncio.gather(
            *(self._client_factory(tool).search_assessments(query) for tool in tools),
            return_exceptions=True,
        )

        items: list[dict[str, Any]] = []
        total = 0
        for tool, result in zip(tools, results):
            if isinstance(result, Exception):
                logger.error(f"Error searching tool {tool.name}: {result!r}")
                continue
            if isinstance(result, BaseException):
                raise result
            items.extend(result["items"])
            total += result["total"]

        return {
            "items": items[query.offset:query.offset + query.limit],
            "total": total,
            "limit": query.limit,
            "offset": query.offset,
        }
