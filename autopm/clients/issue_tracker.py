#autopm/clients/issue_tracker.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from autopm.config import settings
from autopm.models.stages import JiraTicket

log = logging.getLogger(__name__)


class IssueTracker(Protocol):
    async def create_ticket(
        self, project_key: str, summary: str, description: str, assignee_id: Optional[str] = None
    ) -> JiraTicket: ...

    async def resolve_account_id(self, email: str) -> str: ...

    async def create_project(self, project_name: str, project_key: str) -> Dict[str, str]: ...

    async def invite_member(self, project_key: str, account_id: str) -> None: ...

    async def project_url(self, project_key: str) -> str: ...


def _adf(text: str) -> Dict[str, Any]:
    """Plain text wrapped as an Atlassian Document Format paragraph."""
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


class JiraClient:
    """Atlassian cloud REST v3 over OAuth bearer tokens."""

    def __init__(
        self,
        access_token: str,
        *,
        cloud_id: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.base_url = (base_url or settings.JIRA_API_URL).rstrip("/")
        self._cloud_id = cloud_id
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        return httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_S, headers=headers, transport=self._transport)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with self._client() as client:
            r = await client.request(method, f"{self.base_url}{path}", **kwargs)
            if r.is_error:
                raise httpx.HTTPStatusError(f"{r.status_code}: {r.text}", request=r.request, response=r)
            return r

    async def cloud_id(self) -> str:
        if self._cloud_id:
            return self._cloud_id
        r = await self._request("GET", "/oauth/token/accessible-resources")
        sites = r.json()
        if not sites:
            raise LookupError("No accessible Jira sites found")
        self._cloud_id = sites[0]["id"]
        return self._cloud_id

    async def _api(self) -> str:
        return f"/ex/jira/{await self.cloud_id()}/rest/api/3"

    async def project_url(self, project_key: str) -> str:
        return f"{self.base_url}{await self._api()}/project/{project_key}"

    async def resolve_account_id(self, email: str) -> str:
        r = await self._request("GET", f"{await self._api()}/user/search", params={"query": email})
        users = r.json()
        if not users:
            raise LookupError(f"no Jira account found for {email}")
        return users[0]["accountId"]

    async def create_project(self, project_name: str, project_key: str) -> Dict[str, str]:
        body = {
            "key": project_key,
            "name": project_name,
            "projectTypeKey": "software",
            "projectTemplateKey": "com.pyxis.greenhopper.jira:gh-simplified-agility-kanban",
            "description": f"Project created for: {project_name}",
        }
        r = await self._request("POST", f"{await self._api()}/project", json=body)
        data = r.json()
        log.info("jira.project_created", extra={"project_key": data.get("key")})
        return {"key": data["key"], "id": str(data["id"]), "url": data.get("self", "")}

    async def invite_member(self, project_key: str, account_id: str) -> None:
        await self._request("POST", f"{await self._api()}/project/{project_key}/role", json={"user": [account_id]})

    async def create_ticket(
        self, project_key: str, summary: str, description: str, assignee_id: Optional[str] = None
    ) -> JiraTicket:
        fields: Dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "description": _adf(description),
            "issuetype": {"name": "Task"},
        }
        if assignee_id:
            fields["assignee"] = {"accountId": assignee_id}
        r = await self._request("POST", f"{await self._api()}/issue", json={"fields": fields})
        data = r.json()
        return JiraTicket(
            id=str(data["id"]),
            key=data["key"],
            summary=summary,
            description=description,
            assignee=assignee_id,
            status="To Do",
        )
