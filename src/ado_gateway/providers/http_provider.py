"""Direct REST transport covering the full capability set."""

import base64
import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ado_gateway.config import AzureDevOpsConfig
from ado_gateway.exceptions import ProviderInitializationException, TransportException
from ado_gateway.schemas import (
    AddWorkItemRelationPayload,
    CreateWorkItemPayload,
    JsonPatchOperation,
    UpdateWorkItemPayload,
    WiqlQuery,
    build_create_document,
    build_relation_operation,
    build_update_document,
)
from .base import BaseProvider, JsonDict, ProviderType

JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"
DEFAULT_HTTP_TIMEOUT = 30.0


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


def _list_result(data: Optional[JsonDict]) -> JsonDict:
    items = (data or {}).get("value") or []
    return {"value": items, "count": len(items)}


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500] or None


class HttpProvider(BaseProvider):
    """
    Azure DevOps REST client built on ``httpx.AsyncClient``.

    Two clients are kept: one rooted at ``{org}/{project}/_apis`` for project
    resources and one rooted at ``{org}/_apis`` for git and team resources.
    Team-scoped iteration endpoints are addressed with absolute URLs.
    """

    provider_type = ProviderType.SECONDARY

    def __init__(
        self,
        config: AzureDevOpsConfig,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config)
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._org_client: Optional[httpx.AsyncClient] = None

    @property
    def project_api_url(self) -> str:
        return f"{self.config.organization_url}/{_segment(self.config.project)}/_apis"

    @property
    def org_api_url(self) -> str:
        return f"{self.config.organization_url}/_apis"

    def _team_url(self, team: Optional[str], suffix: str = "") -> str:
        team_name = team or self.config.default_team
        return (
            f"{self.config.organization_url}/{_segment(self.config.project)}/{_segment(team_name)}"
            f"/_apis/work/teamsettings/iterations{suffix}"
        )

    async def initialize(self) -> None:
        try:
            token = base64.b64encode(f":{self.config.pat.get_secret_value()}".encode()).decode()
            headers = {
                "Authorization": f"Basic {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            params = {"api-version": self.config.api_version}

            self._client = httpx.AsyncClient(
                base_url=self.project_api_url,
                headers=headers,
                params=params,
                timeout=self.timeout,
                transport=self._transport,
            )
            self._org_client = httpx.AsyncClient(
                base_url=self.org_api_url,
                headers=headers,
                params=params,
                timeout=self.timeout,
                transport=self._transport,
            )
        except Exception as e:
            self._update_health(False, str(e))
            raise ProviderInitializationException("http", str(e)) from e

        self._initialized = True
        self._update_health(True)
        self.log_info("HTTP provider initialized", organization=self.config.organization, project=self.config.project)

    async def close(self) -> None:
        for client in (self._client, self._org_client):
            if client is not None:
                await client.aclose()
        self._client = None
        self._org_client = None
        await super().close()

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        org: bool = False,
        json_body: Any = None,
        patch_document: Optional[List[JsonPatchOperation]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        self._ensure_initialized()
        client = self._org_client if org else self._client

        request_headers = dict(headers or {})
        content = None
        if patch_document is not None:
            content = json.dumps([op.to_wire() for op in patch_document])
            request_headers["Content-Type"] = JSON_PATCH_CONTENT_TYPE

        try:
            response = await client.request(
                method,
                url,
                json=json_body if content is None else None,
                content=content,
                params=params,
                headers=request_headers or None,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise TransportException(
                f"{operation} failed with HTTP {status_code}: {e.response.reason_phrase}",
                status_code=status_code,
                transport=self.provider_type.value,
                response_body=_response_body(e.response),
            ) from e
        except httpx.TimeoutException as e:
            raise TransportException(
                f"{operation} timed out after {self.timeout}s",
                status_code=504,
                transport=self.provider_type.value,
            ) from e
        except httpx.TransportError as e:
            raise TransportException(
                f"{operation} transport error: {e}",
                transport=self.provider_type.value,
            ) from e

        if not response.content:
            return None
        return response.json()

    # --- Work items ---

    async def create_work_item(self, payload: CreateWorkItemPayload, use_markdown: bool = True) -> JsonDict:
        document = build_create_document(payload, use_markdown)
        return await self._request(
            "createWorkItem", "POST", f"/wit/workitems/${_segment(payload.type)}", patch_document=document
        )

    async def get_work_item(self, work_item_id: int, fields: Optional[List[str]] = None) -> JsonDict:
        params = {"fields": ",".join(fields)} if fields else None
        return await self._request("getWorkItem", "GET", f"/wit/workitems/{work_item_id}", params=params)

    async def update_work_item(
        self, work_item_id: int, payload: UpdateWorkItemPayload, use_markdown: bool = True
    ) -> JsonDict:
        document = build_update_document(payload, use_markdown)
        return await self._request(
            "updateWorkItem", "PATCH", f"/wit/workitems/{work_item_id}", patch_document=document
        )

    async def delete_work_item(self, work_item_id: int) -> None:
        await self._request("deleteWorkItem", "DELETE", f"/wit/workitems/{work_item_id}")

    async def get_work_items(self, ids: List[int], fields: Optional[List[str]] = None) -> List[JsonDict]:
        params = {"ids": ",".join(str(i) for i in ids)}
        if fields:
            params["fields"] = ",".join(fields)
        data = await self._request("getWorkItems", "GET", "/wit/workitems", params=params)
        return (data or {}).get("value") or []

    async def add_work_item_relation(self, payload: AddWorkItemRelationPayload) -> JsonDict:
        operation = build_relation_operation(payload, self.project_api_url)
        return await self._request(
            "addWorkItemRelation", "PATCH", f"/wit/workitems/{payload.work_item_id}", patch_document=[operation]
        )

    # --- WIQL ---

    async def execute_wiql(self, query: WiqlQuery) -> JsonDict:
        params: Dict[str, Any] = {}
        if query.top:
            params["$top"] = query.top
        if query.time_precision is not None:
            params["timePrecision"] = str(query.time_precision).lower()
        return await self._request(
            "executeWiql", "POST", "/wit/wiql", json_body={"query": query.query}, params=params or None
        )

    # --- Boards ---

    async def list_boards(self) -> JsonDict:
        return _list_result(await self._request("listBoards", "GET", "/work/boards"))

    async def get_board(self, board_id: str) -> JsonDict:
        return await self._request("getBoard", "GET", f"/work/boards/{_segment(board_id)}")

    async def update_board_settings(self, board_id: str, settings: JsonDict) -> JsonDict:
        document = []
        if settings.get("cardReordering") is not None:
            document.append(JsonPatchOperation(
                op="replace", path="/cardSettings/cardReordering", value=settings["cardReordering"]
            ))
        if settings.get("backlogVisibilities"):
            document.append(JsonPatchOperation(
                op="replace", path="/backlogVisibilities", value=settings["backlogVisibilities"]
            ))
        return await self._request(
            "updateBoardSettings", "PUT", f"/work/boards/{_segment(board_id)}", patch_document=document
        )

    # --- Iterations ---

    async def list_iterations(self, team: Optional[str] = None) -> List[JsonDict]:
        data = await self._request("listIterations", "GET", self._team_url(team))
        return (data or {}).get("value") or []

    async def get_iteration(self, iteration_id: str, team: Optional[str] = None) -> JsonDict:
        return await self._request("getIteration", "GET", self._team_url(team, f"/{_segment(iteration_id)}"))

    async def create_iteration(self, data: JsonDict, team: Optional[str] = None) -> JsonDict:
        return await self._request("createIteration", "POST", self._team_url(team), json_body=data)

    async def delete_iteration(self, iteration_id: str, team: Optional[str] = None) -> None:
        await self._request("deleteIteration", "DELETE", self._team_url(team, f"/{_segment(iteration_id)}"))

    async def get_iteration_capacity(self, iteration_id: str, team: Optional[str] = None) -> List[JsonDict]:
        data = await self._request(
            "getIterationCapacity", "GET", self._team_url(team, f"/{_segment(iteration_id)}/capacities")
        )
        return (data or {}).get("value") or []

    async def get_iteration_work_items(self, iteration_id: str, team: Optional[str] = None) -> JsonDict:
        return await self._request(
            "getIterationWorkItems", "GET", self._team_url(team, f"/{_segment(iteration_id)}/workitems")
        )

    # --- Pull requests ---

    def _pull_requests_path(self, repository_id: str, pull_request_id: Optional[int] = None) -> str:
        path = f"/git/repositories/{_segment(repository_id)}/pullrequests"
        if pull_request_id is not None:
            path += f"/{pull_request_id}"
        return path

    async def list_pull_requests(self, repository_id: str, status: Optional[str] = None) -> JsonDict:
        params = {"searchCriteria.status": status} if status else None
        data = await self._request(
            "listPullRequests", "GET", self._pull_requests_path(repository_id), org=True, params=params
        )
        return _list_result(data)

    async def get_pull_request(self, repository_id: str, pull_request_id: int) -> JsonDict:
        return await self._request(
            "getPullRequest", "GET", self._pull_requests_path(repository_id, pull_request_id), org=True
        )

    async def create_pull_request(self, repository_id: str, data: JsonDict) -> JsonDict:
        return await self._request(
            "createPullRequest", "POST", self._pull_requests_path(repository_id), org=True, json_body=data
        )

    async def update_pull_request(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        return await self._request(
            "updatePullRequest", "PATCH", self._pull_requests_path(repository_id, pull_request_id),
            org=True, json_body=data,
        )

    async def merge_pull_request(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        body = {**data, "status": "completed"}
        return await self._request(
            "mergePullRequest", "PATCH", self._pull_requests_path(repository_id, pull_request_id),
            org=True, json_body=body,
        )

    async def add_pull_request_comment(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        comment = {"content": data["content"]}
        if data.get("parentCommentId") is not None:
            comment["parentCommentId"] = data["parentCommentId"]
        thread: JsonDict = {"comments": [comment]}
        if data.get("status"):
            thread["status"] = data["status"]
        return await self._request(
            "addPullRequestComment", "POST",
            f"{self._pull_requests_path(repository_id, pull_request_id)}/threads",
            org=True, json_body=thread,
        )

    async def add_pull_request_reviewer(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        return await self._request(
            "addPullRequestReviewer", "PUT",
            f"{self._pull_requests_path(repository_id, pull_request_id)}/reviewers/{_segment(data['id'])}",
            org=True, json_body={"isRequired": bool(data.get("isRequired", False))},
        )

    async def vote_pull_request(
        self, repository_id: str, pull_request_id: int, reviewer_id: str, data: JsonDict
    ) -> JsonDict:
        return await self._request(
            "votePullRequest", "PATCH",
            f"{self._pull_requests_path(repository_id, pull_request_id)}/reviewers/{_segment(reviewer_id)}",
            org=True, json_body=data,
        )

    # --- Repositories ---

    async def list_repositories(self) -> JsonDict:
        return _list_result(await self._request("listRepositories", "GET", "/git/repositories", org=True))

    async def get_repository(self, repository_id: str) -> JsonDict:
        return await self._request(
            "getRepository", "GET", f"/git/repositories/{_segment(repository_id)}", org=True
        )

    # --- Teams ---

    def _teams_path(self, team_id: Optional[str] = None) -> str:
        path = f"/projects/{_segment(self.config.project)}/teams"
        if team_id is not None:
            path += f"/{_segment(team_id)}"
        return path

    async def list_teams(self) -> JsonDict:
        return _list_result(await self._request("listTeams", "GET", self._teams_path(), org=True))

    async def get_team(self, team_id: str) -> JsonDict:
        return await self._request("getTeam", "GET", self._teams_path(team_id), org=True)

    async def create_team(self, data: JsonDict) -> JsonDict:
        return await self._request("createTeam", "POST", self._teams_path(), org=True, json_body=data)

    async def update_team(self, team_id: str, data: JsonDict) -> JsonDict:
        return await self._request("updateTeam", "PATCH", self._teams_path(team_id), org=True, json_body=data)

    async def delete_team(self, team_id: str) -> None:
        await self._request("deleteTeam", "DELETE", self._teams_path(team_id), org=True)

    async def list_team_members(self, team_id: str) -> JsonDict:
        data = await self._request("listTeamMembers", "GET", f"{self._teams_path(team_id)}/members", org=True)
        return _list_result(data)

    async def add_team_member(self, team_id: str, data: JsonDict) -> JsonDict:
        return await self._request(
            "addTeamMember", "PUT", f"{self._teams_path(team_id)}/members/{_segment(data['userId'])}",
            org=True, json_body={},
        )

    async def remove_team_member(self, team_id: str, user_id: str) -> None:
        await self._request(
            "removeTeamMember", "DELETE", f"{self._teams_path(team_id)}/members/{_segment(user_id)}", org=True
        )

    # --- Wiki ---

    async def list_wikis(self) -> JsonDict:
        return _list_result(await self._request("listWikis", "GET", "/wiki/wikis"))

    async def get_wiki(self, wiki_identifier: str) -> JsonDict:
        return await self._request("getWiki", "GET", f"/wiki/wikis/{_segment(wiki_identifier)}")

    async def create_wiki(self, data: JsonDict) -> JsonDict:
        return await self._request("createWiki", "POST", "/wiki/wikis", json_body=data)

    async def delete_wiki(self, wiki_identifier: str) -> None:
        await self._request("deleteWiki", "DELETE", f"/wiki/wikis/{_segment(wiki_identifier)}")

    async def list_wiki_pages(self, wiki_identifier: str, path: Optional[str] = None) -> JsonDict:
        params = {"recursionLevel": "full"}
        if path:
            params["path"] = path
        data = await self._request(
            "listWikiPages", "GET", f"/wiki/wikis/{_segment(wiki_identifier)}/pages", params=params
        )
        # The pages endpoint returns a single root page with nested subPages
        if data and "value" not in data:
            return {"value": [data], "count": 1}
        return _list_result(data)

    async def get_wiki_page(
        self, wiki_identifier: str, path: str, include_content: Optional[bool] = None
    ) -> JsonDict:
        params: Dict[str, Any] = {"path": path}
        if include_content is not None:
            params["includeContent"] = str(include_content).lower()
        return await self._request(
            "getWikiPage", "GET", f"/wiki/wikis/{_segment(wiki_identifier)}/pages", params=params
        )

    async def create_wiki_page(self, wiki_identifier: str, path: str, data: JsonDict) -> JsonDict:
        return await self._request(
            "createWikiPage", "PUT", f"/wiki/wikis/{_segment(wiki_identifier)}/pages",
            params={"path": path}, json_body=data,
        )

    async def update_wiki_page(
        self, wiki_identifier: str, path: str, data: JsonDict, version: Optional[str] = None
    ) -> JsonDict:
        headers = {"If-Match": version} if version else None
        return await self._request(
            "updateWikiPage", "PUT", f"/wiki/wikis/{_segment(wiki_identifier)}/pages",
            params={"path": path}, json_body=data, headers=headers,
        )

    async def delete_wiki_page(self, wiki_identifier: str, path: str) -> None:
        await self._request(
            "deleteWikiPage", "DELETE", f"/wiki/wikis/{_segment(wiki_identifier)}/pages", params={"path": path}
        )
