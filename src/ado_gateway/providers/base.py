"""Capability interface shared by the SDK and HTTP transports."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ado_gateway.config import AzureDevOpsConfig
from ado_gateway.exceptions import ProviderNotInitializedException, UnsupportedOperationException
from ado_gateway.logging_config import LoggerMixin
from ado_gateway.schemas import (
    AddWorkItemRelationPayload,
    CreateWorkItemPayload,
    UpdateWorkItemPayload,
    WiqlQuery,
)

JsonDict = Dict[str, Any]


class ProviderType(str, Enum):
    """Which transport a provider handle drives."""
    PRIMARY = "sdk"
    SECONDARY = "http"


@dataclass(frozen=True)
class ProviderHealth:
    healthy: bool
    last_check: datetime
    error: Optional[str] = None

    def to_dict(self) -> JsonDict:
        return {
            "healthy": self.healthy,
            "last_check": self.last_check.isoformat(),
            "error": self.error,
        }


class BaseProvider(LoggerMixin, ABC):
    """
    A transport implementing the Azure DevOps capability set.

    Every capability defaults to raising ``UnsupportedOperationException``;
    transports override what they can serve. Health starts unhealthy and is
    only changed by the provider itself.
    """

    provider_type: ProviderType

    def __init__(self, config: AzureDevOpsConfig):
        self.config = config
        self._health = ProviderHealth(healthy=False, last_check=datetime.now(timezone.utc))
        self._initialized = False

    @abstractmethod
    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def is_healthy(self) -> bool:
        return self._health.healthy

    def get_health(self) -> ProviderHealth:
        return replace(self._health)

    def _update_health(self, healthy: bool, error: Optional[str] = None) -> None:
        self._health = ProviderHealth(healthy=healthy, last_check=datetime.now(timezone.utc), error=error)

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise ProviderNotInitializedException(
                f"Provider not initialized ({self.provider_type.value})"
            )

    def _unsupported(self, operation: str):
        return UnsupportedOperationException(operation, self.provider_type.value)

    # --- Work items ---

    async def create_work_item(self, payload: CreateWorkItemPayload, use_markdown: bool = True) -> JsonDict:
        raise self._unsupported("createWorkItem")

    async def get_work_item(self, work_item_id: int, fields: Optional[List[str]] = None) -> JsonDict:
        raise self._unsupported("getWorkItem")

    async def update_work_item(
        self, work_item_id: int, payload: UpdateWorkItemPayload, use_markdown: bool = True
    ) -> JsonDict:
        raise self._unsupported("updateWorkItem")

    async def delete_work_item(self, work_item_id: int) -> None:
        raise self._unsupported("deleteWorkItem")

    async def get_work_items(self, ids: List[int], fields: Optional[List[str]] = None) -> List[JsonDict]:
        raise self._unsupported("getWorkItems")

    async def add_work_item_relation(self, payload: AddWorkItemRelationPayload) -> JsonDict:
        raise self._unsupported("addWorkItemRelation")

    # --- WIQL ---

    async def execute_wiql(self, query: WiqlQuery) -> JsonDict:
        raise self._unsupported("executeWiql")

    # --- Boards ---

    async def list_boards(self) -> JsonDict:
        raise self._unsupported("listBoards")

    async def get_board(self, board_id: str) -> JsonDict:
        raise self._unsupported("getBoard")

    async def update_board_settings(self, board_id: str, settings: JsonDict) -> JsonDict:
        raise self._unsupported("updateBoardSettings")

    # --- Iterations ---

    async def list_iterations(self, team: Optional[str] = None) -> List[JsonDict]:
        raise self._unsupported("listIterations")

    async def get_iteration(self, iteration_id: str, team: Optional[str] = None) -> JsonDict:
        raise self._unsupported("getIteration")

    async def create_iteration(self, data: JsonDict, team: Optional[str] = None) -> JsonDict:
        raise self._unsupported("createIteration")

    async def delete_iteration(self, iteration_id: str, team: Optional[str] = None) -> None:
        raise self._unsupported("deleteIteration")

    async def get_iteration_capacity(self, iteration_id: str, team: Optional[str] = None) -> List[JsonDict]:
        raise self._unsupported("getIterationCapacity")

    async def get_iteration_work_items(self, iteration_id: str, team: Optional[str] = None) -> JsonDict:
        raise self._unsupported("getIterationWorkItems")

    # --- Pull requests ---

    async def list_pull_requests(self, repository_id: str, status: Optional[str] = None) -> JsonDict:
        raise self._unsupported("listPullRequests")

    async def get_pull_request(self, repository_id: str, pull_request_id: int) -> JsonDict:
        raise self._unsupported("getPullRequest")

    async def create_pull_request(self, repository_id: str, data: JsonDict) -> JsonDict:
        raise self._unsupported("createPullRequest")

    async def update_pull_request(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        raise self._unsupported("updatePullRequest")

    async def merge_pull_request(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        raise self._unsupported("mergePullRequest")

    async def add_pull_request_comment(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        raise self._unsupported("addPullRequestComment")

    async def add_pull_request_reviewer(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        raise self._unsupported("addPullRequestReviewer")

    async def vote_pull_request(
        self, repository_id: str, pull_request_id: int, reviewer_id: str, data: JsonDict
    ) -> JsonDict:
        raise self._unsupported("votePullRequest")

    # --- Repositories ---

    async def list_repositories(self) -> JsonDict:
        raise self._unsupported("listRepositories")

    async def get_repository(self, repository_id: str) -> JsonDict:
        raise self._unsupported("getRepository")

    # --- Teams ---

    async def list_teams(self) -> JsonDict:
        raise self._unsupported("listTeams")

    async def get_team(self, team_id: str) -> JsonDict:
        raise self._unsupported("getTeam")

    async def create_team(self, data: JsonDict) -> JsonDict:
        raise self._unsupported("createTeam")

    async def update_team(self, team_id: str, data: JsonDict) -> JsonDict:
        raise self._unsupported("updateTeam")

    async def delete_team(self, team_id: str) -> None:
        raise self._unsupported("deleteTeam")

    async def list_team_members(self, team_id: str) -> JsonDict:
        raise self._unsupported("listTeamMembers")

    async def add_team_member(self, team_id: str, data: JsonDict) -> JsonDict:
        raise self._unsupported("addTeamMember")

    async def remove_team_member(self, team_id: str, user_id: str) -> None:
        raise self._unsupported("removeTeamMember")

    # --- Wiki ---

    async def list_wikis(self) -> JsonDict:
        raise self._unsupported("listWikis")

    async def get_wiki(self, wiki_identifier: str) -> JsonDict:
        raise self._unsupported("getWiki")

    async def create_wiki(self, data: JsonDict) -> JsonDict:
        raise self._unsupported("createWiki")

    async def delete_wiki(self, wiki_identifier: str) -> None:
        raise self._unsupported("deleteWiki")

    async def list_wiki_pages(self, wiki_identifier: str, path: Optional[str] = None) -> JsonDict:
        raise self._unsupported("listWikiPages")

    async def get_wiki_page(
        self, wiki_identifier: str, path: str, include_content: Optional[bool] = None
    ) -> JsonDict:
        raise self._unsupported("getWikiPage")

    async def create_wiki_page(self, wiki_identifier: str, path: str, data: JsonDict) -> JsonDict:
        raise self._unsupported("createWikiPage")

    async def update_wiki_page(
        self, wiki_identifier: str, path: str, data: JsonDict, version: Optional[str] = None
    ) -> JsonDict:
        raise self._unsupported("updateWikiPage")

    async def delete_wiki_page(self, wiki_identifier: str, path: str) -> None:
        raise self._unsupported("deleteWikiPage")
