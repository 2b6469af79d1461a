"""Pull request operations on a git repository."""

from typing import Optional

from ado_gateway.exceptions import ValidationException
from ado_gateway.providers.base import JsonDict
from .base import ResilientFacade


class PullRequestsAPI(ResilientFacade):

    async def list(self, repository_id: str, status: Optional[str] = None) -> JsonDict:
        return await self._execute(
            "listPullRequests",
            repository_id,
            lambda provider: provider.list_pull_requests(repository_id, status),
            status=status,
        )

    async def get(self, repository_id: str, pull_request_id: int) -> JsonDict:
        return await self._execute(
            "getPullRequest",
            f"{repository_id}/{pull_request_id}",
            lambda provider: provider.get_pull_request(repository_id, pull_request_id),
        )

    async def create(self, repository_id: str, data: JsonDict) -> JsonDict:
        self.validator.require_keys(
            data,
            ["sourceRefName", "targetRefName", "title"],
            "Pull Request requires sourceRefName, targetRefName and title",
        )
        return await self._execute(
            "createPullRequest",
            repository_id,
            lambda provider: provider.create_pull_request(repository_id, data),
            source=data["sourceRefName"],
            destination=data["targetRefName"],
        )

    async def update(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        return await self._execute(
            "updatePullRequest",
            f"{repository_id}/{pull_request_id}",
            lambda provider: provider.update_pull_request(repository_id, pull_request_id, data),
        )

    async def merge(self, repository_id: str, pull_request_id: int, data: Optional[JsonDict] = None) -> JsonDict:
        """Complete the pull request; ``data`` may carry ``lastMergeSourceCommit`` and ``completionOptions``."""
        body = dict(data or {})
        return await self._execute(
            "mergePullRequest",
            f"{repository_id}/{pull_request_id}",
            lambda provider: provider.merge_pull_request(repository_id, pull_request_id, body),
        )

    async def add_comment(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        self.validator.require_keys(data, ["content"], "Comment content is required")
        return await self._execute(
            "addPullRequestComment",
            f"{repository_id}/{pull_request_id}",
            lambda provider: provider.add_pull_request_comment(repository_id, pull_request_id, data),
        )

    async def add_reviewer(self, repository_id: str, pull_request_id: int, data: JsonDict) -> JsonDict:
        self.validator.require_keys(data, ["id"], "Reviewer ID is required")
        return await self._execute(
            "addPullRequestReviewer",
            f"{repository_id}/{pull_request_id}",
            lambda provider: provider.add_pull_request_reviewer(repository_id, pull_request_id, data),
            reviewer_id=data["id"],
        )

    async def vote(self, repository_id: str, pull_request_id: int, reviewer_id: str, data: JsonDict) -> JsonDict:
        self.validator.require(reviewer_id, "Reviewer ID is required", field="reviewer_id")
        if not data or data.get("vote") is None:
            raise ValidationException("Vote value is required", field="vote")
        return await self._execute(
            "votePullRequest",
            f"{repository_id}/{pull_request_id}",
            lambda provider: provider.vote_pull_request(repository_id, pull_request_id, reviewer_id, data),
            reviewer_id=reviewer_id,
            vote=data.get("vote"),
        )
