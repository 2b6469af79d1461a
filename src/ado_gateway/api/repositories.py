from ado_gateway.providers.base import JsonDict
from .base import ResilientFacade


class RepositoriesAPI(ResilientFacade):

    async def list(self) -> JsonDict:
        return await self._execute("listRepositories", "repositories", lambda provider: provider.list_repositories())

    async def get(self, repository_id: str) -> JsonDict:
        return await self._execute(
            "getRepository", repository_id, lambda provider: provider.get_repository(repository_id)
        )
