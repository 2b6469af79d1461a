"""Sprint iterations of a team.

Every call is team scoped; when ``team`` is omitted the client's configured
team is used, falling back to the project's default team.
"""

from typing import List, Optional

from ado_gateway.providers.base import JsonDict
from .base import ResilientFacade


class IterationsAPI(ResilientFacade):

    async def list(self, team: Optional[str] = None) -> List[JsonDict]:
        return await self._execute(
            "listIterations", team or "default", lambda provider: provider.list_iterations(team)
        )

    async def get(self, iteration_id: str, team: Optional[str] = None) -> JsonDict:
        return await self._execute(
            "getIteration", iteration_id, lambda provider: provider.get_iteration(iteration_id, team), team=team
        )

    async def create(self, data: JsonDict, team: Optional[str] = None) -> JsonDict:
        self.validator.require_keys(data, ["name"], "Iteration name is required")
        return await self._execute(
            "createIteration", data["name"], lambda provider: provider.create_iteration(data, team), team=team
        )

    async def delete(self, iteration_id: str, team: Optional[str] = None) -> None:
        self.validator.require(iteration_id, "Iteration ID is required", field="iteration_id")
        await self._execute(
            "deleteIteration", iteration_id, lambda provider: provider.delete_iteration(iteration_id, team), team=team
        )

    async def get_capacity(self, iteration_id: str, team: Optional[str] = None) -> List[JsonDict]:
        return await self._execute(
            "getIterationCapacity",
            iteration_id,
            lambda provider: provider.get_iteration_capacity(iteration_id, team),
            team=team,
        )

    async def get_work_items(self, iteration_id: str, team: Optional[str] = None) -> JsonDict:
        return await self._execute(
            "getIterationWorkItems",
            iteration_id,
            lambda provider: provider.get_iteration_work_items(iteration_id, team),
            team=team,
        )
