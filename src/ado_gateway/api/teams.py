"""Teams of the configured project and their membership."""

from ado_gateway.providers.base import JsonDict
from .base import ResilientFacade


class TeamsAPI(ResilientFacade):

    async def list(self) -> JsonDict:
        return await self._execute("listTeams", "teams", lambda provider: provider.list_teams())

    async def get(self, team_id: str) -> JsonDict:
        return await self._execute("getTeam", team_id, lambda provider: provider.get_team(team_id))

    async def create(self, data: JsonDict) -> JsonDict:
        self.validator.require_keys(data, ["name"], "Team name is required")
        return await self._execute("createTeam", data["name"], lambda provider: provider.create_team(data))

    async def update(self, team_id: str, data: JsonDict) -> JsonDict:
        return await self._execute("updateTeam", team_id, lambda provider: provider.update_team(team_id, data))

    async def delete(self, team_id: str) -> None:
        await self._execute("deleteTeam", team_id, lambda provider: provider.delete_team(team_id))

    async def list_members(self, team_id: str) -> JsonDict:
        return await self._execute("listTeamMembers", team_id, lambda provider: provider.list_team_members(team_id))

    async def add_member(self, team_id: str, data: JsonDict) -> JsonDict:
        self.validator.require_keys(data, ["userId"], "User ID is required")
        return await self._execute(
            "addTeamMember",
            team_id,
            lambda provider: provider.add_team_member(team_id, data),
            user_id=data["userId"],
        )

    async def remove_member(self, team_id: str, user_id: str) -> None:
        await self._execute(
            "removeTeamMember",
            team_id,
            lambda provider: provider.remove_team_member(team_id, user_id),
            user_id=user_id,
        )
