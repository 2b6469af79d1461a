from ado_gateway.exceptions import ValidationException
from ado_gateway.providers.base import JsonDict
from .base import ResilientFacade


class BoardsAPI(ResilientFacade):

    async def list(self) -> JsonDict:
        return await self._execute("listBoards", "boards", lambda provider: provider.list_boards())

    async def get(self, board_id: str) -> JsonDict:
        self.validator.require(board_id, "Board ID is required", field="board_id")
        return await self._execute("getBoard", board_id, lambda provider: provider.get_board(board_id))

    async def update_settings(self, board_id: str, settings: JsonDict) -> JsonDict:
        if not settings:
            raise ValidationException("Board settings are required for update", field="settings")
        return await self._execute(
            "updateBoardSettings",
            board_id,
            lambda provider: provider.update_board_settings(board_id, settings),
            settings_keys=sorted(settings),
        )
