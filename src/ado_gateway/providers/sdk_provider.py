"""Transport backed by the ``azure-devops`` Python SDK.

The SDK is synchronous, so every call runs in a worker thread. It covers work
items, WIQL and boards; everything else falls through to the base class and
raises ``UnsupportedOperationException``.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, List, Optional

from azure.devops.connection import Connection
from azure.devops.v7_1.work_item_tracking.models import (
    JsonPatchOperation as SdkJsonPatchOperation,
    TeamContext,
    Wiql,
)
from msrest.authentication import BasicAuthentication

from ado_gateway.config import AzureDevOpsConfig
from ado_gateway.exceptions import (
    GatewayException,
    ProviderInitializationException,
    TransportException,
    ValidationException,
    status_code_of,
)
from ado_gateway.schemas import (
    CreateWorkItemPayload,
    JsonPatchOperation,
    UpdateWorkItemPayload,
    WiqlQuery,
    build_create_document,
    build_update_document,
)
from .base import BaseProvider, JsonDict, ProviderType

UNKNOWN_WORK_ITEM_TYPE = "TF401232"

ConnectionFactory = Callable[[AzureDevOpsConfig], Any]


def default_connection_factory(config: AzureDevOpsConfig) -> Connection:
    credentials = BasicAuthentication("", config.pat.get_secret_value())
    return Connection(base_url=config.organization_url, creds=credentials)


def _to_sdk_document(document: List[JsonPatchOperation]) -> List[SdkJsonPatchOperation]:
    return [
        SdkJsonPatchOperation(op=op.op, path=op.path, value=op.value, from_=op.from_)
        for op in document
    ]


def _isoformat(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _board_to_dict(board: Any) -> JsonDict:
    return {
        "id": getattr(board, "id", None) or "",
        "name": getattr(board, "name", None) or "",
        "url": getattr(board, "url", None) or "",
        "columns": [],
        "settings": {"cardReordering": True, "backlogVisibilities": {}},
    }


class SdkProvider(BaseProvider):
    """Primary transport: partial capability coverage through the vendor SDK."""

    provider_type = ProviderType.PRIMARY

    def __init__(self, config: AzureDevOpsConfig, connection_factory: Optional[ConnectionFactory] = None):
        super().__init__(config)
        self._connection_factory = connection_factory or default_connection_factory
        self._connection = None
        self._wit_client = None
        self._work_client = None

    async def initialize(self) -> None:
        try:
            self._connection = await asyncio.to_thread(self._connection_factory, self.config)
            clients = self._connection.clients
            self._wit_client = await asyncio.to_thread(clients.get_work_item_tracking_client)
            self._work_client = await asyncio.to_thread(clients.get_work_client)
        except Exception as e:
            self._update_health(False, str(e))
            raise ProviderInitializationException("sdk", str(e)) from e

        self._initialized = True
        self._update_health(True)
        self.log_info("SDK provider initialized", organization=self.config.organization, project=self.config.project)

    async def close(self) -> None:
        self._connection = None
        self._wit_client = None
        self._work_client = None
        await super().close()

    @property
    def wit_client(self):
        self._ensure_initialized()
        return self._wit_client

    @property
    def work_client(self):
        self._ensure_initialized()
        return self._work_client

    def _translate_error(self, operation: str, error: Exception) -> GatewayException:
        if isinstance(error, GatewayException):
            return error
        message = str(error)
        if UNKNOWN_WORK_ITEM_TYPE in message:
            return ValidationException(
                "Work item type not found in project. Available types depend on the "
                "process template (Agile/Scrum/CMMI/Basic)",
                field="type",
            )
        return TransportException(
            f"{operation} failed: {message}",
            status_code=status_code_of(error),
            transport=self.provider_type.value,
        )

    async def _call(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        self._ensure_initialized()
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except Exception as e:
            raise self._translate_error(operation, e) from e

    def _normalise_work_item(self, item: Any) -> JsonDict:
        if item is None:
            raise TransportException(
                "SDK returned no work item; check PAT write permissions and the project name",
                transport=self.provider_type.value,
            )
        item_id = getattr(item, "id", None)
        if not item_id:
            raise TransportException("Work item missing required field: id", transport=self.provider_type.value)
        links = getattr(item, "_links", None) or {}
        html_link = links.get("html", {}).get("href") if isinstance(links, dict) else None
        return {
            "id": item_id,
            "rev": getattr(item, "rev", None) or 1,
            "fields": dict(getattr(item, "fields", None) or {}),
            "url": getattr(item, "url", None) or html_link or "",
        }

    def _team_context(self) -> TeamContext:
        return TeamContext(project=self.config.project)

    # --- Work items ---

    async def create_work_item(self, payload: CreateWorkItemPayload, use_markdown: bool = True) -> JsonDict:
        document = _to_sdk_document(build_create_document(payload, use_markdown))
        result = await self._call(
            "createWorkItem",
            self.wit_client.create_work_item,
            document=document,
            project=self.config.project,
            type=payload.type,
        )
        return self._normalise_work_item(result)

    async def get_work_item(self, work_item_id: int, fields: Optional[List[str]] = None) -> JsonDict:
        result = await self._call(
            "getWorkItem",
            self.wit_client.get_work_item,
            id=work_item_id,
            project=self.config.project,
            fields=fields or None,
        )
        return self._normalise_work_item(result)

    async def update_work_item(
        self, work_item_id: int, payload: UpdateWorkItemPayload, use_markdown: bool = True
    ) -> JsonDict:
        document = _to_sdk_document(build_update_document(payload, use_markdown))
        result = await self._call(
            "updateWorkItem",
            self.wit_client.update_work_item,
            document=document,
            id=work_item_id,
            project=self.config.project,
        )
        return self._normalise_work_item(result)

    async def delete_work_item(self, work_item_id: int) -> None:
        await self._call(
            "deleteWorkItem", self.wit_client.delete_work_item, id=work_item_id, project=self.config.project
        )

    async def get_work_items(self, ids: List[int], fields: Optional[List[str]] = None) -> List[JsonDict]:
        results = await self._call(
            "getWorkItems",
            self.wit_client.get_work_items,
            ids=ids,
            project=self.config.project,
            fields=fields or None,
        )
        return [self._normalise_work_item(item) for item in results or []]

    # --- WIQL ---

    async def execute_wiql(self, query: WiqlQuery) -> JsonDict:
        result = await self._call(
            "executeWiql",
            self.wit_client.query_by_wiql,
            wiql=Wiql(query=query.query),
            team_context=self._team_context(),
            time_precision=query.time_precision,
            top=query.top,
        )
        if result is None:
            raise TransportException("WIQL query returned no result", transport=self.provider_type.value)

        columns = getattr(result, "columns", None)
        return {
            "queryType": str(getattr(result, "query_type", None) or "flat"),
            "queryResultType": str(getattr(result, "query_result_type", None) or "workItem"),
            "asOf": _isoformat(getattr(result, "as_of", None)),
            "workItems": [
                {"id": getattr(ref, "id", None) or 0, "url": getattr(ref, "url", None) or ""}
                for ref in getattr(result, "work_items", None) or []
            ],
            "columns": [
                {
                    "referenceName": getattr(column, "reference_name", None) or "",
                    "name": getattr(column, "name", None) or "",
                    "url": getattr(column, "url", None) or "",
                }
                for column in columns
            ] if columns is not None else None,
        }

    # --- Boards ---

    async def list_boards(self) -> JsonDict:
        boards = await self._call("listBoards", self.work_client.get_boards, team_context=self._team_context())
        value = [_board_to_dict(board) for board in boards or []]
        return {"value": value, "count": len(value)}

    async def get_board(self, board_id: str) -> JsonDict:
        board = await self._call(
            "getBoard", self.work_client.get_board, team_context=self._team_context(), id=board_id
        )
        if board is None:
            raise TransportException(f"Board {board_id} not found", status_code=404, transport=self.provider_type.value)
        return _board_to_dict(board)

    async def update_board_settings(self, board_id: str, settings: JsonDict) -> JsonDict:
        # The SDK exposes no settings write; the current board is returned unchanged.
        return await self.get_board(board_id)
