"""Tests for the azure-devops SDK transport with a mocked connection."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from ado_gateway.exceptions import (
    ErrorKind,
    ProviderInitializationException,
    ProviderNotInitializedException,
    TransportException,
    UnsupportedOperationException,
    ValidationException,
)
from ado_gateway.providers import ProviderType, SdkProvider
from ado_gateway.schemas import (
    AddWorkItemRelationPayload,
    CreateWorkItemPayload,
    JsonPatchOperation,
    UpdateWorkItemPayload,
    WiqlQuery,
)

from helpers import TEST_PAT


def sdk_work_item(work_item_id=1, title="Item"):
    return SimpleNamespace(
        id=work_item_id,
        rev=3,
        fields={"System.Title": title},
        url=f"https://dev.azure.com/contoso/_apis/wit/workItems/{work_item_id}",
    )


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


@pytest.fixture
def wit_client():
    return MagicMock(name="work_item_tracking_client")


@pytest.fixture
def work_client():
    return MagicMock(name="work_client")


@pytest.fixture
def connection(wit_client, work_client):
    connection = MagicMock(name="connection")
    connection.clients.get_work_item_tracking_client.return_value = wit_client
    connection.clients.get_work_client.return_value = work_client
    return connection


@pytest.fixture
async def provider(azure_config, connection):
    provider = SdkProvider(azure_config, connection_factory=MagicMock(return_value=connection))
    await provider.initialize()
    return provider


class TestSdkProviderLifecycle:

    @pytest.mark.asyncio
    async def test_initialize(self, provider):
        assert provider.provider_type is ProviderType.PRIMARY
        assert provider.initialized
        assert provider.is_healthy()

    @pytest.mark.asyncio
    async def test_default_connection_uses_basic_auth_with_pat(self, azure_config):
        with patch("ado_gateway.providers.sdk_provider.Connection") as connection_cls, \
                patch("ado_gateway.providers.sdk_provider.BasicAuthentication") as auth_cls:
            provider = SdkProvider(azure_config)
            await provider.initialize()

        auth_cls.assert_called_once_with("", TEST_PAT)
        connection_cls.assert_called_once_with(
            base_url="https://dev.azure.com/contoso", creds=auth_cls.return_value
        )

    @pytest.mark.asyncio
    async def test_initialization_failure(self, azure_config):
        factory = MagicMock(side_effect=RuntimeError("invalid PAT"))
        provider = SdkProvider(azure_config, connection_factory=factory)

        with pytest.raises(ProviderInitializationException) as exc_info:
            await provider.initialize()

        assert "invalid PAT" in exc_info.value.message
        assert not provider.is_healthy()
        assert provider.get_health().error == "invalid PAT"

    @pytest.mark.asyncio
    async def test_calls_before_initialize_fail(self, azure_config):
        provider = SdkProvider(azure_config, connection_factory=MagicMock())
        with pytest.raises(ProviderNotInitializedException):
            await provider.get_work_item(1)

    @pytest.mark.asyncio
    async def test_close(self, provider):
        await provider.close()
        assert not provider.initialized


class TestSdkProviderWorkItems:

    @pytest.mark.asyncio
    async def test_create_work_item(self, provider, wit_client):
        wit_client.create_work_item.return_value = sdk_work_item(10, "Login")
        payload = CreateWorkItemPayload(type="Task", fields={"System.Title": "Login", "System.Description": "x"})

        result = await provider.create_work_item(payload)

        assert result == {
            "id": 10,
            "rev": 3,
            "fields": {"System.Title": "Login"},
            "url": "https://dev.azure.com/contoso/_apis/wit/workItems/10",
        }
        kwargs = wit_client.create_work_item.call_args.kwargs
        assert kwargs["project"] == "Fabrikam"
        assert kwargs["type"] == "Task"
        paths = [op.path for op in kwargs["document"]]
        assert "/fields/System.Title" in paths
        assert "/multilineFieldsFormat/System.Description" in paths

    @pytest.mark.asyncio
    async def test_create_returning_nothing_is_an_error(self, provider, wit_client):
        wit_client.create_work_item.return_value = None

        with pytest.raises(TransportException, match="no work item"):
            await provider.create_work_item(CreateWorkItemPayload(type="Task", fields={"System.Title": "t"}))

    @pytest.mark.asyncio
    async def test_unknown_work_item_type_is_a_validation_error(self, provider, wit_client):
        wit_client.create_work_item.side_effect = RuntimeError(
            "TF401232: Work item type User Story does not exist in project"
        )

        with pytest.raises(ValidationException) as exc_info:
            await provider.create_work_item(CreateWorkItemPayload(type="User Story", fields={"System.Title": "t"}))

        assert exc_info.value.field == "type"

    @pytest.mark.asyncio
    async def test_update_work_item(self, provider, wit_client):
        wit_client.update_work_item.return_value = sdk_work_item(4)
        payload = UpdateWorkItemPayload(operations=[
            JsonPatchOperation(op="add", path="/fields/System.Description", value="d"),
        ])

        await provider.update_work_item(4, payload)

        kwargs = wit_client.update_work_item.call_args.kwargs
        assert kwargs["id"] == 4
        assert [op.path for op in kwargs["document"]] == [
            "/fields/System.Description",
            "/multilineFieldsFormat/System.Description",
        ]

    @pytest.mark.asyncio
    async def test_get_work_items(self, provider, wit_client):
        wit_client.get_work_items.return_value = [sdk_work_item(1), sdk_work_item(2)]

        result = await provider.get_work_items([1, 2], ["System.Title"])

        assert [item["id"] for item in result] == [1, 2]
        wit_client.get_work_items.assert_called_once_with(ids=[1, 2], project="Fabrikam", fields=["System.Title"])

    @pytest.mark.asyncio
    async def test_delete_work_item(self, provider, wit_client):
        await provider.delete_work_item(8)
        wit_client.delete_work_item.assert_called_once_with(id=8, project="Fabrikam")

    @pytest.mark.asyncio
    async def test_sdk_status_errors_keep_their_status(self, provider, wit_client):
        wit_client.get_work_item.side_effect = StatusError("throttled", 429)

        with pytest.raises(TransportException) as exc_info:
            await provider.get_work_item(1)

        assert exc_info.value.status_code == 429
        assert exc_info.value.kind is ErrorKind.TRANSIENT
        assert exc_info.value.transport == "sdk"


class TestSdkProviderQueriesAndBoards:

    @pytest.mark.asyncio
    async def test_execute_wiql_normalises_result(self, provider, wit_client):
        as_of = datetime(2024, 1, 2, tzinfo=timezone.utc)
        wit_client.query_by_wiql.return_value = SimpleNamespace(
            query_type="flat",
            query_result_type="workItem",
            as_of=as_of,
            work_items=[SimpleNamespace(id=5, url="u5"), SimpleNamespace(id=6, url="u6")],
            columns=[SimpleNamespace(reference_name="System.Id", name="ID", url="c")],
        )

        result = await provider.execute_wiql(WiqlQuery(query="SELECT [System.Id] FROM WorkItems", top=5))

        assert result["asOf"] == as_of.isoformat()
        assert result["workItems"] == [{"id": 5, "url": "u5"}, {"id": 6, "url": "u6"}]
        assert result["columns"] == [{"referenceName": "System.Id", "name": "ID", "url": "c"}]
        kwargs = wit_client.query_by_wiql.call_args.kwargs
        assert kwargs["wiql"].query == "SELECT [System.Id] FROM WorkItems"
        assert kwargs["team_context"].project == "Fabrikam"
        assert kwargs["top"] == 5

    @pytest.mark.asyncio
    async def test_list_boards(self, provider, work_client):
        work_client.get_boards.return_value = [
            SimpleNamespace(id="b1", name="Stories", url="u1"),
            SimpleNamespace(id="b2", name="Epics", url="u2"),
        ]

        result = await provider.list_boards()

        assert result["count"] == 2
        assert result["value"][0]["name"] == "Stories"
        assert result["value"][0]["settings"] == {"cardReordering": True, "backlogVisibilities": {}}

    @pytest.mark.asyncio
    async def test_update_board_settings_returns_board_unchanged(self, provider, work_client):
        work_client.get_board.return_value = SimpleNamespace(id="b1", name="Stories", url="u1")

        result = await provider.update_board_settings("b1", {"cardReordering": False})

        assert result["id"] == "b1"
        work_client.get_board.assert_called_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda p: p.list_teams(),
        lambda p: p.list_iterations(),
        lambda p: p.list_pull_requests("repo"),
        lambda p: p.list_wikis(),
        lambda p: p.list_repositories(),
    ])
    async def test_capability_gaps_raise_unsupported(self, provider, call):
        with pytest.raises(UnsupportedOperationException) as exc_info:
            await call(provider)

        assert exc_info.value.kind is ErrorKind.UNSUPPORTED
        assert exc_info.value.transport == "sdk"

    @pytest.mark.asyncio
    async def test_relations_are_not_covered_by_the_sdk(self, provider):
        payload = AddWorkItemRelationPayload(work_item_id=1, target_work_item_id=2, relation_type="related")
        with pytest.raises(UnsupportedOperationException):
            await provider.add_work_item_relation(payload)
