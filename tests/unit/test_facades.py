"""Tests for the domain facades and the resilient call chain behind them."""

import asyncio
import logging
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from ado_gateway.api import (
    BoardsAPI,
    IterationsAPI,
    PullRequestsAPI,
    TeamsAPI,
    WikiAPI,
    WiqlAPI,
    WorkItemsAPI,
)
from ado_gateway.exceptions import (
    ProviderInitializationException,
    TransportException,
    UnsupportedOperationException,
    ValidationException,
)
from ado_gateway.resilience import (
    CancellationToken,
    CircuitBreakerOpenError,
    CircuitBreakerState,
    OperationCancelledError,
    RateLimitConfig,
    RateLimiter,
    cancellation_scope,
)
from ado_gateway.schemas import JsonPatchOperation
from ado_gateway.utils import get_correlation_id

from helpers import work_item, work_items


@pytest.fixture
def work_items_api(primary_provider, resilience_context, resolver):
    return WorkItemsAPI(primary_provider, resilience_context, resolver)


def unsupported(operation):
    return AsyncMock(side_effect=UnsupportedOperationException(operation, "sdk"))


class TestFallback:

    @pytest.mark.asyncio
    async def test_unsupported_operation_is_reissued_on_secondary(
        self, work_items_api, primary_provider, secondary_provider, resolver, telemetry
    ):
        primary_provider.add_work_item_relation = unsupported("addWorkItemRelation")
        secondary_provider.add_work_item_relation = AsyncMock(return_value=work_item(1))

        result = await work_items_api.add_relation(1, 2, "parent")

        assert result["id"] == 1
        assert resolver.resolve_calls == 1
        secondary_provider.add_work_item_relation.assert_awaited_once()

        records = telemetry.get_records()
        assert len(records) == 1
        assert records[0].succeeded
        assert records[0].fallback_used
        assert records[0].transport == "http"

    @pytest.mark.asyncio
    async def test_unsupported_does_not_trip_the_breaker(
        self, work_items_api, primary_provider, secondary_provider, resilience_context
    ):
        primary_provider.add_work_item_relation = unsupported("addWorkItemRelation")
        secondary_provider.add_work_item_relation = AsyncMock(return_value=work_item(1))

        for _ in range(10):
            await work_items_api.add_relation(1, 2, "related")

        assert resilience_context.circuit_breaker.get_state() is CircuitBreakerState.CLOSED
        assert resilience_context.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_secondary_failure_propagates(
        self, work_items_api, primary_provider, secondary_provider, telemetry
    ):
        primary_provider.add_work_item_relation = unsupported("addWorkItemRelation")
        secondary_provider.add_work_item_relation = AsyncMock(
            side_effect=TransportException("Not found", status_code=404, transport="http")
        )

        with pytest.raises(TransportException) as exc_info:
            await work_items_api.add_relation(1, 2, "predecessor")

        assert exc_info.value.status_code == 404
        records = telemetry.get_records()
        assert len(records) == 1
        assert not records[0].succeeded
        assert records[0].fallback_used

    @pytest.mark.asyncio
    async def test_secondary_creation_failure_is_logged_and_recorded(
        self, work_items_api, primary_provider, resolver, telemetry, caplog
    ):
        primary_provider.add_work_item_relation = unsupported("addWorkItemRelation")
        resolver.resolve = AsyncMock(side_effect=ProviderInitializationException("http", "unreachable"))

        with caplog.at_level(logging.ERROR, logger="ado_gateway.api"):
            with pytest.raises(ProviderInitializationException):
                await work_items_api.add_relation(1, 2, "related")

        records = telemetry.get_records()
        assert len(records) == 1
        assert not records[0].succeeded
        assert records[0].fallback_used
        assert records[0].transport == "http"
        assert any(r.name == "ado_gateway.api" and r.getMessage() == "Operation failed" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_no_fallback_without_resolver(self, primary_provider, resilience_context):
        primary_provider.list_teams = unsupported("listTeams")
        teams = TeamsAPI(primary_provider, resilience_context)

        with pytest.raises(UnsupportedOperationException):
            await teams.list()

    @pytest.mark.asyncio
    async def test_secondary_active_provider_does_not_fall_back(
        self, secondary_provider, resilience_context, resolver
    ):
        secondary_provider.list_wikis = unsupported("listWikis")
        wiki = WikiAPI(secondary_provider, resilience_context, resolver)

        with pytest.raises(UnsupportedOperationException):
            await wiki.list_wikis()
        assert resolver.resolve_calls == 0

    @pytest.mark.asyncio
    async def test_other_errors_do_not_fall_back(self, work_items_api, primary_provider, resolver):
        primary_provider.get_work_item = AsyncMock(
            side_effect=TransportException("Unauthorized", status_code=401)
        )

        with pytest.raises(TransportException):
            await work_items_api.get(1)
        assert resolver.resolve_calls == 0


class TestRetryAndBreaker:

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, work_items_api, primary_provider, telemetry):
        primary_provider.get_work_item = AsyncMock(side_effect=[
            TransportException("Too many requests", status_code=429),
            TransportException("Service unavailable", status_code=503),
            work_item(7),
        ])

        result = await work_items_api.get(7)

        assert result["id"] == 7
        assert primary_provider.get_work_item.await_count == 3
        assert telemetry.get_metrics().successful_requests == 1

    @pytest.mark.asyncio
    async def test_permanent_errors_are_not_retried(self, work_items_api, primary_provider, telemetry):
        primary_provider.get_work_item = AsyncMock(side_effect=TransportException("Missing", status_code=404))

        with pytest.raises(TransportException):
            await work_items_api.get(7)

        assert primary_provider.get_work_item.await_count == 1
        metrics = telemetry.get_metrics()
        assert metrics.failed_requests == 1
        assert metrics.by_operation == {"getWorkItem": 1}

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self, work_items_api, primary_provider):
        primary_provider.get_work_item = AsyncMock(side_effect=[
            TransportException("Too many requests", status_code=429),
            TransportException("Too many requests", status_code=429),
            TransportException("Gateway timeout", status_code=504),
        ])

        with pytest.raises(TransportException) as exc_info:
            await work_items_api.get(7)

        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_breaker_opens_after_consecutive_failures(
        self, work_items_api, primary_provider, resilience_context
    ):
        primary_provider.get_work_item = AsyncMock(side_effect=TransportException("Forbidden", status_code=403))

        for _ in range(5):
            with pytest.raises(TransportException):
                await work_items_api.get(1)

        assert resilience_context.circuit_breaker.get_state() is CircuitBreakerState.OPEN

        with pytest.raises(CircuitBreakerOpenError):
            await work_items_api.get(1)
        assert primary_provider.get_work_item.await_count == 5

    @pytest.mark.asyncio
    async def test_validation_errors_never_reach_the_chain(
        self, work_items_api, primary_provider, resilience_context, telemetry
    ):
        primary_provider.create_work_item = AsyncMock()

        for _ in range(6):
            with pytest.raises(ValidationException):
                await work_items_api.create("Task", {"System.State": "New"})

        primary_provider.create_work_item.assert_not_awaited()
        assert resilience_context.circuit_breaker.get_state() is CircuitBreakerState.CLOSED
        assert telemetry.get_records() == []

    @pytest.mark.asyncio
    async def test_calls_carry_a_correlation_id(self, work_items_api, primary_provider):
        seen = []

        async def get_work_item(work_item_id, fields=None):
            seen.append(get_correlation_id())
            return work_item(work_item_id)

        primary_provider.get_work_item = get_work_item

        await work_items_api.get(1)
        await work_items_api.get(2)

        assert all(seen)
        assert seen[0] != seen[1]
        assert get_correlation_id() is None


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_token_aborts_before_the_call(self, work_items_api, primary_provider):
        primary_provider.get_work_item = AsyncMock(return_value=work_item(1))
        token = CancellationToken()
        token.cancel("caller went away")

        with cancellation_scope(token):
            with pytest.raises(OperationCancelledError, match="caller went away"):
                await work_items_api.get(1)

        primary_provider.get_work_item.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancellation_abandons_in_flight_attempt(
        self, work_items_api, primary_provider, resilience_context
    ):
        started = asyncio.Event()

        async def slow_get(work_item_id, fields=None):
            started.set()
            await asyncio.sleep(10)
            return work_item(work_item_id)

        primary_provider.get_work_item = slow_get
        token = CancellationToken()

        async def cancel_when_started():
            await started.wait()
            token.cancel()

        canceller = asyncio.create_task(cancel_when_started())
        with cancellation_scope(token):
            with pytest.raises(OperationCancelledError):
                await work_items_api.get(1)
        await canceller

        assert resilience_context.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_cancellation_while_rate_limited_is_recorded(
        self, primary_provider, resilience_context, telemetry, caplog
    ):
        limiter = RateLimiter(RateLimitConfig(capacity=1, refill_rate=0.1))
        await limiter.acquire()
        api = WorkItemsAPI(primary_provider, replace(resilience_context, rate_limiter=limiter))
        primary_provider.get_work_item = AsyncMock(return_value=work_item(1))

        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        with caplog.at_level(logging.ERROR, logger="ado_gateway.api"):
            with cancellation_scope(token):
                with pytest.raises(OperationCancelledError):
                    await api.get(1)

        primary_provider.get_work_item.assert_not_awaited()
        records = telemetry.get_records()
        assert len(records) == 1
        assert not records[0].succeeded
        assert records[0].operation == "getWorkItem"
        assert any(r.getMessage() == "Operation failed" for r in caplog.records)


class TestWorkItemsAPI:

    @pytest.mark.asyncio
    async def test_create(self, work_items_api, primary_provider):
        primary_provider.create_work_item = AsyncMock(return_value=work_item(3))

        result = await work_items_api.create("Task", {"System.Title": "Write docs"})

        assert result["id"] == 3
        payload, use_markdown = primary_provider.create_work_item.await_args.args
        assert payload.type == "Task"
        assert use_markdown is True

    @pytest.mark.asyncio
    async def test_update_accepts_dicts_and_models(self, work_items_api, primary_provider):
        primary_provider.update_work_item = AsyncMock(return_value=work_item(3))

        await work_items_api.update(3, [
            {"op": "move", "path": "/fields/A", "from": "/fields/B"},
            JsonPatchOperation(op="remove", path="/fields/C"),
        ])

        _, payload, _ = primary_provider.update_work_item.await_args.args
        assert [op.op for op in payload.operations] == ["move", "remove"]
        assert payload.operations[0].from_ == "/fields/B"

    @pytest.mark.asyncio
    async def test_update_requires_operations(self, work_items_api, primary_provider):
        primary_provider.update_work_item = AsyncMock()

        with pytest.raises(ValidationException):
            await work_items_api.update(3, [])
        primary_provider.update_work_item.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_batch_is_chunked_in_order(self, work_items_api, primary_provider, telemetry):
        async def get_work_items(ids, fields=None):
            return work_items(ids)

        primary_provider.get_work_items = AsyncMock(side_effect=get_work_items)
        ids = list(range(1, 451))

        result = await work_items_api.get_batch(ids, ["System.Title"])

        assert [item["id"] for item in result] == ids
        chunks = [call.args[0] for call in primary_provider.get_work_items.await_args_list]
        assert [len(chunk) for chunk in chunks] == [200, 200, 50]
        assert chunks[1][0] == 201
        assert telemetry.get_metrics().by_operation == {"getWorkItems": 3}

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_call(self, work_items_api, primary_provider):
        primary_provider.get_work_items = AsyncMock()

        assert await work_items_api.get_batch([]) == []
        primary_provider.get_work_items.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_chunk_aborts_the_batch(self, work_items_api, primary_provider):
        primary_provider.get_work_items = AsyncMock(side_effect=[
            work_items(list(range(1, 201))),
            TransportException("Bad request", status_code=400),
        ])

        with pytest.raises(TransportException):
            await work_items_api.get_batch(list(range(1, 401)))

    @pytest.mark.asyncio
    async def test_unknown_relation_type(self, work_items_api):
        with pytest.raises(ValidationException) as exc_info:
            await work_items_api.add_relation(1, 2, "sibling")
        assert exc_info.value.field == "relation_type"


class TestWiqlAPI:

    @pytest.fixture
    def wiql_api(self, primary_provider, resilience_context, resolver, work_items_api):
        return WiqlAPI(primary_provider, resilience_context, resolver, work_items=work_items_api)

    @pytest.mark.asyncio
    async def test_query_validates_first(self, wiql_api, primary_provider):
        primary_provider.execute_wiql = AsyncMock()

        with pytest.raises(ValidationException):
            await wiql_api.query("SELECT [System.Id]")
        primary_provider.execute_wiql.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query_and_get(self, wiql_api, primary_provider):
        primary_provider.execute_wiql = AsyncMock(return_value={"workItems": [{"id": 9}, {"id": 4}]})
        primary_provider.get_work_items = AsyncMock(return_value=work_items([9, 4]))

        result = await wiql_api.query_and_get("SELECT [System.Id] FROM WorkItems", fields=["System.Title"])

        assert [item["id"] for item in result] == [9, 4]
        primary_provider.get_work_items.assert_awaited_once_with([9, 4], ["System.Title"])

    @pytest.mark.asyncio
    async def test_query_and_get_with_no_matches(self, wiql_api, primary_provider):
        primary_provider.execute_wiql = AsyncMock(return_value={"workItems": []})
        primary_provider.get_work_items = AsyncMock()

        assert await wiql_api.query_and_get("SELECT [System.Id] FROM WorkItems") == []
        primary_provider.get_work_items.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query_and_get_needs_work_items_api(self, primary_provider, resilience_context):
        wiql = WiqlAPI(primary_provider, resilience_context)

        with pytest.raises(RuntimeError):
            await wiql.query_and_get("SELECT [System.Id] FROM WorkItems")


class TestRequiredFields:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("facade_cls,call", [
        (BoardsAPI, lambda api: api.get("")),
        (BoardsAPI, lambda api: api.update_settings("b1", {})),
        (IterationsAPI, lambda api: api.create({"path": "Sprint"})),
        (IterationsAPI, lambda api: api.delete("")),
        (PullRequestsAPI, lambda api: api.create("repo", {"title": "t", "sourceRefName": "refs/heads/a"})),
        (PullRequestsAPI, lambda api: api.add_comment("repo", 1, {})),
        (PullRequestsAPI, lambda api: api.add_reviewer("repo", 1, {"isRequired": True})),
        (PullRequestsAPI, lambda api: api.vote("repo", 1, "", {"vote": 10})),
        (PullRequestsAPI, lambda api: api.vote("repo", 1, "user", None)),
        (PullRequestsAPI, lambda api: api.vote("repo", 1, "user", {})),
        (TeamsAPI, lambda api: api.create({"description": "no name"})),
        (TeamsAPI, lambda api: api.add_member("team", {})),
        (WikiAPI, lambda api: api.create_wiki({})),
        (WikiAPI, lambda api: api.get_page("wiki", "")),
        (WikiAPI, lambda api: api.update_page("wiki", "", {"content": "x"})),
    ])
    async def test_missing_input_is_rejected(self, primary_provider, resilience_context, telemetry, facade_cls, call):
        with pytest.raises(ValidationException):
            await call(facade_cls(primary_provider, resilience_context))
        assert telemetry.get_records() == []


class TestOtherFacades:

    @pytest.mark.asyncio
    async def test_pull_request_merge_defaults_to_empty_body(self, primary_provider, resilience_context):
        primary_provider.merge_pull_request = AsyncMock(return_value={"status": "completed"})
        api = PullRequestsAPI(primary_provider, resilience_context)

        result = await api.merge("repo", 12)

        assert result == {"status": "completed"}
        primary_provider.merge_pull_request.assert_awaited_once_with("repo", 12, {})

    @pytest.mark.asyncio
    async def test_vote_without_data_names_the_field(self, primary_provider, resilience_context):
        api = PullRequestsAPI(primary_provider, resilience_context)

        with pytest.raises(ValidationException) as exc_info:
            await api.vote("repo", 1, "user", None)

        assert exc_info.value.details["field"] == "vote"

    @pytest.mark.asyncio
    async def test_vote_zero_resets_the_vote(self, primary_provider, resilience_context):
        primary_provider.vote_pull_request = AsyncMock(return_value={"vote": 0})
        api = PullRequestsAPI(primary_provider, resilience_context)

        await api.vote("repo", 1, "user", {"vote": 0})

        primary_provider.vote_pull_request.assert_awaited_once_with("repo", 1, "user", {"vote": 0})

    @pytest.mark.asyncio
    async def test_iterations_pass_team(self, primary_provider, resilience_context):
        primary_provider.get_iteration_capacity = AsyncMock(return_value=[])
        api = IterationsAPI(primary_provider, resilience_context)

        await api.get_capacity("it-1", team="Core Team")

        primary_provider.get_iteration_capacity.assert_awaited_once_with("it-1", "Core Team")

    @pytest.mark.asyncio
    async def test_wiki_update_passes_version(self, primary_provider, resilience_context):
        primary_provider.update_wiki_page = AsyncMock(return_value={"path": "/Home"})
        api = WikiAPI(primary_provider, resilience_context)

        await api.update_page("wiki", "/Home", {"content": "# Home"}, version='W/"2"')

        primary_provider.update_wiki_page.assert_awaited_once_with("wiki", "/Home", {"content": "# Home"}, 'W/"2"')
