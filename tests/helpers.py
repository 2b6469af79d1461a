"""
Test helpers for the gateway test suite: stub providers, a stub fallback
resolver and canned Azure DevOps payloads.
"""

from typing import List

from ado_gateway.providers.base import BaseProvider, ProviderType

TEST_PAT = "test-pat-value-not-a-real-token"


class StubProvider(BaseProvider):
    """Provider whose capabilities are replaced per test."""

    provider_type = ProviderType.PRIMARY

    async def initialize(self) -> None:
        self._initialized = True
        self._update_health(True)


class StubSecondaryProvider(StubProvider):
    provider_type = ProviderType.SECONDARY


class StubResolver:
    """Stands in for ``SecondaryProviderResolver`` with a fixed secondary."""

    def __init__(self, secondary: BaseProvider):
        self.secondary = secondary
        self.resolve_calls = 0

    async def resolve(self) -> BaseProvider:
        self.resolve_calls += 1
        return self.secondary

    async def reset(self) -> None:
        pass

    async def close(self) -> None:
        pass


def work_item(work_item_id: int, title: str = "Item") -> dict:
    return {
        "id": work_item_id,
        "rev": 1,
        "fields": {"System.Title": f"{title} {work_item_id}"},
        "url": f"https://dev.azure.com/contoso/Fabrikam/_apis/wit/workItems/{work_item_id}",
    }


def work_items(ids: List[int]) -> List[dict]:
    return [work_item(i) for i in ids]
