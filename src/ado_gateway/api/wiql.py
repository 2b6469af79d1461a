"""WIQL queries."""

from typing import List, Optional

from ado_gateway.providers.base import JsonDict
from ado_gateway.schemas import WiqlQuery
from .base import ResilientFacade
from .work_items import WorkItemsAPI


class WiqlAPI(ResilientFacade):
    """Runs WIQL queries and optionally hydrates the matching work items."""

    def __init__(self, *args, work_items: Optional[WorkItemsAPI] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.work_items = work_items

    async def query(
        self, query: str, top: Optional[int] = None, time_precision: Optional[bool] = None
    ) -> JsonDict:
        self.validator.validate_wiql(query)
        wiql = WiqlQuery(query=query, top=top, time_precision=time_precision)

        return await self._execute(
            "executeWiql",
            "query",
            lambda provider: provider.execute_wiql(wiql),
            query_length=len(query),
        )

    async def query_and_get(
        self, query: str, fields: Optional[List[str]] = None, top: Optional[int] = None
    ) -> List[JsonDict]:
        """Run ``query`` and fetch the full work items it references, in result order."""
        if self.work_items is None:
            raise RuntimeError("WiqlAPI has no WorkItemsAPI to fetch results with")

        result = await self.query(query, top=top)
        ids = [ref["id"] for ref in result.get("workItems") or []]
        if not ids:
            return []
        return await self.work_items.get_batch(ids, fields)
