"""Work item operations."""

from typing import Any, Dict, List, Optional, Sequence, Union

from ado_gateway.exceptions import ValidationException
from ado_gateway.providers.base import JsonDict
from ado_gateway.schemas import (
    AddWorkItemRelationPayload,
    CreateWorkItemPayload,
    JsonPatchOperation,
    UpdateWorkItemPayload,
    WorkItemRelationType,
)
from .base import ResilientFacade

# Upper bound of ids per batch request accepted by Azure DevOps
BATCH_SIZE = 200

PatchOperationLike = Union[JsonPatchOperation, Dict[str, Any]]


class WorkItemsAPI(ResilientFacade):

    async def create(self, work_item_type: str, fields: Dict[str, Any]) -> JsonDict:
        self.validator.require(work_item_type, "Work item type is required", field="type")
        self.validator.require(fields, "Work item fields are required", field="fields")
        payload = CreateWorkItemPayload(type=work_item_type, fields=fields)
        self.validator.validate_work_item_payload(payload)

        return await self._execute(
            "createWorkItem",
            work_item_type,
            lambda provider: provider.create_work_item(payload, True),
            fields=sorted(fields),
        )

    async def get(self, work_item_id: int, fields: Optional[List[str]] = None) -> JsonDict:
        return await self._execute(
            "getWorkItem",
            work_item_id,
            lambda provider: provider.get_work_item(work_item_id, fields),
            fields=fields,
        )

    async def update(self, work_item_id: int, operations: Sequence[PatchOperationLike]) -> JsonDict:
        """Apply JSON Patch operations; plain dicts are accepted and use ``from`` as in the wire format."""
        if not operations:
            raise ValidationException("Update operations are required", field="operations")
        payload = UpdateWorkItemPayload(
            operations=[
                op if isinstance(op, JsonPatchOperation) else JsonPatchOperation.model_validate(op)
                for op in operations
            ]
        )

        return await self._execute(
            "updateWorkItem",
            work_item_id,
            lambda provider: provider.update_work_item(work_item_id, payload, True),
            operations_count=len(payload.operations),
        )

    async def delete(self, work_item_id: int) -> None:
        await self._execute(
            "deleteWorkItem",
            work_item_id,
            lambda provider: provider.delete_work_item(work_item_id),
        )

    async def get_batch(self, ids: Sequence[int], fields: Optional[List[str]] = None) -> List[JsonDict]:
        """
        Fetch many work items in chunks of ``BATCH_SIZE``.

        Chunks are requested one after another, each through the full call
        chain, and the results are concatenated in input order. The first
        failing chunk aborts the batch.
        """
        if not ids:
            return []

        results: List[JsonDict] = []
        for start in range(0, len(ids), BATCH_SIZE):
            chunk = list(ids[start:start + BATCH_SIZE])
            items = await self._execute(
                "getWorkItems",
                "batch",
                lambda provider, chunk=chunk: provider.get_work_items(chunk, fields),
                count=len(chunk),
            )
            results.extend(items)
        return results

    async def add_relation(
        self,
        work_item_id: int,
        target_work_item_id: int,
        relation_type: Union[WorkItemRelationType, str],
        comment: Optional[str] = None,
    ) -> JsonDict:
        try:
            relation = WorkItemRelationType(relation_type)
        except ValueError as e:
            raise ValidationException(
                f"Unknown relation type: {relation_type}", field="relation_type", value=relation_type
            ) from e

        payload = AddWorkItemRelationPayload(
            work_item_id=work_item_id,
            target_work_item_id=target_work_item_id,
            relation_type=relation,
            comment=comment,
        )
        return await self._execute(
            "addWorkItemRelation",
            work_item_id,
            lambda provider: provider.add_work_item_relation(payload),
            target_id=target_work_item_id,
            relation_type=relation.value,
        )
