"""Request payloads accepted by the gateway.

Responses from Azure DevOps are passed through as plain JSON dictionaries;
only the inputs that the gateway itself inspects or rewrites are modelled.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


MULTILINE_MARKDOWN_FIELDS = (
    "System.Description",
    "Microsoft.VSTS.Common.AcceptanceCriteria",
    "Microsoft.VSTS.TCM.ReproSteps",
)


class JsonPatchOperation(BaseModel):
    """One JSON Patch operation as understood by the work item endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    op: str
    path: str
    value: Any = None
    from_: Optional[str] = Field(default=None, alias="from")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CreateWorkItemPayload(BaseModel):
    type: str
    fields: Dict[str, Any]


class UpdateWorkItemPayload(BaseModel):
    operations: List[JsonPatchOperation]


class WorkItemRelationType(str, Enum):
    PARENT = "parent"
    RELATED = "related"
    PREDECESSOR = "predecessor"
    SUCCESSOR = "successor"

    @property
    def link_type(self) -> str:
        return RELATION_LINK_TYPES[self]


RELATION_LINK_TYPES = {
    WorkItemRelationType.PARENT: "System.LinkTypes.Hierarchy-Reverse",
    WorkItemRelationType.RELATED: "System.LinkTypes.Related",
    WorkItemRelationType.PREDECESSOR: "System.LinkTypes.Dependency-Reverse",
    WorkItemRelationType.SUCCESSOR: "System.LinkTypes.Dependency-Forward",
}


class AddWorkItemRelationPayload(BaseModel):
    work_item_id: int
    target_work_item_id: int
    relation_type: WorkItemRelationType
    comment: Optional[str] = None


class WiqlQuery(BaseModel):
    query: str
    top: Optional[int] = None
    time_precision: Optional[bool] = None


def markdown_format_operations_for_create(fields: Dict[str, Any]) -> List[JsonPatchOperation]:
    """Format markers for every multiline field set to a truthy value."""
    return [
        JsonPatchOperation(op="add", path=f"/multilineFieldsFormat/{name}", value="markdown")
        for name in MULTILINE_MARKDOWN_FIELDS
        if fields.get(name)
    ]


def markdown_format_operations_for_update(operations: List[JsonPatchOperation]) -> List[JsonPatchOperation]:
    """Format markers for every multiline field an ``add`` operation writes."""
    touched = {operation.path for operation in operations if operation.op == "add"}
    return [
        JsonPatchOperation(op="add", path=f"/multilineFieldsFormat/{name}", value="markdown")
        for name in MULTILINE_MARKDOWN_FIELDS
        if f"/fields/{name}" in touched
    ]


def build_create_document(payload: CreateWorkItemPayload, use_markdown: bool = True) -> List[JsonPatchOperation]:
    document = [
        JsonPatchOperation(op="add", path=f"/fields/{name}", value=value)
        for name, value in payload.fields.items()
    ]
    if use_markdown:
        document.extend(markdown_format_operations_for_create(payload.fields))
    return document


def build_update_document(payload: UpdateWorkItemPayload, use_markdown: bool = True) -> List[JsonPatchOperation]:
    document = list(payload.operations)
    if use_markdown:
        document.extend(markdown_format_operations_for_update(payload.operations))
    return document


def build_relation_operation(payload: AddWorkItemRelationPayload, project_api_url: str) -> JsonPatchOperation:
    value: Dict[str, Any] = {
        "rel": payload.relation_type.link_type,
        "url": f"{project_api_url}/wit/workitems/{payload.target_work_item_id}",
    }
    if payload.comment:
        value["attributes"] = {"comment": payload.comment}
    return JsonPatchOperation(op="add", path="/relations/-", value=value)
