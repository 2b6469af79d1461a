"""Shape checks performed before any network call."""

from numbers import Number
from typing import Any, Dict, Iterable, Mapping, Optional

from ado_gateway.exceptions import ValidationException
from ado_gateway.schemas import CreateWorkItemPayload

MAX_TITLE_LENGTH = 255

NUMERIC_FIELDS = (
    "Microsoft.VSTS.Scheduling.StoryPoints",
    "Microsoft.VSTS.Scheduling.Effort",
    "Microsoft.VSTS.Scheduling.RemainingWork",
    "Microsoft.VSTS.Common.Priority",
)

PRIORITY_FIELD = "Microsoft.VSTS.Common.Priority"


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


class ValidationRules:
    """Minimal payload validation for the facades."""

    def validate_work_item_payload(self, payload: CreateWorkItemPayload) -> None:
        if not payload.type:
            raise ValidationException("Work item type is required", field="type")

        if not payload.fields:
            raise ValidationException("Work item fields are required", field="fields")

        title = payload.fields.get("System.Title")
        if not isinstance(title, str):
            raise ValidationException("System.Title is required and must be a string", field="System.Title", value=title)
        if not title:
            raise ValidationException("System.Title cannot be empty", field="System.Title")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationException(
                f"System.Title cannot exceed {MAX_TITLE_LENGTH} characters",
                field="System.Title",
                value=len(title),
            )

        self.validate_field_types(payload.fields)

    def validate_field_types(self, fields: Mapping[str, Any]) -> None:
        for name in NUMERIC_FIELDS:
            value = fields.get(name)
            if value is not None and not _is_number(value):
                raise ValidationException(f"{name} must be a number", field=name, value=value)

        priority = fields.get(PRIORITY_FIELD)
        if priority is not None and not 1 <= priority <= 4:
            raise ValidationException("Priority must be between 1 and 4", field=PRIORITY_FIELD, value=priority)

    def validate_wiql(self, query: Optional[str]) -> None:
        if not query or not query.strip():
            raise ValidationException("WIQL query cannot be empty", field="query")
        upper = query.upper()
        if "SELECT" not in upper or "FROM" not in upper:
            raise ValidationException("WIQL query must contain SELECT and FROM clauses", field="query")

    def require(self, value: Any, message: str, field: Optional[str] = None) -> None:
        """Reject missing, blank or empty values."""
        if value is None or (isinstance(value, (str, bytes)) and not value.strip()):
            raise ValidationException(message, field=field)
        if isinstance(value, (list, tuple, dict, set)) and not value:
            raise ValidationException(message, field=field)

    def require_keys(self, data: Optional[Mapping[str, Any]], keys: Iterable[str], message: str) -> Dict[str, Any]:
        if not data:
            raise ValidationException(message)
        missing = [key for key in keys if not data.get(key)]
        if missing:
            raise ValidationException(message, field=missing[0])
        return dict(data)
