"""Identifier extraction from decoded documents."""

import logging

from cache_sync.schemas.fields import DocumentFields
from cache_sync.schemas.results import Identifiers
from core.errors import ValidationError

logger = logging.getLogger(__name__)

PARENT_ID_FIELD = "parentId"
CHILD_ID_FIELD = "childId"


class IdentifierValidator:
    """Extracts ``childId`` (required) and ``parentId`` (optional) from a document."""

    def validate(self, fields: DocumentFields) -> Identifiers:
        child_id = (fields.get_string(CHILD_ID_FIELD) or "").strip()
        if not child_id:
            raise ValidationError(
                "missing childId",
                context={"field_count": len(fields)},
            )

        parent_id = (fields.get_string(PARENT_ID_FIELD) or "").strip() or None
        if parent_id is None:
            logger.info(
                "Document has no parentId; enrichment runs in reduced mode",
                extra={"child_id": child_id},
            )

        return Identifiers(child_id=child_id, parent_id=parent_id)


__all__ = ["IdentifierValidator", "PARENT_ID_FIELD", "CHILD_ID_FIELD"]
