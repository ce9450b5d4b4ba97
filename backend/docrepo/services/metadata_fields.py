"""
Metadata Field Registry

Keeps the configured metadata fields and the terms backing taxonomy fields.
This is the settings surface administrators use to add, edit and delete
fields; the in-memory API adapter uses it as its source of truth.
"""
import re
from typing import Any, Callable, Dict, List, Optional

from ..api.exceptions import FieldValidationError
from ..domain.entities import MetadataField, TaxonomyOption
from ..domain.value_objects import FieldType, MetadataValue, RESERVED_METADATA_KEYS
from ..core.logging_config import get_logger

logger = get_logger(__name__)

VALID_FIELD_TYPES = tuple(t.value for t in FieldType)


def sanitize_title(value: str) -> str:
    """Slug used for taxonomy names: lowercase, dashes, no punctuation."""
    slug = re.sub(r"[^a-z0-9_\-]+", "-", value.strip().lower())
    return re.sub(r"-{2,}", "-", slug).strip("-")


class MetadataFieldRegistry:
    """
    Stores metadata field definitions and taxonomy terms.

    Field definitions arrive as plain dicts (id, label, type, order, options)
    because that is what the settings form submits; they are validated before
    anything is stored.
    """

    def __init__(self, on_field_deleted: Optional[Callable[[str], None]] = None):
        """
        Initialize an empty registry.

        Args:
            on_field_deleted: Called with the field id after a field is removed,
                so documents can drop their values for it
        """
        self._raw_fields: List[Dict[str, Any]] = []
        # taxonomy name -> {term name -> term id}
        self._terms: Dict[str, Dict[str, int]] = {}
        self._next_term_id = 1
        self._on_field_deleted = on_field_deleted

    # Validation

    def validate_field(self, field: Dict[str, Any], skip_strict_validation: bool = False) -> List[str]:
        """
        Validate a single field definition.

        Args:
            field: Raw field definition
            skip_strict_validation: Allow taxonomy fields without terms (used while deleting)

        Returns:
            List of error messages, empty when valid
        """
        errors = []

        if not field.get("id"):
            errors.append("Field ID is required")
        elif str(field["id"]) in RESERVED_METADATA_KEYS:
            errors.append(f"Field ID '{field['id']}' is reserved")
        if not field.get("label"):
            errors.append("Field label is required")
        if not field.get("type"):
            errors.append("Field type is required")
        elif field["type"] not in VALID_FIELD_TYPES:
            errors.append("Invalid field type")

        if field.get("type") == FieldType.TAXONOMY.value:
            options = [o for o in self._option_names(field) if o.strip()]
            if not skip_strict_validation and not options:
                errors.append("Taxonomy fields require at least one term")

        return errors

    @staticmethod
    def _option_names(field: Dict[str, Any]) -> List[str]:
        options = field.get("options") or []
        if not isinstance(options, (list, tuple)):
            return []
        names = []
        for option in options:
            # Options may already be {id, name} objects from a previous read
            if isinstance(option, dict):
                names.append(str(option.get("name") or option.get("label") or ""))
            elif isinstance(option, TaxonomyOption):
                names.append(option.name)
            else:
                names.append(str(option))
        return names

    # Persistence

    def save_fields(self, fields: List[Dict[str, Any]], skip_strict_validation: bool = False) -> List[MetadataField]:
        """
        Validate and store the complete list of field definitions.

        Raises:
            FieldValidationError: If any field is invalid (errors keyed by index)
        """
        all_errors = {}
        for index, field in enumerate(fields):
            errors = self.validate_field(field, skip_strict_validation)
            if errors:
                all_errors[index] = errors

        ids = [f.get("id") for f in fields]
        for index, field_id in enumerate(ids):
            if field_id and ids.index(field_id) != index:
                all_errors.setdefault(index, []).append(f"Duplicate field ID '{field_id}'")

        if all_errors:
            raise FieldValidationError(all_errors)

        cleaned = []
        for field in fields:
            cleaned.append({
                "id": str(field["id"]),
                "label": str(field["label"]),
                "type": field["type"],
                "order": int(field.get("order") or 0),
                "options": [name.strip() for name in self._option_names(field) if name.strip()],
            })
        cleaned.sort(key=lambda f: f["order"])
        self._raw_fields = cleaned

        for field in cleaned:
            if field["type"] == FieldType.TAXONOMY.value:
                self._create_terms(field["id"], field["options"])

        logger.info(f"Saved {len(cleaned)} metadata fields")
        return self.fields()

    def add_field(self, field: Dict[str, Any]) -> bool:
        """Add a new field; duplicate ids and invalid definitions are rejected."""
        if not all(key in field for key in ("id", "label", "type")):
            return False
        if any(existing["id"] == field["id"] for existing in self._raw_fields):
            logger.warning(f"Metadata field '{field['id']}' already exists")
            return False
        try:
            self.save_fields(self._raw_fields + [field])
        except FieldValidationError as e:
            logger.warning(f"Rejected metadata field '{field.get('id')}': {e.errors}")
            return False
        return True

    def update_field(self, field_id: str, field: Dict[str, Any]) -> bool:
        """Replace a field definition; the id itself cannot change."""
        if field.get("id", field_id) != field_id:
            logger.warning(f"Refusing to rename metadata field '{field_id}'")
            return False
        index = self._index_of(field_id)
        if index is None:
            return False

        updated = list(self._raw_fields)
        updated[index] = {**field, "id": field_id}
        try:
            self.save_fields(updated)
        except FieldValidationError as e:
            logger.warning(f"Rejected update of metadata field '{field_id}': {e.errors}")
            return False

        if field.get("type") == FieldType.TAXONOMY.value:
            self._prune_terms(field_id, self._option_names(field))
        return True

    def delete_field(self, field_id: str) -> bool:
        """
        Remove a field. Taxonomy fields also lose their terms and every
        document's assignment to them.
        """
        index = self._index_of(field_id)
        if index is None:
            return False

        removed = self._raw_fields[index]
        remaining = self._raw_fields[:index] + self._raw_fields[index + 1:]

        if removed["type"] == FieldType.TAXONOMY.value:
            self._terms.pop(self.taxonomy_name_for_field(field_id), None)

        self.save_fields(remaining, skip_strict_validation=True)

        if self._on_field_deleted:
            self._on_field_deleted(field_id)
        logger.info(f"Deleted metadata field '{field_id}'")
        return True

    # Reads

    def fields(self) -> List[MetadataField]:
        """Configured fields ordered by position, taxonomy options carrying term ids."""
        result = []
        for raw in self._raw_fields:
            options = ()
            if raw["type"] == FieldType.TAXONOMY.value:
                terms = self._terms.get(self.taxonomy_name_for_field(raw["id"]), {})
                options = tuple(
                    TaxonomyOption(name=name, term_id=terms[name])
                    for name in raw["options"] if name in terms
                )
            result.append(MetadataField(
                id=raw["id"],
                label=raw["label"],
                type=FieldType(raw["type"]),
                order=raw["order"],
                options=options,
            ))
        return result

    def get_field(self, field_id: str) -> Optional[MetadataField]:
        for field in self.fields():
            if field.id == field_id:
                return field
        return None

    def taxonomy_name_for_field(self, field_id: str) -> str:
        return "doc_" + sanitize_title(field_id)

    def resolve_terms(self, field_id: str, value: MetadataValue) -> MetadataValue:
        """
        Canonicalise taxonomy values to configured term names.

        Unknown names are dropped (matching is case-insensitive). One term
        yields a string, several yield a list, none yields "".
        """
        terms = self._terms.get(self.taxonomy_name_for_field(field_id), {})
        by_lower = {name.lower(): name for name in terms}
        names = value if isinstance(value, list) else [value]
        resolved = []
        for name in names:
            canonical = by_lower.get(str(name).strip().lower())
            if canonical and canonical not in resolved:
                resolved.append(canonical)
            elif name and not canonical:
                logger.debug(f"Ignoring unknown term {name!r} for field '{field_id}'")
        if not resolved:
            return ""
        return resolved[0] if len(resolved) == 1 else resolved

    # Internals

    def _index_of(self, field_id: str) -> Optional[int]:
        for index, raw in enumerate(self._raw_fields):
            if raw["id"] == field_id:
                return index
        return None

    def _create_terms(self, field_id: str, names: List[str]):
        terms = self._terms.setdefault(self.taxonomy_name_for_field(field_id), {})
        for name in names:
            if name not in terms:
                terms[name] = self._next_term_id
                self._next_term_id += 1

    def _prune_terms(self, field_id: str, keep: List[str]):
        terms = self._terms.get(self.taxonomy_name_for_field(field_id), {})
        for name in list(terms):
            if name not in keep:
                del terms[name]
