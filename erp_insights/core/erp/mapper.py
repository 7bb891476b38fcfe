"""
MAPPER MODULE - Turn the ERP's column-indexed payloads into named records

Purpose:
    The ERP never sends {"NOME": "Acme"}. It sends a metadata block with the
    field names in positional order, and entities whose values live in
    positional slots (f0, f1, ...), each slot wrapped as {"$": value}.

Data Flow:
    raw response → extract_entities() → map_entities() → [MappedRecord, ...]

Rules:
    - Pure functions, no I/O, never raise.
    - Absent or malformed input maps to an empty list.
    - Absent and NULL slots are omitted from the record, never filled with None.
"""

from typing import Any, Dict, List, Optional

# One decoded ERP row: field name -> value
MappedRecord = Dict[str, Any]


def read_field_names(entities: Dict[str, Any]) -> List[Optional[str]]:
    """
    Read field names from the metadata block, keeping positional order.

    A name that is missing or not a string keeps its slot as None so the
    indexes of the following fields do not shift.

    Example:
        {"metadata": {"fields": {"field": [{"name": "CODLEAD"}, {"name": "NOME"}]}}}
        -> ["CODLEAD", "NOME"]
    """
    metadata = entities.get("metadata")
    if not isinstance(metadata, dict):
        return []

    fields = metadata.get("fields")
    if not isinstance(fields, dict):
        return []

    field_list = fields.get("field")
    # A single field comes as an object instead of a list
    if isinstance(field_list, dict):
        field_list = [field_list]
    if not isinstance(field_list, list):
        return []

    names: List[Optional[str]] = []
    for field in field_list:
        name = field.get("name") if isinstance(field, dict) else None
        names.append(name if isinstance(name, str) and name else None)
    return names


def _has_value(slot: Any) -> bool:
    # NULL columns arrive as an empty object or as null
    if isinstance(slot, dict):
        return "$" in slot
    return slot is not None


def _unwrap(slot: Any) -> Any:
    if isinstance(slot, dict):
        return slot["$"]
    return slot


def map_entities(entities: Any) -> List[MappedRecord]:
    """
    Map a raw entity collection into a list of named records.

    Args:
        entities: The `responseBody.entities` block of an ERP response

    Returns:
        One record per entity, in input order. Field order follows the
        metadata order.

    Example:
        Input:
            {
                "metadata": {"fields": {"field": [{"name": "NUNOTA"}, {"name": "VLRNOTA"}]}},
                "entity": {"f0": {"$": "10"}, "f1": {"$": "99.90"}}
            }

        Output:
            [{"NUNOTA": "10", "VLRNOTA": "99.90"}]
    """
    if not isinstance(entities, dict):
        return []

    raw_entities = entities.get("entity")
    if raw_entities is None:
        # No "entity" key means zero rows
        return []
    if isinstance(raw_entities, dict):
        raw_entities = [raw_entities]
    if not isinstance(raw_entities, list):
        return []

    field_names = read_field_names(entities)
    if not field_names:
        return []

    records: List[MappedRecord] = []
    for raw_entity in raw_entities:
        if not isinstance(raw_entity, dict):
            continue

        record: MappedRecord = {}
        for index, field_name in enumerate(field_names):
            slot = raw_entity.get(f"f{index}")
            if field_name is None or not _has_value(slot):
                continue
            record[field_name] = _unwrap(slot)

        records.append(record)

    return records


def extract_entities(response: Any) -> Optional[Dict[str, Any]]:
    """Dig `responseBody.entities` out of a full ERP response (None if absent)."""
    if not isinstance(response, dict):
        return None

    body = response.get("responseBody")
    if not isinstance(body, dict):
        return None

    entities = body.get("entities")
    return entities if isinstance(entities, dict) else None


def map_response(response: Any) -> List[MappedRecord]:
    """Shortcut: full ERP response -> list of named records."""
    return map_entities(extract_entities(response))


def has_more_results(response: Any) -> bool:
    """True when a paged ERP response says another page follows."""
    entities = extract_entities(response)
    if entities is None:
        return False
    return str(entities.get("hasMoreResult", "")).lower() == "true"
