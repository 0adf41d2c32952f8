"""
Document transformation for snapshot import.

Converts one record from a foreign shape (a remote-store document or an
older/partial local export) into the canonical local record type.

Steps, in order:
    1. Identity: ``_id`` becomes the normalized ``id`` and is kept as ``mongoId``;
       otherwise an existing ``id`` is normalized in place
    2. Foreign keys (clientId, listId, savingsId, parentRecurringId) are
       shaped: nested reference objects flattened to their identity string,
       numeric strings coerced to int. Remapping to the ids actually written
       happens later, in the importer, once every collection is loaded
    3. Goal ``periodValue`` backfilled from ``period`` + ``createdAt``
    4. ``periodType`` short forms rewritten to the long form
    5. Foreign-store bookkeeping fields stripped

A malformed field is left as supplied; only a record that is not a mapping at
all is rejected (TypeError), so the importer can report it per record.
"""

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, Mapping, Optional, Type

from finance_tracker.backup.identity import NUMERIC_PATTERN, normalize_id
from finance_tracker.models import RECORD_TYPES, Goal, OpeningBalance, Record
from finance_tracker.utils import parse_timestamp

logger = logging.getLogger(__name__)

FOREIGN_ID_FIELD = "_id"

REFERENCE_KEYS = ("clientId", "listId", "savingsId", "parentRecurringId")

# Identity keys a nested reference object may carry, most specific first.
NESTED_IDENTITY_KEYS = ("_id", "$oid", "id")

# Remote-store bookkeeping with no local meaning.
STRIPPED_FIELDS = ("__v", "userId")

PERIOD_TYPE_LONG_FORMS = {
    "month": "monthly",
    "quarter": "quarterly",
    "year": "yearly",
}


def extract_identity(value: Any) -> Any:
    """
    Unwrap a nested reference object to its identity value.

    ``{"_id": {"$oid": "65a..."}}`` → ``"65a..."``. Values that are not
    mappings, or mappings without an identity key, are returned unchanged.
    """
    seen = 0
    while isinstance(value, Mapping) and seen < 4:
        for key in NESTED_IDENTITY_KEYS:
            if value.get(key) is not None:
                value = value[key]
                break
        else:
            return value
        seen += 1
    return value


def shape_reference(value: Any) -> Any:
    """
    Shape one foreign-key value without resolving it.

    Args:
        value: Raw foreign-key value.

    Returns:
        int for numeric ids, the identity string for nested references,
        otherwise the value as supplied.
    """
    if isinstance(value, Mapping):
        identity = extract_identity(value)
        if isinstance(identity, Mapping):
            return value
        value = identity if isinstance(identity, (int, str)) else str(identity)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        value = str(value)

    if isinstance(value, str) and NUMERIC_PATTERN.match(value.strip()):
        return int(value.strip())
    return value


def derive_period_value(period: Any, created_at: Any) -> str:
    """
    Derive a goal's period value from its period kind and creation time.

    monthly → ``YYYY-MM``; quarterly → ``YYYY-Q{1..4}``; yearly → ``YYYY``.
    Unknown kinds use the monthly format. A missing or unparseable creation
    time means "now".

    Examples:
        >>> derive_period_value("quarterly", "2024-08-15T00:00:00Z")
        '2024-Q3'
        >>> derive_period_value("yearly", "2023-01-02T00:00:00Z")
        '2023'
    """
    moment = parse_timestamp(created_at) or datetime.now(tz=timezone.utc)
    if period == "quarterly":
        return f"{moment.year}-Q{(moment.month - 1) // 3 + 1}"
    if period == "yearly":
        return f"{moment.year}"
    return f"{moment.year}-{moment.month:02d}"


def normalize_period_type(value: Any) -> Any:
    """Rewrite a short period type (``month``) to its long form (``monthly``)."""
    if not isinstance(value, str):
        return value
    return PERIOD_TYPE_LONG_FORMS.get(value.strip().lower(), value)


def shape_document(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Apply the collection-independent transformation steps to one document.

    Args:
        raw: Document as found in the snapshot. Not modified.

    Returns:
        A new document with identity, foreign keys, periodType and
        bookkeeping fields normalized.

    Raises:
        TypeError: If raw is not a mapping.
    """
    if not isinstance(raw, Mapping):
        raise TypeError(f"Record must be an object, got {type(raw).__name__}")

    doc = dict(raw)

    # Step 1: identity
    foreign_id = doc.pop(FOREIGN_ID_FIELD, None)
    if foreign_id is not None:
        identity = extract_identity(foreign_id)
        doc["id"] = normalize_id(identity)
        doc["mongoId"] = identity if isinstance(identity, str) else str(identity)
    elif "id" in doc:
        doc["id"] = normalize_id(extract_identity(doc["id"]))

    # Step 2: foreign-key shape
    for key in REFERENCE_KEYS:
        if key in doc and doc[key] is not None:
            doc[key] = shape_reference(doc[key])

    # Step 4: periodType long form
    if "periodType" in doc:
        doc["periodType"] = normalize_period_type(doc["periodType"])

    # Step 5: bookkeeping
    for key in STRIPPED_FIELDS:
        doc.pop(key, None)

    return doc


def _convert(record_type: Type[Record], raw: Mapping[str, Any]) -> Record:
    return record_type.from_document(shape_document(raw))


def transform_goal(raw: Mapping[str, Any]) -> Goal:
    """Convert a goal document, backfilling ``periodValue`` when absent or blank."""
    goal = _convert(Goal, raw)
    assert isinstance(goal, Goal)
    current = goal.period_value
    if current is None or (isinstance(current, str) and not current.strip()):
        goal.period_value = derive_period_value(goal.period, goal.created_at)
        logger.debug(f"Backfilled periodValue={goal.period_value} for goal {goal.id}")
    elif not isinstance(current, str):
        goal.period_value = str(current)
    return goal


def transform_opening_balance(raw: Mapping[str, Any]) -> OpeningBalance:
    """Convert an opening balance document (periodType already long form)."""
    balance = _convert(OpeningBalance, raw)
    assert isinstance(balance, OpeningBalance)
    return balance


TRANSFORMERS: Dict[str, Callable[[Mapping[str, Any]], Record]] = {
    collection: partial(_convert, record_type) for collection, record_type in RECORD_TYPES.items()
}
TRANSFORMERS["goals"] = transform_goal
TRANSFORMERS["openingBalances"] = transform_opening_balance


def transform(collection: str, raw: Mapping[str, Any]) -> Record:
    """
    Transform one raw document into its collection's canonical record type.

    Args:
        collection: Snapshot collection name (e.g. "expenses").
        raw: Raw document.

    Returns:
        Typed record.

    Raises:
        ValueError: If the collection is unknown.
        TypeError: If raw is not a mapping.
    """
    try:
        transformer = TRANSFORMERS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection!r}") from None
    return transformer(raw)


def transform_document(collection: str, raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Transform one raw document and return it in canonical document form."""
    return transform(collection, raw).to_document()
