"""Declarative entity mapping.

Each provider describes its entity types with an EntityFieldConfig: which
raw field feeds which canonical field and how status is derived. map_entity
turns one raw record into a CanonicalEntityRecord using that description.
Mapping is pure; the same raw input always yields the same record and hash.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.errors import EntityMappingError
from core.models.entity import CanonicalEntityRecord, EntityType, ProviderName
from core.utils.hashing import content_hash


DEFAULT_CURRENCY = "SEK"


@dataclass(frozen=True)
class StatusRule:
    """Yields status when predicate(raw) is true. Rules are tried in order."""
    status: str
    predicate: Callable[[Dict[str, Any]], bool]


@dataclass(frozen=True)
class EntityFieldConfig:
    """How one provider exposes one entity type."""
    endpoint: str
    id_field: str
    list_key: Optional[str] = None
    incremental: bool = False
    modified_field: Optional[str] = None
    date_field: Optional[str] = None
    due_date_field: Optional[str] = None
    counterparty_number_field: Optional[str] = None
    counterparty_name_field: Optional[str] = None
    amount_field: Optional[str] = None
    currency_field: Optional[str] = None
    status_field: Optional[str] = None
    # Raw status value -> canonical status; unknown values become "status_<value>"
    status_values: Optional[Dict[Any, str]] = None
    status_rules: Tuple[StatusRule, ...] = ()
    singleton: bool = False


# =============================================================================
# Predicate helpers
# =============================================================================

def flag(name: str) -> Callable[[Dict[str, Any]], bool]:
    """Predicate: raw[name] is exactly True."""
    return lambda raw: raw.get(name) is True


def is_zero(name: str) -> Callable[[Dict[str, Any]], bool]:
    """Predicate: raw[name] is numerically zero."""
    def _check(raw: Dict[str, Any]) -> bool:
        value = to_decimal(raw.get(name))
        return value is not None and value == 0
    return _check


def is_positive(name: str) -> Callable[[Dict[str, Any]], bool]:
    def _check(raw: Dict[str, Any]) -> bool:
        value = to_decimal(raw.get(name))
        return value is not None and value > 0
    return _check


def all_of(*predicates: Callable[[Dict[str, Any]], bool]) -> Callable[[Dict[str, Any]], bool]:
    return lambda raw: all(p(raw) for p in predicates)


def always(raw: Dict[str, Any]) -> bool:
    return True


# =============================================================================
# Field extraction
# =============================================================================

def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return None


def _text(raw: Dict[str, Any], field_name: Optional[str]) -> Optional[str]:
    if not field_name:
        return None
    value = raw.get(field_name)
    if value is None or value == "":
        return None
    return str(value)


def _amount(raw: Dict[str, Any], config: EntityFieldConfig, external_id: str) -> Optional[Decimal]:
    if not config.amount_field:
        return None
    value = raw.get(config.amount_field)
    if value is None or value == "":
        return None
    amount = to_decimal(value)
    if amount is None or not amount.is_finite():
        raise EntityMappingError(
            f"Record {external_id}: cannot parse {config.amount_field}={value!r} as an amount",
            external_id=external_id,
        )
    return amount


def extract_fiscal_year(date_str: Optional[str]) -> Optional[int]:
    """Year component of a YYYY-MM-DD date, or None."""
    if not date_str or len(date_str) < 4 or not date_str[:4].isdigit():
        return None
    return int(date_str[:4])


def derive_status(raw: Dict[str, Any], config: EntityFieldConfig) -> Optional[str]:
    """First matching rule wins; otherwise the raw status field, if configured."""
    for rule in config.status_rules:
        if rule.predicate(raw):
            return rule.status

    if config.status_field:
        value = raw.get(config.status_field)
        if value is None:
            return None
        if config.status_values is not None:
            return config.status_values.get(value, f"status_{value}")
        return str(value)

    return None


# =============================================================================
# Mapping
# =============================================================================

def map_entity(
    raw: Dict[str, Any],
    entity_type: EntityType,
    provider: ProviderName,
    config: EntityFieldConfig,
) -> CanonicalEntityRecord:
    """Map a raw provider record to a CanonicalEntityRecord.

    Raises:
        EntityMappingError: If the record is not an object, has no id, or
            carries an amount that cannot be parsed
    """
    if not isinstance(raw, dict):
        raise EntityMappingError(
            f"Expected a {provider.value} {entity_type.value} object, got {type(raw).__name__}"
        )

    raw_id = raw.get(config.id_field)
    if raw_id is None or raw_id == "":
        raise EntityMappingError(
            f"{provider.value} {entity_type.value} record is missing id field {config.id_field!r}"
        )
    external_id = str(raw_id)

    document_date = _text(raw, config.date_field)

    return CanonicalEntityRecord(
        external_id=external_id,
        entity_type=entity_type,
        provider=provider,
        fiscal_year=extract_fiscal_year(document_date),
        document_date=document_date,
        due_date=_text(raw, config.due_date_field),
        counterparty_number=_text(raw, config.counterparty_number_field),
        counterparty_name=_text(raw, config.counterparty_name_field),
        amount=_amount(raw, config, external_id),
        currency=_text(raw, config.currency_field) or DEFAULT_CURRENCY,
        status=derive_status(raw, config),
        raw_data=raw,
        last_modified=_text(raw, config.modified_field),
        content_hash=content_hash(raw),
    )


def map_entities(
    items: List[Any],
    entity_type: EntityType,
    provider: ProviderName,
    config: EntityFieldConfig,
) -> List[CanonicalEntityRecord]:
    """Map a page of raw records, tagging failures with the record index."""
    records = []
    for index, raw in enumerate(items):
        try:
            records.append(map_entity(raw, entity_type, provider, config))
        except EntityMappingError as e:
            raise EntityMappingError(f"Record #{index}: {e}", external_id=e.external_id) from e
    return records
