"""
Record types for the twelve entity collections.

Each collection has an explicit dataclass whose optional fields are nullable.
Documents use camelCase keys (``clientId``, ``periodValue``); the dataclass
fields are their snake_case twins. Keys a record type does not know are kept
in ``extra`` so an export → import round trip loses nothing.

Values are stored as supplied. A malformed amount or date is carried through
unchanged; validation is the store's job at write time.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, Union

# A foreign key before reference remapping: an int, or a foreign-store id string.
Reference = Union[int, str]


def camel_case(name: str) -> str:
    """Convert a snake_case field name to its document key."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass
class Record:
    """Fields shared by every collection's records."""

    COLLECTION: ClassVar[str] = ""
    REFERENCE_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # Document keys written even when null.
    NULLABLE_KEYS: ClassVar[Tuple[str, ...]] = ()

    id: Optional[int] = None
    mongo_id: Optional[str] = None
    created_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def field_keys(cls) -> Dict[str, str]:
        """Map document keys to dataclass field names (``extra`` excluded)."""
        return {camel_case(f.name): f.name for f in fields(cls) if f.name != "extra"}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Record":
        """Build a record from a document, keeping unknown keys in ``extra``."""
        keys = cls.field_keys()
        known: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in doc.items():
            if key in keys:
                known[keys[key]] = value
            else:
                extra[key] = value
        return cls(extra=extra, **known)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a camelCase document, omitting null optional fields."""
        doc: Dict[str, Any] = {}
        for key, name in self.field_keys().items():
            value = getattr(self, name)
            if value is not None or key in self.NULLABLE_KEYS:
                doc[key] = value
        for key, value in self.extra.items():
            doc.setdefault(key, value)
        return doc

    def references(self) -> Dict[str, Optional[Reference]]:
        """Current values of this record's foreign-key fields, by document key."""
        return {key: getattr(self, name) for key, name in self._reference_names().items()}

    def set_reference(self, key: str, value: Optional[Reference]) -> None:
        setattr(self, self._reference_names()[key], value)

    def _reference_names(self) -> Dict[str, str]:
        return {camel_case(name): name for name in self.REFERENCE_FIELDS}


@dataclass
class Client(Record):
    COLLECTION: ClassVar[str] = "clients"

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    payment_model: Optional[str] = None
    fixed_amount: Optional[float] = None
    ad_spend_percentage: Optional[float] = None
    subcontractor_cost: Optional[float] = None
    currency: Optional[str] = None
    services: Optional[List[Any]] = None
    rating: Optional[int] = None
    risk_level: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class IncomeRecord(Record):
    COLLECTION: ClassVar[str] = "income"
    REFERENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("client_id",)

    client_id: Optional[Reference] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    received_date: Optional[str] = None
    is_deposit: Optional[bool] = None
    is_fixed_portion_only: Optional[bool] = None
    tax_category: Optional[str] = None
    is_taxable: Optional[bool] = None
    tax_rate: Optional[float] = None
    net_amount: Optional[float] = None
    fee: Optional[float] = None
    ad_spend: Optional[float] = None
    project_name: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Expense(Record):
    COLLECTION: ClassVar[str] = "expenses"
    REFERENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("client_id", "parent_recurring_id")
    NULLABLE_KEYS: ClassVar[Tuple[str, ...]] = ("parentRecurringId",)

    client_id: Optional[Reference] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    is_recurring: Optional[bool] = None
    parent_recurring_id: Optional[Reference] = None
    tax_category: Optional[str] = None
    is_tax_deductible: Optional[bool] = None
    tax_rate: Optional[float] = None
    notes: Optional[str] = None


@dataclass
class Debt(Record):
    COLLECTION: ClassVar[str] = "debts"

    type: Optional[str] = None
    party_name: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Goal(Record):
    COLLECTION: ClassVar[str] = "goals"

    type: Optional[str] = None
    target_amount: Optional[float] = None
    current_amount: Optional[float] = None
    period: Optional[str] = None
    period_value: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Invoice(Record):
    COLLECTION: ClassVar[str] = "invoices"
    REFERENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("client_id",)

    client_id: Optional[Reference] = None
    invoice_number: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    issue_date: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[Any]] = None
    notes: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class TodoList(Record):
    COLLECTION: ClassVar[str] = "lists"

    name: Optional[str] = None
    color: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Todo(Record):
    COLLECTION: ClassVar[str] = "todos"
    REFERENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("list_id",)

    list_id: Optional[Reference] = None
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    due_date: Optional[str] = None
    completed: Optional[bool] = None
    is_recurring: Optional[bool] = None
    recurrence_pattern: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class Savings(Record):
    COLLECTION: ClassVar[str] = "savings"

    name: Optional[str] = None
    type: Optional[str] = None
    currency: Optional[str] = None
    initial_amount: Optional[float] = None
    current_amount: Optional[float] = None
    target_amount: Optional[float] = None
    target_date: Optional[str] = None
    interest_rate: Optional[float] = None
    maturity_date: Optional[str] = None
    start_date: Optional[str] = None
    quantity: Optional[float] = None
    price_per_unit: Optional[float] = None
    notes: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class SavingsTransaction(Record):
    COLLECTION: ClassVar[str] = "savingsTransactions"
    REFERENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("savings_id",)

    savings_id: Optional[Reference] = None
    type: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    date: Optional[str] = None
    price_per_unit: Optional[float] = None
    quantity: Optional[float] = None
    notes: Optional[str] = None


@dataclass
class OpeningBalance(Record):
    COLLECTION: ClassVar[str] = "openingBalances"

    period_type: Optional[str] = None
    period: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    notes: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class ExpectedIncome(Record):
    COLLECTION: ClassVar[str] = "expectedIncome"
    REFERENCE_FIELDS: ClassVar[Tuple[str, ...]] = ("client_id",)

    client_id: Optional[Reference] = None
    period: Optional[str] = None
    expected_amount: Optional[float] = None
    currency: Optional[str] = None
    notes: Optional[str] = None
    is_paid: Optional[bool] = None
    updated_at: Optional[str] = None


RECORD_TYPES: Dict[str, Type[Record]] = {
    cls.COLLECTION: cls
    for cls in (
        Client,
        IncomeRecord,
        Expense,
        Debt,
        Goal,
        Invoice,
        TodoList,
        Todo,
        Savings,
        SavingsTransaction,
        OpeningBalance,
        ExpectedIncome,
    )
}
