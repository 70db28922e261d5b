from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, List, Literal, Union


TransactionType = Literal["income", "expense"]
TRANSACTION_TYPES = ("income", "expense")

EXPENSE_CATEGORIES = [
    "Food",
    "Transport",
    "Shopping",
    "Utilities",
    "Rent",
    "Health",
    "Entertainment",
    "Education",
    "Other",
]

INCOME_CATEGORIES = [
    "Salary",
    "Bonus",
    "Gifts",
    "Investment",
    "Freelance",
    "Other",
]


def new_transaction_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Transaction:
    amount: float
    t_type: TransactionType
    # date for local entries, raw string for imported backend records
    t_date: Union[date, str, None]
    category: str = ""
    desc: str = ""
    receipt: Optional[str] = None
    id: str = field(default_factory=new_transaction_id)


def categories_for(t_type: TransactionType) -> List[str]:
    if t_type == "income":
        return INCOME_CATEGORIES
    if t_type == "expense":
        return EXPENSE_CATEGORIES
    raise ValueError(f"Unknown transaction type: {t_type}")


def default_category_for(t_type: TransactionType) -> str:
    """First recommended category for a transaction type."""
    return categories_for(t_type)[0]


transactions: list[Transaction] = []
