"""Add/edit form state for transactions.

A form is either creating a new transaction or editing an existing one;
the mode is carried explicitly instead of being inferred from the fields.
"""
from __future__ import annotations
import math
from dataclasses import dataclass, replace
from datetime import date
from typing import Literal, Optional, Union

from spendtracker.exceptions import ValidationError
from spendtracker.logic import add_transaction, update_transaction
from spendtracker.models import Transaction, TransactionType, default_category_for

DEFAULT_RECEIPT_MAX_BYTES = 2 * 1024 * 1024


@dataclass(frozen=True)
class CreateMode:
    mode: Literal["create"] = "create"


@dataclass(frozen=True)
class EditMode:
    id: str
    mode: Literal["edit"] = "edit"


FormState = Union[CreateMode, EditMode]


@dataclass(frozen=True)
class TransactionForm:
    state: FormState
    t_type: TransactionType
    category: str
    amount: str
    t_date: str
    desc: str = ""
    receipt: Optional[str] = None

    @classmethod
    def blank(cls, today: Optional[date] = None) -> TransactionForm:
        return cls(
            state=CreateMode(),
            t_type="expense",
            category=default_category_for("expense"),
            amount="",
            t_date=(today or date.today()).isoformat(),
        )

    @classmethod
    def for_transaction(cls, tx: Transaction) -> TransactionForm:
        raw_date = tx.t_date.isoformat() if isinstance(tx.t_date, date) else (tx.t_date or "")
        return cls(
            state=EditMode(tx.id),
            t_type=tx.t_type,
            category=tx.category,
            amount=str(tx.amount),
            t_date=raw_date.split("T")[0],
            desc=tx.desc,
            receipt=tx.receipt,
        )

    @property
    def is_edit(self) -> bool:
        return isinstance(self.state, EditMode)

    def with_type(self, t_type: TransactionType) -> TransactionForm:
        """Switch type; the category resets to that type's default."""
        return replace(self, t_type=t_type, category=default_category_for(t_type))

    def with_fields(self, **changes) -> TransactionForm:
        if "t_type" in changes and "category" not in changes:
            changes["category"] = default_category_for(changes["t_type"])
        return replace(self, **changes)

    def attach_receipt(self, ref: str, size: int, max_bytes: int = DEFAULT_RECEIPT_MAX_BYTES) -> TransactionForm:
        if size > max_bytes:
            raise ValidationError(f"File too large! Max {max_bytes // (1024 * 1024)}MB.")
        return replace(self, receipt=ref)

    def remove_receipt(self) -> TransactionForm:
        return replace(self, receipt=None)

    def parsed_amount(self) -> float:
        try:
            amount = float(self.amount)
        except (TypeError, ValueError):
            raise ValidationError("Please enter a valid amount")
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError("Please enter a valid amount")
        return amount

    def submit(self) -> Transaction:
        amount = self.parsed_amount()
        if isinstance(self.state, EditMode):
            return update_transaction(
                self.state.id,
                amount=amount,
                t_type=self.t_type,
                t_date=self.t_date,
                category=self.category,
                desc=self.desc,
                receipt=self.receipt or "",
            )
        return add_transaction(
            amount=amount,
            t_type=self.t_type,
            t_date=self.t_date,
            category=self.category,
            desc=self.desc,
            receipt=self.receipt,
        )
