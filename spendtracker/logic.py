import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Dict, List

from spendtracker.exceptions import ValidationError, NotFoundError
from spendtracker.logger import get_logger
from spendtracker.models import (
    TransactionType, Transaction, TRANSACTION_TYPES, default_category_for, transactions
)
from spendtracker.reports import parse_tx_date

logger = get_logger(__name__)


@dataclass
class Overview:
    total_income: float
    total_expense: float
    net_savings: float
    # percentage of total flow, None unless both totals are non-zero
    income_share: Optional[float]
    expense_share: Optional[float]
    expense_by_category: Dict[str, float] = field(default_factory=dict)
    recent: List[Transaction] = field(default_factory=list)


def _validate(amount: float, t_type: str, t_date) -> date:
    if t_type not in TRANSACTION_TYPES:
        raise ValidationError("Type must be 'income' or 'expense'")
    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Please enter a valid amount")
    parsed = parse_tx_date(t_date)
    if parsed is None:
        raise ValidationError(f"Invalid date: {t_date!r} (expected YYYY-MM-DD)")
    return parsed


def add_transaction(
        amount: float,
        t_type: TransactionType,
        t_date: date,
        category: Optional[str] = None,
        desc: str = "",
        receipt: Optional[str] = None,
) -> Transaction:
    parsed = _validate(amount, t_type, t_date)

    transaction = Transaction(
        amount=float(amount),
        t_type=t_type,
        t_date=parsed,
        category=category or default_category_for(t_type),
        desc=desc,
        receipt=receipt
    )
    transactions.append(transaction)
    logger.info(f"Added {t_type} {transaction.id} of {transaction.amount:.2f}")
    return transaction


def find_transaction(transaction_id: str) -> Transaction:
    for t in transactions:
        if t.id == transaction_id:
            return t
    raise NotFoundError(f"Transaction not found: {transaction_id}")


def update_transaction(
        transaction_id: str,
        amount: Optional[float] = None,
        t_type: Optional[TransactionType] = None,
        t_date: Optional[date] = None,
        category: Optional[str] = None,
        desc: Optional[str] = None,
        receipt: Optional[str] = None,
) -> Transaction:
    t = find_transaction(transaction_id)

    new_type = t_type or t.t_type
    new_amount = t.amount if amount is None else amount
    new_date = _validate(new_amount, new_type, t.t_date if t_date is None else t_date)

    if category is None and new_type != t.t_type:
        category = default_category_for(new_type)

    t.amount = float(new_amount)
    t.t_type = new_type
    t.t_date = new_date
    if category is not None:
        t.category = category
    if desc is not None:
        t.desc = desc
    if receipt is not None:
        t.receipt = receipt or None

    logger.info(f"Updated transaction {t.id}")
    return t


def delete_transaction(transaction_id: str) -> bool:
    for i, t in enumerate(transactions):
        if t.id == transaction_id:
            transactions.pop(i)
            logger.info(f"Deleted transaction {transaction_id}")
            return True
    return False


def filter_transactions(
        txs: List[Transaction],
        search: str = "",
        t_type: str = "all",
        category: str = "all",
        start: Optional[date] = None,
        end: Optional[date] = None,
) -> List[Transaction]:
    search_lower = search.lower()
    result = []
    for t in txs:
        if search_lower and not (search_lower in t.category.lower() or
                                 (t.desc and search_lower in t.desc.lower())):
            continue
        if t_type != "all" and t.t_type != t_type:
            continue
        if category != "all" and t.category != category:
            continue
        if start is not None or end is not None:
            parsed = parse_tx_date(t.t_date)
            if parsed is None:
                continue
            if (start is not None and parsed < start) or (end is not None and parsed > end):
                continue
        result.append(t)
    return result


def category_options(txs: List[Transaction]) -> List[str]:
    return ["all"] + sorted({t.category for t in txs if t.category})


def summarize(txs: List[Transaction], recent_limit: int = 5) -> Overview:
    total_income = sum(t.amount for t in txs if t.t_type == "income")
    total_expense = sum(t.amount for t in txs if t.t_type == "expense")

    expense_by_category: Dict[str, float] = {}
    for t in txs:
        if t.t_type == "expense":
            expense_by_category[t.category] = expense_by_category.get(t.category, 0.0) + t.amount

    income_share = expense_share = None
    if total_income and total_expense:
        flow = total_income + total_expense
        income_share = total_income / flow * 100
        expense_share = total_expense / flow * 100

    # newest first, undated entries last
    dated = [(parse_tx_date(t.t_date), t) for t in txs]
    dated.sort(key=lambda pair: pair[0] or date.min, reverse=True)
    recent = [t for _, t in dated[:recent_limit]]

    return Overview(
        total_income=total_income,
        total_expense=total_expense,
        net_savings=total_income - total_expense,
        income_share=income_share,
        expense_share=expense_share,
        expense_by_category=expense_by_category,
        recent=recent
    )


def normalize_record(raw: dict) -> Transaction:
    """Build a Transaction from a backend record.

    The date is cut to its calendar part and kept as text; whether it is
    a real date is decided later by the aggregator.
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"Record must be an object, got {type(raw).__name__}")

    t_type = raw.get("type")
    if t_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {t_type!r}")

    try:
        amount = float(raw.get("amount"))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {raw.get('amount')!r}")
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(f"Amount must be a finite, non-negative number: {amount}")

    raw_date = raw.get("date")
    t_date = raw_date.split("T")[0] if isinstance(raw_date, str) else None

    record_id = raw.get("_id") or raw.get("id")
    extra = {"id": str(record_id)} if record_id else {}

    return Transaction(
        amount=amount,
        t_type=t_type,
        t_date=t_date,
        category=raw.get("category") or default_category_for(t_type),
        desc=raw.get("description") or "",
        receipt=raw.get("receipt"),
        **extra
    )
