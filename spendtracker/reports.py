"""Period aggregation behind the report charts.

Transactions are grouped into day, month and year buckets once, and every
report view (peaks, chart series, expense breakdown, average spend) is read
from those buckets. Everything here is a pure function of its arguments:
callers pass a snapshot of the transaction list and get fresh structures
back, recomputed wholesale whenever the list or the period selection changes.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, Iterable, List, Literal, Optional

from dateutil.relativedelta import relativedelta

from spendtracker.logger import get_logger
from spendtracker.models import Transaction, TRANSACTION_TYPES

logger = get_logger(__name__)

Granularity = Literal["daily", "monthly", "yearly"]
GRANULARITIES = ("daily", "monthly", "yearly")

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
MIN_YEAR, MAX_YEAR = 1, 9999

_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class DayBucket:
    key: str
    date: date
    income: float = 0.0
    expense: float = 0.0


@dataclass
class MonthBucket:
    key: str
    year: int
    month: int  # 0-11
    income: float = 0.0
    expense: float = 0.0


@dataclass
class YearBucket:
    key: str
    year: int
    income: float = 0.0
    expense: float = 0.0


@dataclass
class Buckets:
    daily: Dict[str, DayBucket] = field(default_factory=dict)
    monthly: Dict[str, MonthBucket] = field(default_factory=dict)
    yearly: Dict[str, YearBucket] = field(default_factory=dict)
    # rows dropped for an unparseable date or unknown type
    skipped: int = 0


@dataclass
class Peak:
    key: str
    label: str
    amount: float


@dataclass
class PeakSummary:
    daily_income: Optional[Peak] = None
    daily_expense: Optional[Peak] = None
    monthly_income: Optional[Peak] = None
    monthly_expense: Optional[Peak] = None
    yearly_income: Optional[Peak] = None
    yearly_expense: Optional[Peak] = None


@dataclass
class SeriesPoint:
    label: str
    income: float = 0.0
    expense: float = 0.0


@dataclass
class CategoryTotal:
    category: str
    value: float


@dataclass(frozen=True)
class PeriodSelection:
    granularity: Granularity
    year: int
    month: int = 0  # 0-11, only read for daily

    def __post_init__(self):
        if self.granularity not in GRANULARITIES:
            raise ValueError(f"Unknown granularity: {self.granularity}")
        if not 0 <= self.month <= 11:
            raise ValueError(f"Month index must be 0-11, got {self.month}")
        if not MIN_YEAR <= self.year <= MAX_YEAR:
            raise ValueError(f"Year must be {MIN_YEAR}-{MAX_YEAR}, got {self.year}")

    @classmethod
    def current(cls, granularity: Granularity = "monthly", today: Optional[date] = None) -> PeriodSelection:
        today = today or date.today()
        return cls(granularity, today.year, today.month - 1)

    def with_granularity(self, granularity: Granularity) -> PeriodSelection:
        return replace(self, granularity=granularity)

    def describe(self) -> str:
        if self.granularity == "daily":
            return f"{month_label(self.month)} {self.year}"
        if self.granularity == "monthly":
            return str(self.year)
        return "All years"


@dataclass
class Report:
    selection: PeriodSelection
    buckets: Buckets
    peaks: PeakSummary
    series: List[SeriesPoint]
    breakdown: List[CategoryTotal]
    average_spend: float


def month_label(month: int) -> str:
    if 0 <= month < 12:
        return MONTH_NAMES[month]
    return "Invalid Month"


def days_in_month(year: int, month: int) -> int:
    """Number of days in a month given as a 0-11 index."""
    return (date(year, month + 1, 1) + relativedelta(day=31)).day


def parse_tx_date(value) -> Optional[date]:
    """Parse a transaction date as a plain calendar date.

    Strings are cut at the first ``T`` so any time or offset suffix is
    dropped rather than interpreted. Anything that is not a valid
    ``YYYY-MM-DD`` date yields ``None``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    day_part = value.strip().split("T", 1)[0]
    if not _ISO_DAY.match(day_part):
        return None
    try:
        return date.fromisoformat(day_part)
    except ValueError:
        return None


def build_buckets(transactions: Iterable[Transaction]) -> Buckets:
    buckets = Buckets()

    for t in transactions:
        parsed = parse_tx_date(t.t_date)
        if parsed is None or t.t_type not in TRANSACTION_TYPES:
            logger.debug(f"Skipping transaction {t.id}: date={t.t_date!r} type={t.t_type!r}")
            buckets.skipped += 1
            continue

        day_key = parsed.isoformat()
        month_key = f"{parsed.year:04d}-{parsed.month:02d}"
        year_key = f"{parsed.year:04d}"

        day = buckets.daily.get(day_key)
        if day is None:
            day = buckets.daily[day_key] = DayBucket(day_key, parsed)
        month = buckets.monthly.get(month_key)
        if month is None:
            month = buckets.monthly[month_key] = MonthBucket(month_key, parsed.year, parsed.month - 1)
        year = buckets.yearly.get(year_key)
        if year is None:
            year = buckets.yearly[year_key] = YearBucket(year_key, parsed.year)

        for bucket in (day, month, year):
            if t.t_type == "income":
                bucket.income += t.amount
            else:
                bucket.expense += t.amount

    if buckets.skipped:
        logger.info(f"Skipped {buckets.skipped} transactions with unusable dates or types")

    return buckets


def _peak(entries, field_name: str, label_of) -> Optional[Peak]:
    best = None
    best_amount = 0.0
    for entry in entries:
        amount = getattr(entry, field_name)
        # strict comparison: the first of equal maxima wins
        if amount > best_amount:
            best, best_amount = entry, amount
    if best is None:
        return None
    return Peak(best.key, label_of(best), best_amount)


def find_peaks(buckets: Buckets) -> PeakSummary:
    def day_label(b):
        return b.date.isoformat()

    def month_name(b):
        return f"{month_label(b.month)} {b.year}"

    def year_label(b):
        return str(b.year)

    days = list(buckets.daily.values())
    months = list(buckets.monthly.values())
    years = list(buckets.yearly.values())

    return PeakSummary(
        daily_income=_peak(days, "income", day_label),
        daily_expense=_peak(days, "expense", day_label),
        monthly_income=_peak(months, "income", month_name),
        monthly_expense=_peak(months, "expense", month_name),
        yearly_income=_peak(years, "income", year_label),
        yearly_expense=_peak(years, "expense", year_label),
    )


def build_series(buckets: Buckets, selection: PeriodSelection) -> List[SeriesPoint]:
    if selection.granularity == "daily":
        series = []
        for day in range(1, days_in_month(selection.year, selection.month) + 1):
            key = f"{selection.year:04d}-{selection.month + 1:02d}-{day:02d}"
            bucket = buckets.daily.get(key)
            series.append(SeriesPoint(
                label=str(day),
                income=bucket.income if bucket else 0.0,
                expense=bucket.expense if bucket else 0.0,
            ))
        return series

    if selection.granularity == "monthly":
        series = []
        for month in range(12):
            bucket = buckets.monthly.get(f"{selection.year:04d}-{month + 1:02d}")
            series.append(SeriesPoint(
                label=month_label(month),
                income=bucket.income if bucket else 0.0,
                expense=bucket.expense if bucket else 0.0,
            ))
        return series

    return [
        SeriesPoint(str(b.year), b.income, b.expense)
        for b in sorted(buckets.yearly.values(), key=lambda b: b.year)
    ]


def _in_window(d: date, selection: PeriodSelection) -> bool:
    if selection.granularity == "daily":
        return d.year == selection.year and d.month - 1 == selection.month
    if selection.granularity == "monthly":
        return d.year == selection.year
    return False


def category_breakdown(transactions: Iterable[Transaction], selection: PeriodSelection) -> List[CategoryTotal]:
    """Expense totals per category in the selected window, largest first."""
    if selection.granularity == "yearly":
        return []

    totals: Dict[str, float] = {}
    for t in transactions:
        if t.t_type != "expense":
            continue
        parsed = parse_tx_date(t.t_date)
        if parsed is None or not _in_window(parsed, selection):
            continue
        totals[t.category] = totals.get(t.category, 0.0) + t.amount

    # sorted() is stable, so equal totals keep first-seen order
    return [
        CategoryTotal(category, value)
        for category, value in sorted(totals.items(), key=lambda item: item[1], reverse=True)
    ]


def average_spend(series: List[SeriesPoint], granularity: Granularity) -> float:
    """Average expense over a series.

    Daily divides by every day of the month, zero days included. Monthly
    divides only by months that had any expense.
    """
    if not series:
        return 0.0

    total = sum(point.expense for point in series)
    if granularity == "daily":
        return total / len(series)
    if granularity == "monthly":
        months_with_spend = sum(1 for point in series if point.expense > 0)
        return total / months_with_spend if months_with_spend else 0.0
    return 0.0


def available_years(buckets: Buckets, today: Optional[date] = None) -> List[int]:
    """Years present in the data, newest first."""
    years = sorted({b.year for b in buckets.yearly.values()}, reverse=True)
    if years:
        return years
    return [(today or date.today()).year]


def prev_period(selection: PeriodSelection, buckets: Buckets, today: Optional[date] = None) -> PeriodSelection:
    if selection.granularity == "daily":
        if (selection.year, selection.month) == (MIN_YEAR, 0):
            return selection
        target = date(selection.year, selection.month + 1, 1) - relativedelta(months=1)
        return replace(selection, year=target.year, month=target.month - 1)

    if selection.granularity == "monthly":
        min_year = available_years(buckets, today)[-1]
        return replace(selection, year=max(min_year, selection.year - 1))

    return selection


def next_period(selection: PeriodSelection, buckets: Buckets, today: Optional[date] = None) -> PeriodSelection:
    today = today or date.today()

    if selection.granularity == "daily":
        if (selection.year, selection.month) == (MAX_YEAR, 11):
            return selection
        target = date(selection.year, selection.month + 1, 1) + relativedelta(months=1)
        if (target.year, target.month) > (today.year, today.month):
            return selection
        return replace(selection, year=target.year, month=target.month - 1)

    if selection.granularity == "monthly":
        if selection.year >= today.year:
            return selection
        max_year = available_years(buckets, today)[0]
        return replace(selection, year=min(max_year, selection.year + 1))

    return selection


def build_report(transactions: List[Transaction], selection: PeriodSelection) -> Report:
    buckets = build_buckets(transactions)
    series = build_series(buckets, selection)
    return Report(
        selection=selection,
        buckets=buckets,
        peaks=find_peaks(buckets),
        series=series,
        breakdown=category_breakdown(transactions, selection),
        average_spend=average_spend(series, selection.granularity),
    )
