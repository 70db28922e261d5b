import unittest
import io
import json
import os
import shutil
import tempfile
from contextlib import redirect_stdout
from datetime import date
from pathlib import Path
from unittest.mock import patch

from spendtracker.assistant import ExpenseAssistant, LOCKED_MESSAGE, HELP_MESSAGE, greeting
from spendtracker.cli import ExpenseTrackerCLI
from spendtracker.config import AppSettings, CONFIG_ENV_VAR
from spendtracker.context import AppContext
from spendtracker.exceptions import ConfigError, NotFoundError, StorageError, ValidationError
from spendtracker.forms import CreateMode, EditMode, TransactionForm
from spendtracker.logic import (
    add_transaction, update_transaction, delete_transaction, find_transaction,
    filter_transactions, category_options, summarize, normalize_record
)
from spendtracker.models import (
    Transaction, transactions, default_category_for, categories_for,
    EXPENSE_CATEGORIES, INCOME_CATEGORIES
)
from spendtracker.reports import (
    PeriodSelection, build_buckets, find_peaks, build_series, category_breakdown,
    average_spend, available_years, prev_period, next_period, build_report,
    parse_tx_date, days_in_month, SeriesPoint
)
from spendtracker.storage import save_data, load_data, list_save_files, import_records


def tx(amount, t_type, t_date, category="Other", desc=""):
    return Transaction(amount=amount, t_type=t_type, t_date=t_date, category=category, desc=desc)


class TestModels(unittest.TestCase):
    def test_default_category_for(self):
        """Each type defaults to the first recommended category"""
        self.assertEqual(default_category_for("expense"), "Food")
        self.assertEqual(default_category_for("income"), "Salary")

    def test_categories_for(self):
        self.assertEqual(categories_for("expense"), EXPENSE_CATEGORIES)
        self.assertEqual(categories_for("income"), INCOME_CATEGORIES)
        with self.assertRaises(ValueError):
            categories_for("transfer")

    def test_transaction_ids_are_unique(self):
        a = tx(1.0, "income", date(2024, 1, 1))
        b = tx(1.0, "income", date(2024, 1, 1))
        self.assertNotEqual(a.id, b.id)


class TestParseDate(unittest.TestCase):
    def test_plain_and_suffixed_strings(self):
        self.assertEqual(parse_tx_date("2024-02-05"), date(2024, 2, 5))
        # Time and offset suffix is cut off, not converted
        self.assertEqual(parse_tx_date("2024-03-05T23:30:00+05:30"), date(2024, 3, 5))
        self.assertEqual(parse_tx_date("2024-03-05T00:00:00.000Z"), date(2024, 3, 5))

    def test_invalid_values(self):
        for value in ("2024-02-30", "2023-02-29", "2024-13-01", "not-a-date", "", "20240205", "2024-W06-1", "2024-036", None, 20240205):
            self.assertIsNone(parse_tx_date(value), value)

    def test_date_objects_pass_through(self):
        self.assertEqual(parse_tx_date(date(2024, 2, 29)), date(2024, 2, 29))

    def test_days_in_month(self):
        self.assertEqual(days_in_month(2024, 1), 29)
        self.assertEqual(days_in_month(2023, 1), 28)
        self.assertEqual(days_in_month(2024, 11), 31)
        self.assertEqual(days_in_month(2024, 3), 30)
        self.assertEqual(days_in_month(9999, 11), 31)
        self.assertEqual(days_in_month(1, 0), 31)


class TestBuildBuckets(unittest.TestCase):
    def test_bucket_keys_and_sums(self):
        """Amounts land in the income or expense field of each granularity"""
        buckets = build_buckets([
            tx(100.0, "expense", "2024-02-05"),
            tx(500.0, "income", "2024-02-10"),
            tx(25.0, "expense", date(2024, 2, 5)),
            tx(40.0, "expense", "2023-12-31"),
        ])

        self.assertEqual(list(buckets.daily), ["2024-02-05", "2024-02-10", "2023-12-31"])
        self.assertEqual(buckets.daily["2024-02-05"].expense, 125.0)
        self.assertEqual(buckets.daily["2024-02-05"].income, 0.0)
        self.assertEqual(buckets.daily["2024-02-05"].date, date(2024, 2, 5))

        feb = buckets.monthly["2024-02"]
        self.assertEqual((feb.year, feb.month), (2024, 1))
        self.assertEqual(feb.income, 500.0)
        self.assertEqual(feb.expense, 125.0)

        self.assertEqual(buckets.yearly["2024"].expense, 125.0)
        self.assertEqual(buckets.yearly["2023"].expense, 40.0)
        self.assertEqual(buckets.skipped, 0)

    def test_malformed_dates_are_skipped(self):
        buckets = build_buckets([
            tx(10.0, "expense", "2024-02-30"),
            tx(10.0, "expense", "garbage"),
            tx(10.0, "expense", None),
            tx(10.0, "transfer", "2024-02-01"),
            tx(7.0, "expense", "2024-02-01"),
        ])
        self.assertEqual(list(buckets.daily), ["2024-02-01"])
        self.assertEqual(buckets.yearly["2024"].expense, 7.0)
        self.assertEqual(buckets.skipped, 4)

    def test_input_is_not_mutated(self):
        data = [tx(10.0, "expense", "2024-02-01T12:00:00Z")]
        build_buckets(data)
        self.assertEqual(data[0].t_date, "2024-02-01T12:00:00Z")

    def test_cross_granularity_conservation(self):
        data = [
            tx(12.5, "income", "2022-01-31"),
            tx(8.25, "expense", "2022-02-01"),
            tx(100.0, "income", "2023-07-14"),
            tx(3.75, "expense", "2023-07-14"),
            tx(61.0, "expense", "2024-02-29"),
            tx(999.0, "income", "2024-02-31"),
        ]
        buckets = build_buckets(data)
        for field_name, expected in (("income", 112.5), ("expense", 73.0)):
            self.assertAlmostEqual(sum(getattr(b, field_name) for b in buckets.daily.values()), expected)
            self.assertAlmostEqual(sum(getattr(b, field_name) for b in buckets.monthly.values()), expected)
            self.assertAlmostEqual(sum(getattr(b, field_name) for b in buckets.yearly.values()), expected)

    def test_empty_input(self):
        buckets = build_buckets([])
        self.assertEqual(buckets.daily, {})
        self.assertEqual(buckets.monthly, {})
        self.assertEqual(buckets.yearly, {})


class TestFindPeaks(unittest.TestCase):
    def test_empty_input_has_no_peaks(self):
        peaks = find_peaks(build_buckets([]))
        for name in ("daily_income", "daily_expense", "monthly_income",
                     "monthly_expense", "yearly_income", "yearly_expense"):
            self.assertIsNone(getattr(peaks, name))

    def test_peaks_and_labels(self):
        peaks = find_peaks(build_buckets([
            tx(100.0, "expense", "2024-02-05"),
            tx(300.0, "expense", "2024-03-01"),
            tx(500.0, "income", "2023-02-10"),
        ]))
        self.assertEqual(peaks.daily_expense.label, "2024-03-01")
        self.assertEqual(peaks.daily_expense.amount, 300.0)
        self.assertEqual(peaks.monthly_expense.label, "Mar 2024")
        self.assertEqual(peaks.monthly_expense.key, "2024-03")
        self.assertEqual(peaks.yearly_expense.label, "2024")
        self.assertEqual(peaks.yearly_expense.amount, 400.0)
        self.assertEqual(peaks.yearly_income.label, "2023")
        self.assertEqual(peaks.monthly_income.label, "Feb 2023")

    def test_field_without_positive_value_is_none(self):
        """Only expenses recorded: every income peak stays empty"""
        peaks = find_peaks(build_buckets([tx(10.0, "expense", "2024-01-01")]))
        self.assertIsNone(peaks.daily_income)
        self.assertIsNone(peaks.monthly_income)
        self.assertIsNotNone(peaks.daily_expense)

    def test_zero_amounts_are_not_peaks(self):
        peaks = find_peaks(build_buckets([tx(0.0, "expense", "2024-01-01")]))
        self.assertIsNone(peaks.daily_expense)

    def test_ties_resolve_to_first_encountered(self):
        peaks = find_peaks(build_buckets([
            tx(50.0, "expense", "2024-05-02"),
            tx(50.0, "expense", "2024-01-09"),
        ]))
        self.assertEqual(peaks.daily_expense.label, "2024-05-02")
        self.assertEqual(peaks.monthly_expense.label, "May 2024")

        peaks = find_peaks(build_buckets([
            tx(50.0, "expense", "2024-01-09"),
            tx(50.0, "expense", "2024-05-02"),
        ]))
        self.assertEqual(peaks.daily_expense.label, "2024-01-09")


class TestBuildSeries(unittest.TestCase):
    def test_leap_february_daily_series(self):
        buckets = build_buckets([
            tx(100.0, "expense", "2024-02-05"),
            tx(500.0, "income", "2024-02-10"),
        ])
        series = build_series(buckets, PeriodSelection("daily", 2024, 1))

        self.assertEqual(len(series), 29)
        self.assertEqual([p.label for p in series[:3]], ["1", "2", "3"])
        self.assertEqual(series[4].expense, 100.0)
        self.assertEqual(series[9].income, 500.0)
        for i, point in enumerate(series):
            if i not in (4, 9):
                self.assertEqual((point.income, point.expense), (0.0, 0.0))

    def test_daily_length_follows_calendar(self):
        buckets = build_buckets([])
        self.assertEqual(len(build_series(buckets, PeriodSelection("daily", 2023, 1))), 28)
        self.assertEqual(len(build_series(buckets, PeriodSelection("daily", 2023, 0))), 31)
        self.assertEqual(len(build_series(buckets, PeriodSelection("daily", 2023, 8))), 30)

    def test_monthly_series_is_twelve_months(self):
        buckets = build_buckets([
            tx(80.0, "expense", "2024-03-15"),
            tx(20.0, "expense", "2024-03-16"),
            tx(70.0, "expense", "2023-03-15"),
        ])
        series = build_series(buckets, PeriodSelection("monthly", 2024))
        self.assertEqual(len(series), 12)
        self.assertEqual(series[0].label, "Jan")
        self.assertEqual(series[11].label, "Dec")
        self.assertEqual(series[2].expense, 100.0)
        self.assertEqual(sum(p.expense for p in series), 100.0)

    def test_yearly_series_sorted_without_gaps_filled(self):
        buckets = build_buckets([
            tx(10.0, "income", "2024-01-01"),
            tx(20.0, "income", "2021-06-01"),
            tx(30.0, "expense", "2022-06-01"),
        ])
        series = build_series(buckets, PeriodSelection("yearly", 2024))
        self.assertEqual([p.label for p in series], ["2021", "2022", "2024"])
        self.assertEqual(series[1].expense, 30.0)

    def test_empty_input_series(self):
        buckets = build_buckets([])
        daily = build_series(buckets, PeriodSelection("daily", 2024, 1))
        monthly = build_series(buckets, PeriodSelection("monthly", 2024))
        self.assertEqual(len(daily), 29)
        self.assertEqual(len(monthly), 12)
        self.assertTrue(all(p.income == 0 and p.expense == 0 for p in daily + monthly))
        self.assertEqual(build_series(buckets, PeriodSelection("yearly", 2024)), [])


class TestCategoryBreakdown(unittest.TestCase):
    def test_same_category_in_month(self):
        data = [
            tx(30.0, "expense", "2024-02-03", "Food"),
            tx(20.0, "expense", "2024-02-20", "Food"),
            tx(10.0, "expense", "2024-03-01", "Food"),
            tx(900.0, "income", "2024-02-01", "Salary"),
        ]
        result = category_breakdown(data, PeriodSelection("daily", 2024, 1))
        self.assertEqual([(c.category, c.value) for c in result], [("Food", 50.0)])

    def test_different_categories_sum_to_window_total(self):
        data = [
            tx(30.0, "expense", "2024-02-03", "Food"),
            tx(20.0, "expense", "2024-02-20", "Rent"),
            tx(10.0, "expense", "2024-03-01", "Food"),
        ]
        result = category_breakdown(data, PeriodSelection("daily", 2024, 1))
        self.assertEqual([(c.category, c.value) for c in result], [("Food", 30.0), ("Rent", 20.0)])
        self.assertEqual(sum(c.value for c in result), 50.0)

    def test_monthly_window_is_whole_year(self):
        data = [
            tx(10.0, "expense", "2024-01-03", "Food"),
            tx(60.0, "expense", "2024-11-20", "Rent"),
            tx(99.0, "expense", "2023-11-20", "Rent"),
        ]
        result = category_breakdown(data, PeriodSelection("monthly", 2024))
        self.assertEqual([(c.category, c.value) for c in result], [("Rent", 60.0), ("Food", 10.0)])

    def test_ties_keep_input_order(self):
        data = [
            tx(20.0, "expense", "2024-02-01", "Food"),
            tx(20.0, "expense", "2024-02-02", "Rent"),
            tx(30.0, "expense", "2024-02-03", "Health"),
        ]
        result = category_breakdown(data, PeriodSelection("daily", 2024, 1))
        self.assertEqual([c.category for c in result], ["Health", "Food", "Rent"])

    def test_yearly_has_no_breakdown(self):
        data = [tx(20.0, "expense", "2024-02-01", "Food")]
        self.assertEqual(category_breakdown(data, PeriodSelection("yearly", 2024)), [])

    def test_malformed_dates_ignored(self):
        data = [tx(20.0, "expense", "2024-02-31", "Food")]
        self.assertEqual(category_breakdown(data, PeriodSelection("daily", 2024, 1)), [])


class TestAverageSpend(unittest.TestCase):
    def test_daily_includes_zero_days(self):
        series = [SeriesPoint(str(d), 0.0, 0.0) for d in range(1, 31)]
        series[0].expense = 30.0
        series[1].expense = 60.0
        self.assertEqual(average_spend(series, "daily"), 3.0)

    def test_monthly_excludes_zero_months(self):
        series = [SeriesPoint(str(m), 0.0, 0.0) for m in range(12)]
        series[0].expense = 100.0
        series[5].expense = 200.0
        self.assertEqual(average_spend(series, "monthly"), 150.0)

    def test_monthly_without_spend_is_zero(self):
        series = [SeriesPoint(str(m), 50.0, 0.0) for m in range(12)]
        self.assertEqual(average_spend(series, "monthly"), 0.0)

    def test_yearly_and_empty(self):
        self.assertEqual(average_spend([SeriesPoint("2024", 0.0, 500.0)], "yearly"), 0.0)
        self.assertEqual(average_spend([], "daily"), 0.0)

    def test_report_bundle(self):
        data = [tx(100.0, "expense", "2024-02-05", "Food"), tx(500.0, "income", "2024-02-10", "Salary")]
        report = build_report(data, PeriodSelection("daily", 2024, 1))
        self.assertEqual(len(report.series), 29)
        self.assertAlmostEqual(report.average_spend, 100.0 / 29)
        self.assertEqual(report.breakdown[0].category, "Food")
        self.assertEqual(report.peaks.daily_income.amount, 500.0)


class TestNavigation(unittest.TestCase):
    def setUp(self):
        self.today = date(2024, 6, 15)
        self.buckets = build_buckets([
            tx(10.0, "expense", "2021-04-01"),
            tx(10.0, "expense", "2023-04-01"),
        ])

    def test_selection_validation(self):
        with self.assertRaises(ValueError):
            PeriodSelection("weekly", 2024)
        with self.assertRaises(ValueError):
            PeriodSelection("daily", 2024, 12)
        for year in (0, -5, 10000):
            with self.assertRaises(ValueError):
                PeriodSelection("daily", year, 0)

    def test_current_selection(self):
        selection = PeriodSelection.current("daily", date(2024, 2, 10))
        self.assertEqual((selection.year, selection.month), (2024, 1))

    def test_daily_prev_crosses_year(self):
        selection = prev_period(PeriodSelection("daily", 2024, 0), self.buckets, self.today)
        self.assertEqual((selection.year, selection.month), (2023, 11))

    def test_daily_next_stops_at_current_month(self):
        selection = next_period(PeriodSelection("daily", 2024, 4), self.buckets, self.today)
        self.assertEqual((selection.year, selection.month), (2024, 5))
        self.assertEqual(next_period(selection, self.buckets, self.today), selection)

    def test_daily_navigation_stops_at_calendar_bounds(self):
        first = PeriodSelection("daily", 1, 0)
        self.assertEqual(prev_period(first, self.buckets, self.today), first)
        self.assertEqual(prev_period(PeriodSelection("daily", 1, 1), self.buckets, self.today), first)
        last = PeriodSelection("daily", 9999, 11)
        self.assertEqual(next_period(last, self.buckets, date(9999, 12, 31)), last)

    def test_daily_next_crosses_year(self):
        selection = next_period(PeriodSelection("daily", 2023, 11), self.buckets, self.today)
        self.assertEqual((selection.year, selection.month), (2024, 0))

    def test_monthly_prev_clamped_to_min_year(self):
        selection = prev_period(PeriodSelection("monthly", 2022), self.buckets, self.today)
        self.assertEqual(selection.year, 2021)
        self.assertEqual(prev_period(selection, self.buckets, self.today).year, 2021)

    def test_monthly_next_clamped(self):
        self.assertEqual(next_period(PeriodSelection("monthly", 2021), self.buckets, self.today).year, 2022)
        # 2023 is the newest year with data
        self.assertEqual(next_period(PeriodSelection("monthly", 2023), self.buckets, self.today).year, 2023)
        self.assertEqual(next_period(PeriodSelection("monthly", 2024), self.buckets, self.today).year, 2024)

    def test_monthly_without_data_uses_current_year(self):
        empty = build_buckets([])
        self.assertEqual(available_years(empty, self.today), [2024])
        self.assertEqual(prev_period(PeriodSelection("monthly", 2024), empty, self.today).year, 2024)

    def test_available_years_descending(self):
        self.assertEqual(available_years(self.buckets, self.today), [2023, 2021])

    def test_yearly_is_fixed(self):
        selection = PeriodSelection("yearly", 2024)
        self.assertEqual(prev_period(selection, self.buckets, self.today), selection)
        self.assertEqual(next_period(selection, self.buckets, self.today), selection)


class TestDashboardLogic(unittest.TestCase):
    def setUp(self):
        """Reset global state before each test"""
        transactions.clear()

    def test_add_transaction(self):
        t = add_transaction(100.0, "expense", date(2024, 2, 5), desc="Groceries")
        self.assertEqual(len(transactions), 1)
        self.assertEqual(t.category, "Food")
        self.assertEqual(t.t_date, date(2024, 2, 5))

        t = add_transaction(50, "income", "2024-02-06", "Bonus")
        self.assertEqual(t.category, "Bonus")
        self.assertEqual(t.t_date, date(2024, 2, 6))
        self.assertEqual(t.amount, 50.0)

    def test_add_transaction_validation(self):
        with self.assertRaises(ValidationError):
            add_transaction(0.0, "expense", date(2024, 2, 5))
        with self.assertRaises(ValidationError):
            add_transaction(-5.0, "expense", date(2024, 2, 5))
        with self.assertRaises(ValidationError):
            add_transaction(5.0, "transfer", date(2024, 2, 5))
        with self.assertRaises(ValidationError):
            add_transaction(5.0, "expense", "2024-02-30")
        for amount in (float("nan"), float("inf"), float("-inf")):
            with self.assertRaises(ValidationError):
                add_transaction(amount, "expense", date(2024, 2, 5))
        self.assertEqual(len(transactions), 0)

    def test_update_transaction(self):
        t = add_transaction(100.0, "expense", date(2024, 2, 5), "Rent")
        update_transaction(t.id, amount=120.0, desc="Rent increase")
        self.assertEqual(t.amount, 120.0)
        self.assertEqual(t.category, "Rent")
        self.assertEqual(t.desc, "Rent increase")

        # Changing type without a category resets it
        update_transaction(t.id, t_type="income")
        self.assertEqual(t.category, "Salary")

        with self.assertRaises(ValidationError):
            update_transaction(t.id, amount=0)
        self.assertEqual(t.amount, 120.0)

    def test_find_and_delete(self):
        t = add_transaction(10.0, "expense", date(2024, 2, 5))
        self.assertIs(find_transaction(t.id), t)
        self.assertTrue(delete_transaction(t.id))
        self.assertFalse(delete_transaction(t.id))
        with self.assertRaises(NotFoundError):
            find_transaction(t.id)

    def test_filter_transactions(self):
        add_transaction(10.0, "expense", date(2024, 1, 5), "Food", desc="Pizza night")
        add_transaction(20.0, "expense", date(2024, 2, 5), "Transport", desc="Taxi")
        add_transaction(300.0, "income", date(2024, 2, 1), "Salary")

        self.assertEqual(len(filter_transactions(transactions, search="pizza")), 1)
        self.assertEqual(len(filter_transactions(transactions, search="SAL")), 1)
        self.assertEqual(len(filter_transactions(transactions, t_type="expense")), 2)
        self.assertEqual(len(filter_transactions(transactions, category="Transport")), 1)
        in_feb = filter_transactions(transactions, start=date(2024, 2, 1), end=date(2024, 2, 29))
        self.assertEqual({t.category for t in in_feb}, {"Transport", "Salary"})
        self.assertEqual(len(filter_transactions(transactions, end=date(2024, 1, 5))), 1)

    def test_category_options(self):
        add_transaction(10.0, "expense", date(2024, 1, 5), "Rent")
        add_transaction(10.0, "expense", date(2024, 1, 5), "Food")
        add_transaction(10.0, "expense", date(2024, 1, 5), "Food")
        self.assertEqual(category_options(transactions), ["all", "Food", "Rent"])

    def test_summarize(self):
        add_transaction(300.0, "income", date(2024, 1, 1), "Salary")
        add_transaction(60.0, "expense", date(2024, 1, 3), "Food")
        add_transaction(40.0, "expense", date(2024, 1, 2), "Rent")
        transactions.append(tx(5.0, "income", "bad-date", "Gifts"))

        overview = summarize(transactions, recent_limit=3)
        self.assertEqual(overview.total_income, 305.0)
        self.assertEqual(overview.total_expense, 100.0)
        self.assertEqual(overview.net_savings, 205.0)
        self.assertEqual(overview.expense_by_category, {"Food": 60.0, "Rent": 40.0})
        self.assertEqual([t.category for t in overview.recent], ["Food", "Rent", "Salary"])

    def test_summarize_shares(self):
        add_transaction(300.0, "income", date(2024, 1, 1))
        add_transaction(100.0, "expense", date(2024, 1, 1))
        overview = summarize(transactions)
        self.assertEqual(overview.income_share, 75.0)
        self.assertEqual(overview.expense_share, 25.0)

        transactions.clear()
        add_transaction(300.0, "income", date(2024, 1, 1))
        self.assertIsNone(summarize(transactions).income_share)

    def test_normalize_record(self):
        t = normalize_record({
            "_id": "665f1c", "type": "expense", "category": "Food", "amount": 42.5,
            "date": "2024-02-05T18:30:00.000Z", "description": "Dinner"
        })
        self.assertEqual(t.id, "665f1c")
        self.assertEqual(t.t_date, "2024-02-05")
        self.assertEqual(t.desc, "Dinner")
        self.assertIsNone(t.receipt)

        t = normalize_record({"type": "income", "amount": "10"})
        self.assertEqual(t.category, "Salary")
        self.assertIsNone(t.t_date)

        for bad in ({"type": "x", "amount": 1}, {"type": "income", "amount": "ten"},
                    {"type": "income", "amount": -1}, {"type": "expense", "amount": "NaN"},
                    {"type": "expense", "amount": "inf"}, ["not", "a", "dict"]):
            with self.assertRaises(ValidationError):
                normalize_record(bad)


class TestTransactionForm(unittest.TestCase):
    def setUp(self):
        transactions.clear()

    def test_blank_form(self):
        form = TransactionForm.blank(date(2024, 2, 5))
        self.assertEqual(form.state, CreateMode())
        self.assertFalse(form.is_edit)
        self.assertEqual((form.t_type, form.category, form.t_date), ("expense", "Food", "2024-02-05"))

    def test_switching_type_resets_category(self):
        form = TransactionForm.blank(date(2024, 2, 5)).with_fields(category="Rent")
        form = form.with_type("income")
        self.assertEqual(form.category, "Salary")
        self.assertEqual(form.with_fields(t_type="expense").category, "Food")

    def test_submit_create(self):
        form = TransactionForm.blank(date(2024, 2, 5)).with_fields(amount="12.50", desc="Bus")
        t = form.submit()
        self.assertEqual(t.amount, 12.5)
        self.assertEqual(t.t_date, date(2024, 2, 5))
        self.assertEqual(transactions, [t])

    def test_submit_edit(self):
        t = add_transaction(10.0, "expense", date(2024, 2, 5), "Food", receipt="r-1")
        form = TransactionForm.for_transaction(t)
        self.assertEqual(form.state, EditMode(t.id))
        self.assertEqual(form.amount, "10.0")

        form.with_fields(amount="15", t_date="2024-02-06").remove_receipt().submit()
        self.assertEqual(len(transactions), 1)
        self.assertEqual(t.amount, 15.0)
        self.assertEqual(t.t_date, date(2024, 2, 6))
        self.assertIsNone(t.receipt)

    def test_edit_form_truncates_imported_date(self):
        t = tx(5.0, "expense", "2024-02-05T10:00:00Z")
        self.assertEqual(TransactionForm.for_transaction(t).t_date, "2024-02-05")

    def test_invalid_amount(self):
        for amount in ("", "abc", "0", "-3", "nan", "inf"):
            form = TransactionForm.blank().with_fields(amount=amount)
            with self.assertRaises(ValidationError):
                form.submit()
        self.assertEqual(len(transactions), 0)

    def test_receipt_size_limit(self):
        form = TransactionForm.blank()
        self.assertEqual(form.attach_receipt("receipt.png", 1024).receipt, "receipt.png")
        with self.assertRaises(ValidationError):
            form.attach_receipt("huge.png", 2 * 1024 * 1024 + 1)


class TestAppContext(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.path = self.test_dir / "prefs.json"

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_defaults_when_missing(self):
        context = AppContext.load(self.path)
        self.assertEqual(context.theme, "system")
        self.assertFalse(context.session.is_logged_in)
        self.assertFalse(self.path.exists())

    def test_theme_persists(self):
        context = AppContext.load(self.path)
        context.set_theme("dark")
        self.assertEqual(AppContext.load(self.path).theme, "dark")
        with self.assertRaises(ValidationError):
            context.set_theme("neon")

    def test_login_rename_logout(self):
        context = AppContext.load(self.path)
        context.login("Asha", "tok-123")
        reloaded = AppContext.load(self.path)
        self.assertEqual(reloaded.session.user_name, "Asha")
        self.assertEqual(reloaded.session.auth_token, "tok-123")

        self.assertFalse(context.rename("Asha"))
        self.assertTrue(context.rename("Asha K"))
        self.assertEqual(AppContext.load(self.path).session.user_name, "Asha K")

        context.logout()
        self.assertFalse(AppContext.load(self.path).session.is_logged_in)
        with self.assertRaises(ValidationError):
            context.rename("Someone")

    def test_corrupt_file_falls_back(self):
        self.path.write_text("{not json")
        self.assertEqual(AppContext.load(self.path).theme, "system")

    def test_non_object_file_falls_back(self):
        self.path.write_text(json.dumps(["dark"]))
        context = AppContext.load(self.path)
        self.assertEqual(context.theme, "system")
        self.assertFalse(context.session.is_logged_in)

        self.path.write_text(json.dumps({"theme": "dark", "session": "Asha"}))
        context = AppContext.load(self.path)
        self.assertEqual(context.theme, "dark")
        self.assertFalse(context.session.is_logged_in)


class TestStorage(unittest.TestCase):
    def setUp(self):
        transactions.clear()
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        transactions.clear()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_save_and_load_data(self):
        t = add_transaction(100.0, "income", date(2024, 1, 1), "Salary", desc="January")
        transactions.append(tx(5.0, "expense", "2024-02-30", "Food"))

        self.assertTrue(save_data("test_save", self.test_dir))
        transactions.clear()
        self.assertTrue(load_data("test_save", self.test_dir))

        self.assertEqual(len(transactions), 2)
        self.assertEqual(transactions[0].id, t.id)
        self.assertEqual(transactions[0].t_date, date(2024, 1, 1))
        self.assertEqual(transactions[0].desc, "January")
        # Unparseable dates survive as text
        self.assertEqual(transactions[1].t_date, "2024-02-30")

    def test_list_save_files(self):
        save_data("test_save1", self.test_dir)
        save_data("test_save2", self.test_dir)
        self.assertEqual(list_save_files(self.test_dir), ["test_save1", "test_save2"])
        self.assertEqual(list_save_files(self.test_dir / "missing"), [])

    def test_load_missing_or_corrupt(self):
        self.assertFalse(load_data("nope", self.test_dir))
        (self.test_dir / "broken.json").write_text("{")
        self.assertFalse(load_data("broken", self.test_dir))

    def test_load_rejects_non_object_root(self):
        transactions.append(tx(1.0, "expense", "2024-01-01"))
        (self.test_dir / "listed.json").write_text(json.dumps([{"id": "a", "amount": 1.0}]))
        self.assertFalse(load_data("listed", self.test_dir))
        # the current list is left alone
        self.assertEqual(len(transactions), 1)

    def test_load_skips_invalid_transactions(self):
        (self.test_dir / "partial.json").write_text(json.dumps({
            "transactions": [
                {"id": "a", "amount": 1.0, "t_type": "expense", "t_date": "2024-01-01"},
                {"amount": 2.0},
                {"id": "b", "amount": "NaN", "t_type": "expense", "t_date": "2024-01-02"},
            ]
        }))
        self.assertTrue(load_data("partial", self.test_dir))
        self.assertEqual([t.id for t in transactions], ["a"])

    def test_import_records(self):
        export = self.test_dir / "export.json"
        export.write_text(json.dumps([
            {"_id": "a1", "type": "expense", "category": "Food", "amount": 50,
             "date": "2024-02-05T10:00:00.000Z"},
            {"_id": "a2", "type": "bogus", "amount": 5, "date": "2024-02-05"},
            {"_id": "a4", "type": "expense", "amount": "NaN", "date": "2024-02-05"},
            {"_id": "a3", "type": "expense", "category": "Rent", "amount": 20, "date": "2024-02-31"},
        ]))
        self.assertEqual(import_records(export), 2)
        self.assertEqual([t.id for t in transactions], ["a1", "a3"])

        buckets = build_buckets(transactions)
        self.assertEqual(buckets.skipped, 1)
        self.assertEqual(buckets.daily["2024-02-05"].expense, 50.0)

    def test_import_wrapped_records(self):
        export = self.test_dir / "wrapped.json"
        export.write_text(json.dumps({"transactions": [
            {"type": "income", "category": "Salary", "amount": 900, "date": "2024-02-01"}
        ]}))
        self.assertEqual(import_records(export), 1)

    def test_import_errors(self):
        with self.assertRaises(StorageError):
            import_records(self.test_dir / "missing.json")
        bad = self.test_dir / "bad.json"
        bad.write_text(json.dumps({"transactions": "nope"}))
        with self.assertRaises(StorageError):
            import_records(bad)


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_load_yaml(self):
        path = self.test_dir / "config.yaml"
        path.write_text("display:\n  currency_symbol: '$'\n  recent_limit: 10\nstorage:\n  saves_dir: data\n")
        settings = AppSettings.load(path)
        self.assertEqual(settings.currency_symbol, "$")
        self.assertEqual(settings.recent_limit, 10)
        self.assertEqual(settings.saves_dir, "data")
        self.assertEqual(settings.log_level, "INFO")

    def test_explicit_missing_file(self):
        with self.assertRaises(ConfigError):
            AppSettings.load(self.test_dir / "missing.yaml")

    def test_defaults_without_file(self):
        with patch.dict(os.environ, {CONFIG_ENV_VAR: str(self.test_dir / "missing.yaml")}):
            self.assertEqual(AppSettings.load(), AppSettings())

    def test_invalid_documents(self):
        path = self.test_dir / "config.yaml"
        path.write_text("- just\n- a list\n")
        with self.assertRaises(ConfigError):
            AppSettings.load(path)
        path.write_text("display:\n  recent_limit: many\n")
        with self.assertRaises(ConfigError):
            AppSettings.load(path)


class TestAssistant(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.context = AppContext.load(self.test_dir / "prefs.json")
        self.assistant = ExpenseAssistant(self.context)
        self.data = [
            tx(500.0, "income", "2024-02-01", "Salary"),
            tx(100.0, "expense", "2024-02-05", "Food"),
            tx(300.0, "expense", "2024-01-20", "Rent"),
        ]

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_locked_when_logged_out(self):
        self.assertEqual(self.assistant.reply("summary", self.data), LOCKED_MESSAGE)

    def test_greeting(self):
        self.assertIn("Hello Asha", greeting("Asha"))
        self.assertIn("updated successfully", greeting("Asha", is_update=True))

    def test_replies(self):
        self.context.login("Asha")
        self.assertIsNone(self.assistant.reply("   ", self.data))
        self.assertEqual(self.assistant.reply("hello?", self.data), HELP_MESSAGE)

        answer = self.assistant.reply("Where did I spend the most?", self.data)
        self.assertIn("Rent", answer)
        self.assertIn("75%", answer)

        summary = self.assistant.reply("Monthly expense summary", self.data, today=date(2024, 2, 20))
        self.assertIn("Feb 2024", summary)
        self.assertIn("Expenses: ₹100.00", summary)
        self.assertIn("Average daily spend: ₹3.45", summary)

        advice = self.assistant.reply("How can I save more money?", self.data)
        self.assertIn("20%", advice)

        peaks = self.assistant.reply("What was my biggest spending day?", self.data)
        self.assertIn("2024-01-20", peaks)

    def test_peaks_reply_uses_given_day(self):
        self.context.login("Asha")
        with patch.object(PeriodSelection, "current", wraps=PeriodSelection.current) as current:
            peaks = self.assistant.reply("highest spend?", self.data, today=date(2024, 2, 20))
        current.assert_called_once_with("yearly", date(2024, 2, 20))
        self.assertIn("Biggest spending month: Jan 2024", peaks)


class TestCLI(unittest.TestCase):
    def setUp(self):
        transactions.clear()
        self.test_dir = Path(tempfile.mkdtemp())
        context = AppContext.load(self.test_dir / "prefs.json")
        self.cli = ExpenseTrackerCLI(context, AppSettings(saves_dir=str(self.test_dir / "saves")))

    def tearDown(self):
        transactions.clear()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def run_cmd(self, line):
        out = io.StringIO()
        with redirect_stdout(out):
            self.cli.onecmd(line)
        return out.getvalue()

    def test_add_and_list(self):
        output = self.run_cmd('add 100 expense Food 2024-02-05 --desc lunch out')
        self.assertIn("✓ Added expense", output)
        self.assertEqual(len(transactions), 1)
        t = transactions[0]
        self.assertEqual((t.amount, t.category, t.t_date, t.desc), (100.0, "Food", date(2024, 2, 5), "lunch out"))

        output = self.run_cmd("list --type expense")
        self.assertIn(t.id, output)
        self.assertIn("lunch out", output)

    def test_add_rejects_bad_input(self):
        self.assertIn("Invalid input", self.run_cmd("add expense"))
        self.assertIn("Invalid input", self.run_cmd("add 0 expense"))
        self.assertIn("Invalid input", self.run_cmd("add nan expense 2024-02-05"))
        self.assertIn("Invalid input", self.run_cmd("add nan expense Food 2024-02-05"))
        self.assertIn("Invalid input", self.run_cmd("add inf expense Food 2024-02-05"))
        self.assertEqual(len(transactions), 0)

    def test_edit_and_delete(self):
        t = add_transaction(10.0, "expense", date(2024, 2, 5), "Food")
        self.assertIn("✓ Updated", self.run_cmd(f"edit {t.id} 25 Shopping"))
        self.assertEqual((t.amount, t.category), (25.0, "Shopping"))
        self.assertIn("not found", self.run_cmd("edit missing 5"))
        self.assertIn("✓ Deleted", self.run_cmd(f"delete {t.id}"))
        self.assertEqual(len(transactions), 0)

    def test_report_and_navigation(self):
        add_transaction(100.0, "expense", date(2024, 2, 5), "Food")
        add_transaction(500.0, "income", date(2024, 2, 10), "Salary")

        output = self.run_cmd("report daily 2024 2")
        self.assertIn("Feb 2024", output)
        self.assertIn("Average daily spend: ₹3.45", output)

        output = self.run_cmd("prev")
        self.assertIn("Jan 2024", output)

        output = self.run_cmd("breakdown")
        self.assertIn("No expenses for Jan 2024", output)

        self.assertIn("Invalid input", self.run_cmd("report weekly"))
        self.assertIn("Invalid input", self.run_cmd("report daily 2024 13"))
        self.assertIn("Invalid input", self.run_cmd("report daily 0 1"))
        self.assertIn("Invalid input", self.run_cmd("report daily -5 1"))

    def test_peaks_and_overview(self):
        self.assertIn("Highest daily expense: N/A", self.run_cmd("peaks"))
        add_transaction(300.0, "income", date(2024, 1, 1), "Salary")
        add_transaction(100.0, "expense", date(2024, 1, 2), "Rent")
        self.assertIn("₹100.00 (2024-01-02)", self.run_cmd("peaks"))
        output = self.run_cmd("overview")
        self.assertIn("75% of total flow", output)
        self.assertIn("Rent: ₹100.00", output)

    def test_save_and_load_commands(self):
        add_transaction(10.0, "expense", date(2024, 2, 5))
        self.assertIn("✓ Saved 1", self.run_cmd("save test_cli"))
        transactions.clear()
        self.assertIn("✓ Loaded 1", self.run_cmd("load test_cli"))

    def test_session_commands(self):
        self.assertIn("Log in", self.run_cmd("chat summary"))
        self.assertIn("Hello Asha", self.run_cmd("login Asha"))
        self.assertIn("updated successfully", self.run_cmd("name Ravi"))
        self.assertIn("Theme set to dark", self.run_cmd("theme dark"))
        self.assertIn("✓ Logged out", self.run_cmd("logout"))

if __name__ == "__main__":
    unittest.main()
