"""Rule-based chat assistant over the user's transactions."""
from datetime import date
from typing import List, Optional

from spendtracker.context import AppContext
from spendtracker.logger import get_logger
from spendtracker.logic import summarize
from spendtracker.models import Transaction
from spendtracker.reports import PeriodSelection, build_report

logger = get_logger(__name__)

LOCKED_MESSAGE = "🔒 Log in to chat about your expenses."

HELP_MESSAGE = """I can help you analyze your income, expenses, and savings.

Try asking:
- Where did I spend the most?
- Monthly expense summary
- How can I save more money?
- What was my biggest spending day?"""


def greeting(name: str, is_update: bool = False) -> str:
    if is_update:
        return (f"👋 Hi {name}!\nYour name has been updated successfully.\n\n"
                "How can I help you with your expenses today? 💸")
    return (f"👋 Hello {name}!\n\nI'm your Expense Assistant 🤖💸\n"
            f"{HELP_MESSAGE}\n\nHow can I help you today? 😊")


class ExpenseAssistant:
    def __init__(self, context: AppContext):
        self.context = context

    def _money(self, amount: float) -> str:
        return f"{self.context.currency}{amount:,.2f}"

    def reply(self, message: str, txs: List[Transaction], today: Optional[date] = None) -> Optional[str]:
        if not self.context.session.is_logged_in:
            return LOCKED_MESSAGE
        if not message or not message.strip():
            return None

        text = message.lower()
        today = today or date.today()
        logger.debug(f"Assistant question: {message!r}")

        if "save" in text or "saving" in text:
            return self._savings_advice(txs)
        if "summary" in text or "this month" in text:
            return self._monthly_summary(txs, today)
        if "peak" in text or "biggest" in text or "highest" in text:
            return self._peaks(txs, today)
        if "most" in text or "top" in text:
            return self._top_category(txs)
        return HELP_MESSAGE

    def _top_category(self, txs):
        overview = summarize(txs)
        if not overview.expense_by_category:
            return "You have no expenses recorded yet."
        category, amount = max(overview.expense_by_category.items(), key=lambda item: item[1])
        share = amount / overview.total_expense * 100
        return (f"You spent the most on {category}: {self._money(amount)} "
                f"({share:.0f}% of all expenses).")

    def _monthly_summary(self, txs, today):
        selection = PeriodSelection.current("daily", today)
        report = build_report(txs, selection)
        income = sum(p.income for p in report.series)
        expense = sum(p.expense for p in report.series)
        lines = [
            f"Summary for {selection.describe()}:",
            f"- Income: {self._money(income)}",
            f"- Expenses: {self._money(expense)}",
            f"- Net: {self._money(income - expense)}",
            f"- Average daily spend: {self._money(report.average_spend)}",
        ]
        if report.breakdown:
            top = report.breakdown[0]
            lines.append(f"- Top category: {top.category} ({self._money(top.value)})")
        return "\n".join(lines)

    def _savings_advice(self, txs):
        overview = summarize(txs)
        if not overview.total_income:
            return "Record some income first so I can work out your savings rate."
        rate = overview.net_savings / overview.total_income * 100
        lines = [f"Your savings rate is {rate:.0f}% ({self._money(overview.net_savings)} saved)."]
        if overview.expense_by_category:
            category, amount = max(overview.expense_by_category.items(), key=lambda item: item[1])
            lines.append(f"{category} is your largest expense at {self._money(amount)}; "
                         f"trimming it by 10% would save {self._money(amount * 0.1)}.")
        if rate < 20:
            lines.append("Aim to keep at least 20% of your income as savings.")
        return "\n".join(lines)

    def _peaks(self, txs, today):
        report = build_report(txs, PeriodSelection.current("yearly", today))
        peaks = report.peaks
        if peaks.daily_expense is None:
            return "You have no expenses recorded yet."
        lines = [f"Biggest spending day: {peaks.daily_expense.label} ({self._money(peaks.daily_expense.amount)})"]
        if peaks.monthly_expense:
            lines.append(f"Biggest spending month: {peaks.monthly_expense.label} "
                         f"({self._money(peaks.monthly_expense.amount)})")
        return "\n".join(lines)
