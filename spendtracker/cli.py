import cmd
import shlex
from datetime import date
from pathlib import Path
from typing import Optional

from spendtracker.assistant import ExpenseAssistant, greeting
from spendtracker.config import AppSettings
from spendtracker.context import AppContext, THEMES
from spendtracker.exceptions import SpendTrackerError
from spendtracker.forms import TransactionForm
from spendtracker.logic import (
    delete_transaction,
    filter_transactions,
    find_transaction,
    summarize
)
from spendtracker.models import transactions, categories_for
from spendtracker.reports import (
    GRANULARITIES,
    PeriodSelection,
    build_report,
    build_buckets,
    next_period,
    prev_period
)
from spendtracker.storage import save_data, load_data, list_save_files, import_records


class ExpenseTrackerCLI(cmd.Cmd):
    prompt = "(tracker) "

    def __init__(self, context: AppContext, settings: Optional[AppSettings] = None):
        super().__init__()
        self.context = context
        self.settings = settings or AppSettings()
        self.assistant = ExpenseAssistant(context)
        self.selection = PeriodSelection.current("monthly")
        self.intro = "Welcome to Expense Tracker. Type 'help' for commands."
        if context.session.is_logged_in:
            self.intro += "\n\n" + greeting(context.session.user_name)

    def _money(self, amount: float) -> str:
        return f"{self.context.currency}{amount:,.2f}"

    # ===== CORE COMMANDS =====
    def do_add(self, arg):
        """Add a transaction: add <amount> <income|expense> [category] [YYYY-MM-DD] [--receipt REF] [--desc "description"]"""
        try:
            form = self._parse_form_args(TransactionForm.blank(), arg, require_amount=True)
            t = form.submit()
            print(f"✓ Added {t.t_type} of {self._money(t.amount)} [{t.id}]")
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_edit(self, arg):
        """Edit a transaction: edit <ID> [amount] [income|expense] [category] [YYYY-MM-DD] [--receipt REF|--no-receipt] [--desc "description"]"""
        args = arg.split(maxsplit=1)
        if not args:
            print("Usage: edit <ID> [fields...]")
            return
        try:
            form = TransactionForm.for_transaction(find_transaction(args[0]))
            form = self._parse_form_args(form, args[1] if len(args) > 1 else "", require_amount=False)
            t = form.submit()
            print(f"✓ Updated {t.id}: {t.t_type} {self._money(t.amount)} {t.category} {t.t_date}")
        except (SpendTrackerError, ValueError) as e:
            print(f"Error: {e}")

    def do_delete(self, arg):
        """Delete a transaction: delete <ID>"""
        tx_id = arg.strip()
        if not tx_id:
            print("Usage: delete <ID>")
            return
        if delete_transaction(tx_id):
            print(f"✓ Deleted transaction {tx_id}")
        else:
            print("Transaction not found")

    def do_list(self, arg):
        """List transactions: list [--search TEXT] [--type income|expense] [--category NAME] [--from DATE] [--to DATE]"""
        try:
            filters = self._parse_filter_args(arg)
        except ValueError as e:
            print(f"Invalid input: {e}")
            return

        rows = filter_transactions(transactions, **filters)
        if not rows:
            print("No transactions match")
            return
        for t in rows:
            sign = "+" if t.t_type == "income" else "-"
            line = f"  {t.id}  {str(t.t_date or '?'):<10}  {sign}{self._money(t.amount):>12}  {t.category}"
            if t.desc:
                line += f"  ({t.desc})"
            print(line)
        income = sum(t.amount for t in rows if t.t_type == "income")
        expense = sum(t.amount for t in rows if t.t_type == "expense")
        print(f"\n{len(rows)} shown  Income: {self._money(income)}  Expenses: {self._money(expense)}"
              f"  Balance: {self._money(income - expense)}")

    def do_overview(self, arg):
        """Dashboard overview: totals, expenses by category and recent transactions"""
        overview = summarize(transactions, self.settings.recent_limit)
        print(f"\n{' Overview ':-^50}")
        income_note = f" ({overview.income_share:.0f}% of total flow)" if overview.income_share is not None else ""
        expense_note = f" ({overview.expense_share:.0f}% of total flow)" if overview.expense_share is not None else ""
        print(f"  Income:      {self._money(overview.total_income)}{income_note}")
        print(f"  Expenses:    {self._money(overview.total_expense)}{expense_note}")
        print(f"  Net savings: {self._money(overview.net_savings)}")

        if overview.expense_by_category:
            print("\nExpenses by category:")
            for category, amount in overview.expense_by_category.items():
                print(f"  {category}: {self._money(amount)}")

        if overview.recent:
            print("\nRecent transactions:")
            for t in overview.recent:
                print(f"  {t.t_date}  {t.t_type.capitalize():<8} {t.category:<14} {self._money(t.amount)}")

    # ===== REPORTS =====
    def do_report(self, arg):
        """
        Show the report chart data:
        report [daily|monthly|yearly] [YYYY] [MM]

        Examples:
            report daily 2024 2     # February 2024, day by day
            report monthly 2023     # 2023, month by month
            report yearly           # every year with data
            report                  # redraw the current selection
        """
        try:
            self.selection = self._parse_report_args(arg, self.selection)
        except ValueError as e:
            print(f"Invalid input: {e}")
            return
        self._print_report()

    def do_prev(self, arg):
        """Step the report back one period"""
        self.selection = prev_period(self.selection, build_buckets(transactions))
        self._print_report()

    def do_next(self, arg):
        """Step the report forward one period (never past the current month/year)"""
        moved = next_period(self.selection, build_buckets(transactions))
        if moved == self.selection and self.selection.granularity != "yearly":
            print("Already at the latest period")
        self.selection = moved
        self._print_report()

    def do_peaks(self, arg):
        """Show the highest income and expense day, month and year"""
        peaks = build_report(transactions, self.selection).peaks
        print(f"\n{' Peaks ':-^50}")
        for title, peak in (
                ("Highest daily income", peaks.daily_income),
                ("Highest daily expense", peaks.daily_expense),
                ("Highest monthly income", peaks.monthly_income),
                ("Highest monthly expense", peaks.monthly_expense),
                ("Highest yearly income", peaks.yearly_income),
                ("Highest yearly expense", peaks.yearly_expense)):
            if peak is None:
                print(f"  {title}: N/A")
            else:
                print(f"  {title}: {self._money(peak.amount)} ({peak.label})")

    def do_breakdown(self, arg):
        """Expense breakdown by category for the current report window"""
        report = build_report(transactions, self.selection)
        if self.selection.granularity == "yearly":
            print("Category breakdown is available for daily and monthly reports")
            return
        if not report.breakdown:
            print(f"No expenses for {self.selection.describe()}")
            return
        total = sum(c.value for c in report.breakdown)
        print(f"\nExpenses for {self.selection.describe()}:")
        for c in report.breakdown:
            print(f"  {c.category:<14} {self._money(c.value):>12}  {c.value / total * 100:5.1f}%")

    # ===== DATA MANAGEMENT =====
    def do_import(self, arg):
        """Import a backend transactions export: import <file.json>"""
        path = arg.strip()
        if not path:
            print("Usage: import <file.json>")
            return
        try:
            count = import_records(Path(path))
            print(f"✓ Imported {count} transactions")
        except SpendTrackerError as e:
            print(f"Error: {e}")

    def do_save(self, arg):
        """Save current data: save [name=default]"""
        name = arg.strip() or "default"
        if save_data(name, self.settings.saves_dir):
            print(f"✓ Saved {len(transactions)} transactions as '{name}'")
        else:
            print(f"Error saving '{name}', see log for details")

    def do_load(self, arg):
        """Load saved data: load [name]"""
        saves = list_save_files(self.settings.saves_dir)
        if not saves:
            print("No save files available")
            return

        if not arg:
            print("Available saves:")
            for i, name in enumerate(saves, 1):
                print(f"{i}. {name}")
            try:
                choice = int(input("Select save: ")) - 1
                name = saves[choice]
            except (ValueError, IndexError):
                print("Invalid selection")
                return
        else:
            name = arg.strip()

        if load_data(name, self.settings.saves_dir):
            print(f"✓ Loaded {len(transactions)} transactions")
        else:
            print(f"Could not load '{name}'")

    # ===== PREFERENCES & SESSION =====
    def do_theme(self, arg):
        """Show or set the theme: theme [light|dark|system]"""
        theme = arg.strip()
        if not theme:
            print(f"Theme: {self.context.theme} (options: {', '.join(THEMES)})")
            return
        try:
            self.context.set_theme(theme)
            print(f"✓ Theme set to {theme}")
        except SpendTrackerError as e:
            print(f"Error: {e}")

    def do_login(self, arg):
        """Start a session: login <name> [token]"""
        args = arg.split()
        if not args:
            print("Usage: login <name> [token]")
            return
        try:
            self.context.login(args[0], args[1] if len(args) > 1 else None)
            print(greeting(self.context.session.user_name))
        except SpendTrackerError as e:
            print(f"Error: {e}")

    def do_logout(self, arg):
        """End the session"""
        self.context.logout()
        print("✓ Logged out")

    def do_name(self, arg):
        """Change your display name: name <new name>"""
        try:
            if self.context.rename(arg):
                print(greeting(self.context.session.user_name, is_update=True))
            else:
                print("Name unchanged")
        except SpendTrackerError as e:
            print(f"Error: {e}")

    def do_chat(self, arg):
        """Ask the expense assistant: chat <question>"""
        answer = self.assistant.reply(arg, transactions)
        if answer:
            print(answer)

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        print("Goodbye!")
        return True

    do_EOF = do_exit

    # ===== HELPERS =====
    def _print_report(self):
        report = build_report(transactions, self.selection)
        granularity = self.selection.granularity
        print(f"\n{' ' + granularity.capitalize() + ' Report ':-^50}")
        print(f"Period: {self.selection.describe()}")

        if not report.series:
            print("\nNo data to display")
            return

        print(f"\n  {'':<6}{'Income':>14}{'Expense':>14}")
        for point in report.series:
            print(f"  {point.label:<6}{self._money(point.income):>14}{self._money(point.expense):>14}")

        if granularity == "daily":
            print(f"\nAverage daily spend: {self._money(report.average_spend)}")
        elif granularity == "monthly":
            print(f"\nAverage monthly spend: {self._money(report.average_spend)}")

    def _parse_form_args(self, form: TransactionForm, arg: str, require_amount: bool) -> TransactionForm:
        """Parse add/edit arguments onto a form"""
        args = shlex.split(arg)
        if require_amount and len(args) < 2:
            raise ValueError("Missing required arguments (amount and type)")

        changes = {}
        i = 0
        while i < len(args):
            token = args[i]
            if token == "--desc":
                changes["desc"] = " ".join(args[i + 1:])
                break
            elif token == "--receipt":
                if i + 1 >= len(args):
                    raise ValueError("Missing reference after --receipt")
                ref = Path(args[i + 1])
                size = ref.stat().st_size if ref.is_file() else 0
                form = form.attach_receipt(args[i + 1], size, self.settings.receipt_max_bytes)
                i += 2
                continue
            elif token == "--no-receipt":
                form = form.remove_receipt()
            elif token.startswith("--"):
                raise ValueError(f"Unknown flag: {token}")
            elif token.lower() in ("income", "expense"):
                changes["t_type"] = token.lower()
            elif "amount" not in changes and self._is_number(token):
                changes["amount"] = token
            else:
                # Try to parse as date first (YYYY-MM-DD)
                try:
                    changes["t_date"] = date.fromisoformat(token).isoformat()
                except ValueError:
                    if "category" in changes:
                        raise ValueError(f"Unexpected argument: {token}")
                    changes["category"] = token
            i += 1

        if require_amount and ("amount" not in changes or "t_type" not in changes):
            raise ValueError("Missing required arguments (amount and type)")

        form = form.with_fields(**changes)
        if "category" in changes and form.category not in categories_for(form.t_type):
            print(f"Note: '{form.category}' is not a recommended {form.t_type} category")
        return form

    @staticmethod
    def _is_number(token):
        try:
            float(token)
            return True
        except ValueError:
            return False

    @staticmethod
    def _parse_filter_args(arg):
        """Parse arguments for the transaction list"""
        args = shlex.split(arg)
        filters = {}
        i = 0
        while i < len(args):
            if i + 1 >= len(args):
                raise ValueError(f"Missing value after {args[i]}")
            flag, value = args[i], args[i + 1]
            if flag == "--search":
                filters["search"] = value
            elif flag == "--type":
                if value not in ("income", "expense", "all"):
                    raise ValueError("Type must be 'income', 'expense' or 'all'")
                filters["t_type"] = value
            elif flag == "--category":
                filters["category"] = value
            elif flag == "--from":
                filters["start"] = date.fromisoformat(value)
            elif flag == "--to":
                filters["end"] = date.fromisoformat(value)
            else:
                raise ValueError(f"Unknown flag: {flag}")
            i += 2
        return filters

    @staticmethod
    def _parse_report_args(arg, current: PeriodSelection) -> PeriodSelection:
        """Parse arguments for the report command"""
        args = arg.split()
        granularity = current.granularity
        year = current.year
        month = current.month

        if args and args[0] in GRANULARITIES:
            granularity = args.pop(0)
        elif args and not args[0].isdigit():
            raise ValueError(f"Unknown report type: {args[0]}")
        if args:
            year = int(args.pop(0))
        if args:
            month_number = int(args.pop(0))
            if not 1 <= month_number <= 12:
                raise ValueError("Month must be 1-12")
            month = month_number - 1
        if args:
            raise ValueError(f"Unexpected argument: {args[0]}")

        return PeriodSelection(granularity, year, month)
