"""Spend Tracker launcher"""
import argparse
from pathlib import Path

from spendtracker.cli import ExpenseTrackerCLI
from spendtracker.config import AppSettings
from spendtracker.context import AppContext
from spendtracker.exceptions import ConfigError
from spendtracker.logger import configure_logging, get_logger
from spendtracker.storage import load_data, list_save_files


def main(argv=None):
    parser = argparse.ArgumentParser(description="Terminal expense tracker")
    parser.add_argument("--config", type=Path, help="path to config.yaml")
    parser.add_argument("--load", metavar="NAME", help="load a save file on startup")
    args = parser.parse_args(argv)

    try:
        settings = AppSettings.load(args.config)
    except ConfigError as e:
        parser.exit(2, f"Configuration error: {e}\n")

    configure_logging(
        settings.log_level,
        settings.log_file,
        max_bytes=settings.log_max_file_size_mb * 1024 * 1024,
        backup_count=settings.log_backup_count
    )
    logger = get_logger()
    logger.info(f"Starting {settings.app_name}")

    context = AppContext.load(Path(settings.preferences_file), currency=settings.currency_symbol)

    if args.load:
        load_data(args.load, settings.saves_dir)
    elif "default" in list_save_files(settings.saves_dir):
        load_data("default", settings.saves_dir)

    ExpenseTrackerCLI(context, settings).cmdloop()


if __name__ == "__main__":
    main()
