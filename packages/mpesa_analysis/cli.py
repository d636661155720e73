# ruff: noqa: I001
"""CLI for the ``mpesa_analysis`` package.

This module exposes callable command handlers (``cmd_sync``,
``cmd_insights``...) and a Typer-based console interface over them.
Environment variables (notably ``DATABASE_URL``) are loaded from a local
``.env`` using ``python-dotenv`` before any command runs. Business logic lives
in the library modules; handlers only translate arguments, print results and
map failures to ``Error: ...`` messages with a non-zero exit code.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from rich.text import Text
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import InsightsReport, Transaction

console = Console()


# ---- Small module-level helpers used by CLI commands -------------------------


def _resolve_database_url(database_url: str | None) -> str | None:
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        print(
            "Error: DATABASE_URL is not set; pass --database-url or set it in .env.",
            file=sys.stderr,
        )
        return None
    return url


def _prepare_database(url: str) -> None:
    """Bind the shared engine; local SQLite files get their tables created."""

    from db.client import get_engine, init_schema

    if url.startswith("sqlite"):
        init_schema(database_url=url)
    else:
        get_engine(database_url=url)


def _money(value: Any) -> str:
    return "" if value is None else f"{value:,.2f}"


def transaction_to_json(tx: Transaction) -> dict[str, Any]:
    """JSON-ready view of a transaction (amounts as strings, clues sorted)."""

    return {
        "receipt_number": tx.receipt_number,
        "amount": str(tx.amount),
        "direction": tx.direction.value,
        "kind": tx.kind.value,
        "merchant_name": tx.merchant_name,
        "phone_number": tx.phone_number,
        "paybill_number": tx.paybill_number,
        "till_number": tx.till_number,
        "account_number": tx.account_number,
        "agent_number": tx.agent_number,
        "transaction_cost": None if tx.transaction_cost is None else str(tx.transaction_cost),
        "new_balance": None if tx.new_balance is None else str(tx.new_balance),
        "clues": sorted(tx.clues),
        "timestamp": tx.timestamp.isoformat() if tx.timestamp else None,
    }


def _print_report(report: InsightsReport) -> None:
    console.print(f"[bold]Transactions:[/bold] {report.total_transactions}")

    merchants = Table(title="Frequent merchants")
    for col in ("Merchant", "Count", "Total", "Average", "Category"):
        merchants.add_column(col)
    for m in report.frequent_merchants:
        merchants.add_row(
            m.name or "",
            str(m.count),
            _money(m.total_amount),
            _money(m.average_amount),
            m.suggested_category or "",
        )
    console.print(merchants)

    bills = Table(title="Recurring bills")
    for col in ("Paybill", "Merchant", "Payments", "Months", "Average"):
        bills.add_column(col)
    for b in report.recurring_bills:
        bills.add_row(
            b.paybill_number,
            b.merchant_name or "",
            str(b.occurrence_count),
            str(b.distinct_periods),
            _money(b.average_amount),
        )
    console.print(bills)

    suggestions = Table(title="Category suggestions")
    for col in ("Category", "Transactions", "Total", "Icon", "Color"):
        suggestions.add_column(col)
    for s in report.category_suggestions:
        suggestions.add_row(
            s.category_name,
            str(s.transaction_count),
            _money(s.total_amount),
            s.icon_tag,
            s.color_tag,
        )
    console.print(suggestions)


# ---- Command handlers --------------------------------------------------------


def cmd_sync(
    export_path: str,
    *,
    lookback_months: int = 3,
    whole_words: bool = False,
    database_url: str | None = None,
) -> int:
    """Import M-Pesa messages from an SMS export file into the database."""

    from .ingest import ExportFileSource
    from .store import SqlTransactionStore
    from .sync import LookbackPeriod, SyncError, run_sync

    try:
        lookback = LookbackPeriod.from_months(lookback_months)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not Path(export_path).is_file():
        print(f"Error: File not found: {export_path}", file=sys.stderr)
        return 1

    url = _resolve_database_url(database_url)
    if url is None:
        return 1

    try:
        _prepare_database(url)
        result = run_sync(
            ExportFileSource(export_path),
            SqlTransactionStore(database_url=url),
            lookback=lookback,
            whole_words=whole_words,
        )
    except SyncError as e:
        print(f"Error: sync failed: {e.status}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: could not read export '{export_path}': {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: sync failed: {e}", file=sys.stderr)
        return 1

    table = Table(title=f"Sync {result.status.value}")
    for col in ("Scanned", "Parsed", "Inserted", "Duplicates"):
        table.add_column(col)
    table.add_row(
        str(result.scanned),
        str(result.parsed),
        str(result.inserted),
        str(result.skipped_duplicates),
    )
    console.print(table)
    return 0


def cmd_insights(
    *,
    top_n: int = 5,
    recurring_threshold: int = 2,
    min_group_size: int = 2,
    as_json: bool = False,
    database_url: str | None = None,
) -> int:
    """Print frequent merchants, recurring bills and category suggestions."""

    from .insights import InsightsError, build_insights
    from .store import SqlCategoryMappingStore, SqlTransactionStore

    url = _resolve_database_url(database_url)
    if url is None:
        return 1

    try:
        _prepare_database(url)
        report = build_insights(
            SqlTransactionStore(database_url=url),
            SqlCategoryMappingStore(database_url=url),
            recurring_threshold=recurring_threshold,
            suggestion_min_group_size=min_group_size,
            top_n=top_n,
        )
    except InsightsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: invalid option: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: insights failed: {e}", file=sys.stderr)
        return 1

    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        _print_report(report)
    return 0


def cmd_parse(text: str, *, whole_words: bool = False) -> int:
    """Parse one message and print the resulting transaction as JSON."""

    from .parser import parse_message

    tx = parse_message(text, whole_words=whole_words)
    if tx is None:
        print("Error: not a recognised M-Pesa confirmation message.", file=sys.stderr)
        return 1
    typer.echo(json.dumps(transaction_to_json(tx), indent=2))
    return 0


def cmd_merchant(name: str, *, limit: int = 20, database_url: str | None = None) -> int:
    """Show the most recent stored transactions for one merchant."""

    from .categorize import is_user_categorised, resolve_category
    from .store import SqlCategoryMappingStore, SqlTransactionStore

    url = _resolve_database_url(database_url)
    if url is None:
        return 1
    try:
        _prepare_database(url)
        rows = SqlTransactionStore(database_url=url).query_by_merchant(name, limit=limit)
        mappings = SqlCategoryMappingStore(database_url=url)
        receipt_map = mappings.get_receipt_mappings()
        merchant_map = mappings.get_merchant_mappings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: query failed: {e}", file=sys.stderr)
        return 1

    if not rows:
        console.print(f"No transactions found for {name!r}.")
        return 0
    table = Table(title=rows[0].merchant_name or name)
    for col in ("Receipt", "Date", "Kind", "Direction", "Amount", "Category"):
        table.add_column(col)
    for tx in rows:
        category = Text(
            resolve_category(tx, receipt_map, merchant_map),
            style="" if is_user_categorised(tx, receipt_map, merchant_map) else "dim",
        )
        table.add_row(
            tx.receipt_number,
            tx.timestamp.strftime("%Y-%m-%d %H:%M") if tx.timestamp else "",
            tx.kind.value,
            tx.direction.value,
            _money(tx.amount),
            category,
        )
    console.print(table)
    return 0


def cmd_map_merchant(name: str, category: str, *, database_url: str | None = None) -> int:
    """Record a user category override for a merchant."""

    from .store import SqlCategoryMappingStore

    url = _resolve_database_url(database_url)
    if url is None:
        return 1
    try:
        _prepare_database(url)
        SqlCategoryMappingStore(database_url=url).set_mapping(name, category)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: mapping update failed: {e}", file=sys.stderr)
        return 1
    console.print(f"Mapped {name!r} -> {category!r}")
    return 0


def cmd_reset(*, database_url: str | None = None) -> int:
    """Delete every stored transaction (category mappings are kept)."""

    from .store import SqlTransactionStore

    url = _resolve_database_url(database_url)
    if url is None:
        return 1
    try:
        _prepare_database(url)
        deleted = SqlTransactionStore(database_url=url).delete_all()
    except Exception as e:
        print(f"Error: reset failed: {e}", file=sys.stderr)
        return 1
    console.print(f"Deleted {deleted} transactions.")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Extract M-Pesa transactions from SMS exports and report spending insights. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)


def _exit(rc: int) -> None:
    if rc != 0:
        raise typer.Exit(code=rc)


# Module-level option objects so no calls appear in parameter defaults.
EXPORT_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--export-path",
    help="Path to an SMS export (.csv, .json or .jsonl)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a friendly error instead
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
WHOLE_WORDS_OPTION: OptionInfo = typer.Option(
    False, "--whole-words", help="Match single-word category keywords as whole words only."
)


@app.command("sync")
def sync_cmd(
    export_path: Annotated[Path, EXPORT_PATH_OPTION],
    *,
    lookback_months: int = typer.Option(
        3, "--lookback-months", help="How many months back to import (1, 3, 6 or 12)."
    ),
    whole_words: bool = WHOLE_WORDS_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Import M-Pesa messages from an SMS export."""

    _exit(
        cmd_sync(
            str(export_path),
            lookback_months=lookback_months,
            whole_words=whole_words,
            database_url=database_url,
        )
    )


@app.command("insights")
def insights_cmd(
    *,
    top_n: int = typer.Option(5, "--top-n", help="Number of frequent merchants to list."),
    recurring_threshold: int = typer.Option(
        2, "--recurring-threshold", help="Payments to one paybill that count as recurring."
    ),
    min_group_size: int = typer.Option(
        2, "--min-group-size", help="Smallest transaction group worth a category suggestion."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Report frequent merchants, recurring bills and category suggestions."""

    _exit(
        cmd_insights(
            top_n=top_n,
            recurring_threshold=recurring_threshold,
            min_group_size=min_group_size,
            as_json=as_json,
            database_url=database_url,
        )
    )


@app.command("parse")
def parse_cmd(
    text: str = typer.Option(..., "--text", help="Message text to parse."),
    *,
    whole_words: bool = WHOLE_WORDS_OPTION,
) -> None:
    """Parse a single message without touching the database."""

    _exit(cmd_parse(text, whole_words=whole_words))


@app.command("merchant")
def merchant_cmd(
    name: str = typer.Argument(..., help="Merchant name (case and spacing are ignored)."),
    *,
    limit: int = typer.Option(20, "--limit", help="Maximum transactions to show."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Show recent transactions for a merchant.

    Categories come from user mappings when set; dimmed ones are auto-detected.
    """

    _exit(cmd_merchant(name, limit=limit, database_url=database_url))


@app.command("map-merchant")
def map_merchant_cmd(
    name: str = typer.Argument(..., help="Merchant name to map."),
    category: str = typer.Argument(..., help="Category to assign."),
    *,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Map a merchant to a category; it no longer appears in suggestions."""

    _exit(cmd_map_merchant(name, category, database_url=database_url))


@app.command("reset")
def reset_cmd(
    *,
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Delete all stored transactions."""

    if not yes:
        typer.confirm("Delete all stored transactions?", abort=True)
    _exit(cmd_reset(database_url=database_url))


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
