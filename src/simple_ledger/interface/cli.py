from __future__ import annotations

import argparse
import getpass
import json
import sys
from dataclasses import asdict
from typing import Sequence

from pydantic import ValidationError

from simple_ledger.application.accounts import AccountRegistry
from simple_ledger.application.dashboard import FinanceDashboard
from simple_ledger.application.ledger import TransactionLedger
from simple_ledger.application.session import SessionContext
from simple_ledger.application.table import TransactionTable
from simple_ledger.domain.errors import LedgerValidationError, NotAuthenticatedError, validation_message
from simple_ledger.domain.models import ALL, AccountType, SortDirection, SortField, TransactionStatus, TransactionType
from simple_ledger.domain.schemas import AuthResult, SortState, Transaction, TransactionFilters
from simple_ledger.infrastructure.persistence.store import JsonFileStore, KeyValueStore
from simple_ledger.infrastructure.settings import Settings


def build_dashboard(settings: Settings | None = None, store: KeyValueStore | None = None) -> FinanceDashboard:
    settings = settings or Settings.from_env()
    store = store or JsonFileStore(settings.data_dir)
    session = SessionContext(store, settings=settings)
    session.initialize()
    return FinanceDashboard(
        session=session,
        ledger=TransactionLedger(store),
        accounts=AccountRegistry(store),
    )


def _format_row(txn: Transaction) -> str:
    sign = "+" if txn.type == TransactionType.INCOME else "-"
    account = f" [{txn.account_name}]" if txn.account_name else ""
    return f"{txn.date}  {sign}R$ {txn.amount:,.2f}  {txn.category:<14} {txn.description}{account}  ({txn.status.value})  {txn.id}"


def _report(result: AuthResult) -> int:
    if not result.ok:
        print(f"error: {result.message}", file=sys.stderr)
        return 1
    if result.user is not None:
        print(f"signed in as {result.user.username} ({result.user.id})")
    if result.message:
        print(result.message)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="simple-ledger", description="Personal finance ledger")
    sub = parser.add_subparsers(dest="command", required=True)

    signup = sub.add_parser("signup", help="Create an account and sign in")
    signup.add_argument("username")
    signup.add_argument("--email")

    login = sub.add_parser("login", help="Sign in")
    login.add_argument("identifier")

    sub.add_parser("logout", help="Sign out")
    sub.add_parser("whoami", help="Show the signed-in user")

    add = sub.add_parser("add", help="Record a transaction")
    add.add_argument("type", choices=[t.value for t in TransactionType])
    add.add_argument("amount")
    add.add_argument("description")
    add.add_argument("category")
    add.add_argument("--date")
    add.add_argument("--account-id")
    add.add_argument("--status", choices=[s.value for s in TransactionStatus])

    listing = sub.add_parser("list", help="List transactions")
    listing.add_argument("--search", default="")
    listing.add_argument("--category", default=ALL)
    listing.add_argument("--type", default=ALL)
    listing.add_argument("--account", default=ALL)
    listing.add_argument("--status", default=ALL)
    listing.add_argument("--sort", choices=[f.value for f in SortField], default=SortField.DATE.value)
    listing.add_argument("--asc", action="store_true")
    listing.add_argument("--recent", action="store_true", help="Only the five newest additions")

    sub.add_parser("summary", help="Totals, category breakdown and monthly history")

    export = sub.add_parser("export", help="Write the transactions JSON export")
    export.add_argument("--dir", default=".")

    accounts = sub.add_parser("accounts", help="Manage accounts and cards")
    acc_sub = accounts.add_subparsers(dest="accounts_command", required=True)
    acc_sub.add_parser("list")
    acc_add = acc_sub.add_parser("add")
    acc_add.add_argument("name")
    acc_add.add_argument("type", choices=[t.value for t in AccountType])
    acc_add.add_argument("bank")
    acc_add.add_argument("--brand")
    acc_add.add_argument("--issuer")
    acc_add.add_argument("--balance", default="0")
    acc_delete = acc_sub.add_parser("delete")
    acc_delete.add_argument("account_id")

    return parser


def run(args: argparse.Namespace, dashboard: FinanceDashboard) -> int:
    session = dashboard.session

    if args.command == "signup":
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        return _report(session.sign_up(args.username, password, args.email, confirm_password=confirm))
    if args.command == "login":
        return _report(session.sign_in(args.identifier, getpass.getpass("Password: ")))
    if args.command == "logout":
        session.sign_out()
        print("signed out")
        return 0
    if args.command == "whoami":
        user = session.current_user()
        print(user.model_dump_json(by_alias=True, exclude_none=True) if user else "not signed in")
        return 0

    if args.command == "add":
        txn = dashboard.add_transaction(
            {
                "type": args.type,
                "amount": args.amount,
                "description": args.description,
                "category": args.category,
                "date": args.date,
                "account_id": args.account_id,
                "status": args.status,
            }
        )
        print(_format_row(txn))
        return 0

    if args.command == "list":
        if args.recent:
            rows = dashboard.recent()
        else:
            try:
                filters = TransactionFilters(
                    search=args.search,
                    category=args.category,
                    type=args.type,
                    account=args.account,
                    status=args.status,
                )
            except ValidationError as exc:
                raise LedgerValidationError(validation_message(exc)) from exc
            direction = SortDirection.ASC if args.asc else SortDirection.DESC
            table = TransactionTable(filters=filters, sort=SortState(field=args.sort, direction=direction))
            rows = dashboard.table_rows(table)
        for txn in rows:
            print(_format_row(txn))
        return 0

    if args.command == "summary":
        payload = {
            "summary": asdict(dashboard.summary()),
            "expenses_by_category": [asdict(s) for s in dashboard.expense_breakdown()],
            "history": [asdict(m) for m in dashboard.history()],
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    if args.command == "export":
        print(dashboard.export_to(args.dir))
        return 0

    if args.command == "accounts":
        if args.accounts_command == "list":
            for account in dashboard.list_accounts():
                print(f"{account.id}  {account.name}  {account.type_label}  {account.bank}  R$ {account.balance:,.2f}")
            return 0
        if args.accounts_command == "add":
            account = dashboard.add_account(
                {
                    "name": args.name,
                    "type": args.type,
                    "bank": args.bank,
                    "brand": args.brand,
                    "issuer": args.issuer,
                    "balance": args.balance,
                }
            )
            print(account.id)
            return 0
        if args.accounts_command == "delete":
            print("deleted" if dashboard.delete_account(args.account_id) else "not found")
            return 0

    return 2


def main(argv: Sequence[str] | None = None, dashboard: FinanceDashboard | None = None) -> int:
    args = build_parser().parse_args(argv)
    dashboard = dashboard or build_dashboard()
    try:
        return run(args, dashboard)
    except NotAuthenticatedError:
        print("error: sign in first (simple-ledger login <username>)", file=sys.stderr)
        return 1
    except LedgerValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        dashboard.session.teardown()


if __name__ == "__main__":
    raise SystemExit(main())
