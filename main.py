#!/usr/bin/env python3
"""
ReviewDesk -- management commands.

Usage:
  python main.py create-admin --email you@example.com --username you
  python main.py recompute-invoices
  python main.py sales-overview
  python main.py sales-overview --json

create-admin prompts for the password so it never lands in shell history.
recompute-invoices re-derives the stored status of every invoice from its
payments and due date (run it daily so OVERDUE shows up without a visit).
"""

import argparse
import getpass
import json
import logging
import sys

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from sales.money import cents_to_dollars
from sales.rollup import MAX_INVOICES, overview
from sales.store import SalesStore

MIN_PASSWORD_LENGTH = 8


def create_admin(args: argparse.Namespace) -> int:
    store = UserStore()
    try:
        if store.get_by_email(args.email.lower()) is not None:
            print(f"  [!] A user with e-mail {args.email} already exists.")
            return 1
        password = getpass.getpass("Password: ")
        if len(password) < MIN_PASSWORD_LENGTH:
            print(f"  [!] Password must be at least {MIN_PASSWORD_LENGTH} characters.")
            return 1
        if getpass.getpass("Repeat password: ") != password:
            print("  [!] Passwords do not match.")
            return 1
        user_id = store.create_user(
            User(
                email=args.email.lower(),
                role="admin",
                username=args.username,
                name=args.name or "",
                hashed_password=hash_password(password),
            )
        )
    finally:
        store.close()
    print(f"Admin user {user_id} created.")
    return 0


def recompute_invoices(args: argparse.Namespace) -> int:
    store = SalesStore()
    try:
        changed = 0
        invoices = store.list_invoices(limit=MAX_INVOICES)
        for invoice in invoices:
            if store.recompute_invoice_status(invoice.id) != invoice.status:
                changed += 1
    finally:
        store.close()
    print(f"{len(invoices)} invoice(s) checked, {changed} status change(s).")
    return 0


def sales_overview(args: argparse.Namespace) -> int:
    store = SalesStore()
    try:
        data = overview(store)
        currency = store.get_settings().currency
    finally:
        store.close()

    if args.json:
        print(json.dumps(data, indent=2))
        return 0

    print(f"\nFiscal year {data['fiscal_year_label']} ({data['fiscal_year_start']} to {data['fiscal_year_end']})")
    print("-" * 40)
    print(f"  Sales:            {currency} {cents_to_dollars(data['total_sales_cents'])}")
    print(f"  Overdue balance:  {currency} {cents_to_dollars(data['overdue_balance_cents'])}")
    print(f"  Paid, last 30d:   {currency} {cents_to_dollars(data['recent_payments_cents'])}")
    for fy_label, total in data["fiscal_year_totals"].items():
        print(f"  FY {fy_label}:         {currency} {cents_to_dollars(total)}")
    print()
    return 0


def main() -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")

    parser = argparse.ArgumentParser(
        prog="reviewdesk",
        description="ReviewDesk management commands.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_admin = sub.add_parser("create-admin", help="Create an admin user")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--username", default=None)
    p_admin.add_argument("--name", default=None)
    p_admin.set_defaults(func=create_admin)

    p_recompute = sub.add_parser("recompute-invoices", help="Re-derive stored invoice statuses")
    p_recompute.set_defaults(func=recompute_invoices)

    p_overview = sub.add_parser("sales-overview", help="Print the fiscal-year sales overview")
    p_overview.add_argument("--json", action="store_true", help="Output as JSON")
    p_overview.set_defaults(func=sales_overview)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
