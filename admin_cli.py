#!/usr/bin/env python3
"""
Admin CLI utility for the rewards backend.

Usage:
    python admin_cli.py issue-token --user-id admin-1 [--admin] [--minutes 60]
    python admin_cli.py seed-labels
    python admin_cli.py pending-withdrawals [--page 1]
    python admin_cli.py process-withdrawal --id <withdrawal id> --status approved [--notes "..."] [--reason "..."]
"""

import argparse
import asyncio
import sys
from datetime import timedelta

from core.database import close_db, init_db
from core.errors import RewardsError
from core.labels import DEFAULT_LABELS, LabelService
from core.security import create_access_token
from core.withdrawals import WithdrawalService


def issue_token_command(args):
    """Print a bearer token for local testing of the API."""
    role = "admin" if args.admin else "user"
    token = create_access_token(args.user_id, role=role, expires_delta=timedelta(minutes=args.minutes))
    print(token)
    return True


async def seed_labels_command(args):
    store = await init_db()
    try:
        created = await LabelService(store).seed_labels(DEFAULT_LABELS)
        print(f"✅ Seeded {created} label(s) ({len(DEFAULT_LABELS) - created} already present)")
        return True
    finally:
        await close_db()


async def pending_withdrawals_command(args):
    store = await init_db()
    try:
        result = await WithdrawalService(store).all_requests("pending", args.page, args.limit)
        items = result["items"]
        if not items:
            print("📝 No pending withdrawals.")
            return True

        print(f"📋 {result['pagination']['total']} pending withdrawal(s):")
        print("-" * 80)
        print(f"{'Id':<34} {'User':<20} {'Amount':>8}  {'Method':<15}")
        print("-" * 80)
        for item in items:
            print(f"{item['id']:<34} {item['userId']:<20} {item['amount']:>8}  {item['paymentMethod']:<15}")
        return True
    finally:
        await close_db()


async def process_withdrawal_command(args):
    store = await init_db()
    try:
        result = await WithdrawalService(store).process(args.id, args.status, args.notes, args.reason)
        print(f"✅ Withdrawal {args.id} is now {result['status']}")
        return True
    except RewardsError as e:
        print(f"❌ Error: {e.message}")
        return False
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Rewards backend admin CLI")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    token_parser = subparsers.add_parser('issue-token', help='Issue a signed access token')
    token_parser.add_argument('--user-id', required=True, help='Subject (user id) of the token')
    token_parser.add_argument('--admin', action='store_true', help='Give the token the admin role')
    token_parser.add_argument('--minutes', type=int, default=60, help='Lifetime in minutes')

    subparsers.add_parser('seed-labels', help='Create the default achievement labels')

    pending_parser = subparsers.add_parser('pending-withdrawals', help='List pending withdrawals')
    pending_parser.add_argument('--page', type=int, default=1)
    pending_parser.add_argument('--limit', type=int, default=50)

    process_parser = subparsers.add_parser('process-withdrawal', help='Move a withdrawal to a new status')
    process_parser.add_argument('--id', required=True, help='Withdrawal request id')
    process_parser.add_argument('--status', required=True,
                                choices=['approved', 'rejected', 'processing', 'completed'])
    process_parser.add_argument('--notes', default='', help='Admin notes')
    process_parser.add_argument('--reason', default='', help='Rejection reason')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    if args.command == 'issue-token':
        success = issue_token_command(args)
    elif args.command == 'seed-labels':
        success = asyncio.run(seed_labels_command(args))
    elif args.command == 'pending-withdrawals':
        success = asyncio.run(pending_withdrawals_command(args))
    else:
        success = asyncio.run(process_withdrawal_command(args))

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
