#!/usr/bin/env python3
"""
Email Service command line
Fetch the configured mailboxes, show stats or mark a message as read
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from email_service.modules.email_data import EmailFetchOptions
from email_service.modules.email_service import EmailService
from email_service.modules.exceptions import EmailServiceError
from email_service.utils.config import Config
from email_service.utils.structured_logging import setup_logging


def _read_filter(value: str) -> Optional[bool]:
    value = value.lower()
    if value == "all":
        return None
    return value == "read"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="email-service",
        description="Multi-account IMAP fetcher and notification sender",
    )
    parser.add_argument("--env-file", default=".env", help="Path to configuration file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="Fetch emails from all accounts")
    fetch.add_argument("--limit", type=int, default=0, help="Maximum number of emails (0 = all)")
    fetch.add_argument("--offset", type=int, default=0, help="Number of emails to skip")
    fetch.add_argument(
        "--read",
        choices=["all", "read", "unread"],
        default="all",
        help="Filter on read status",
    )
    fetch.add_argument("--with-body", action="store_true", help="Include bodies in the output")

    subparsers.add_parser("stats", help="Show total and unread counts")

    mark = subparsers.add_parser("mark-read", help="Mark an email as read")
    mark.add_argument("email_id", help="Email id in the form <account>:<sequence>")

    return parser


def run(args: argparse.Namespace, service: EmailService) -> dict:
    """Execute one command and return its JSON-serializable result"""
    if args.command == "fetch":
        options = EmailFetchOptions(
            limit=args.limit,
            offset=args.offset,
            read=_read_filter(args.read),
        )
        result = service.fetch_emails_with_status(options)
        emails = []
        for message in result.emails:
            entry = message.to_dict()
            if not args.with_body:
                entry.pop("body", None)
                entry.pop("html", None)
            emails.append(entry)
        return {
            "emails": emails,
            "count": len(emails),
            "failed_accounts": result.failed_accounts,
        }

    if args.command == "stats":
        return service.get_email_stats()

    if args.command == "mark-read":
        service.mark_email_as_read(args.email_id)
        return {"id": args.email_id, "read": True}

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    config = Config(args.env_file)
    # stdout carries the JSON result
    setup_logging(config.service.system, stream=sys.stderr)
    logger = logging.getLogger("EmailService")

    try:
        config.validate()
        service = EmailService(config.service)
        result = run(args, service)
    except EmailServiceError as e:
        logger.error(f"{args.command} failed: {e}")
        print(json.dumps({"error": str(e)}))
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
