"""CLI entry point for jmapmail."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .commands import (
    archive_cmd,
    attachment_cmd,
    bulk_cmd,
    create_label_cmd,
    delete_label_cmd,
    label_cmd,
    list_labels_cmd,
    list_mailboxes_cmd,
    list_threads_cmd,
    mark_read_cmd,
    move_cmd,
    read_message_cmd,
    search_cmd,
    send_cmd,
    show_thread_cmd,
    trash_cmd,
)
from .config import Config, load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("jmapmail")


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to a parser."""
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=Path("config.toml"),
        help="Path to configuration file (defaults are used if it does not exist)",
    )
    parser.add_argument(
        "--session-url",
        type=str,
        help="Override JMAP session URL",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description="Fastmail/JMAP mailbox tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_common_args(parser)
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    mailboxes_parser = subparsers.add_parser("mailboxes", help="List mailboxes with counts")
    add_common_args(mailboxes_parser)

    threads_parser = subparsers.add_parser("threads", help="List threads in a mailbox")
    add_common_args(threads_parser)
    threads_parser.add_argument("--folder-id", type=str, help="Mailbox id (default: inbox)")
    threads_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum threads to list (default: 50)",
    )

    thread_parser = subparsers.add_parser("thread", help="Show the messages of a thread")
    add_common_args(thread_parser)
    thread_parser.add_argument("thread_id", help="Thread id")

    read_parser = subparsers.add_parser("read", help="Read and display a message")
    add_common_args(read_parser)
    read_parser.add_argument("message_id", help="Message id")

    search_parser = subparsers.add_parser("search", help="Search messages")
    add_common_args(search_parser)
    search_parser.add_argument("query", nargs="?", help="Free-text query")
    search_parser.add_argument("--from", dest="from_email", type=str, help="Only messages from this sender")
    search_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Page size (default: 20)",
    )
    search_parser.add_argument("--page-token", type=str, help="Token from a previous page")

    labels_parser = subparsers.add_parser("labels", help="List labels")
    add_common_args(labels_parser)

    create_label_parser = subparsers.add_parser("create-label", help="Create a label")
    add_common_args(create_label_parser)
    create_label_parser.add_argument("name", help="Label name")

    delete_label_parser = subparsers.add_parser("delete-label", help="Delete a label")
    add_common_args(delete_label_parser)
    delete_label_parser.add_argument("name", help="Label name")

    archive_parser = subparsers.add_parser("archive", help="Archive a thread")
    add_common_args(archive_parser)
    archive_parser.add_argument("thread_id", help="Thread id")

    trash_parser = subparsers.add_parser("trash", help="Move a thread to trash")
    add_common_args(trash_parser)
    trash_parser.add_argument("thread_id", help="Thread id")

    mark_read_parser = subparsers.add_parser("mark-read", help="Mark a thread read")
    add_common_args(mark_read_parser)
    mark_read_parser.add_argument("thread_id", help="Thread id")
    mark_read_parser.add_argument("--unread", action="store_true", help="Mark unread instead")

    label_parser = subparsers.add_parser("label", help="Apply a label to a message")
    add_common_args(label_parser)
    label_parser.add_argument("message_id", help="Message id")
    label_parser.add_argument("label", help="Label name or id")

    move_parser = subparsers.add_parser("move", help="Move a thread to a folder")
    add_common_args(move_parser)
    move_parser.add_argument("thread_id", help="Thread id")
    move_parser.add_argument("folder", help="Destination folder name")

    bulk_archive_parser = subparsers.add_parser("bulk-archive", help="Archive inbox mail from senders")
    add_common_args(bulk_archive_parser)
    bulk_archive_parser.add_argument("senders", nargs="+", help="Sender addresses")

    bulk_trash_parser = subparsers.add_parser("bulk-trash", help="Trash inbox mail from senders")
    add_common_args(bulk_trash_parser)
    bulk_trash_parser.add_argument("senders", nargs="+", help="Sender addresses")

    send_parser = subparsers.add_parser("send", help="Send a message")
    add_common_args(send_parser)
    send_parser.add_argument("to", help="Recipients")
    send_parser.add_argument("subject", help="Subject line")
    send_parser.add_argument("body", help="Message body")
    send_parser.add_argument("--cc", type=str, help="Cc recipients")
    send_parser.add_argument("--bcc", type=str, help="Bcc recipients")
    send_parser.add_argument("--html", action="store_true", help="Body is HTML")
    send_parser.add_argument(
        "--attach",
        type=Path,
        action="append",
        dest="attachments",
        help="File to attach (repeatable)",
    )

    attachment_parser = subparsers.add_parser("attachment", help="Download an attachment")
    add_common_args(attachment_parser)
    attachment_parser.add_argument("message_id", help="Message id")
    attachment_parser.add_argument("attachment_id", help="Attachment id")
    attachment_parser.add_argument("-o", "--output", type=Path, required=True, help="Output file")

    return parser


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to config."""
    if getattr(args, "session_url", None):
        config.jmap.session_url = args.session_url
    return config


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    # Show help if no command specified
    if not args.command:
        parser.print_help()
        sys.exit(0)

    if args.config.exists():
        config = load_config(args.config)
    else:
        logger.debug(f"Configuration file not found: {args.config}; using defaults")
        config = Config()
    config = apply_cli_overrides(config, args)
    logging.getLogger().setLevel(config.logging.level)

    if not config.jmap.api_token:
        logger.error("JMAPMAIL_API_TOKEN is not set")
        sys.exit(1)

    if args.command == "mailboxes":
        asyncio.run(list_mailboxes_cmd(config))
    elif args.command == "threads":
        asyncio.run(list_threads_cmd(config, args.folder_id, args.limit))
    elif args.command == "thread":
        asyncio.run(show_thread_cmd(config, args.thread_id))
    elif args.command == "read":
        asyncio.run(read_message_cmd(config, args.message_id))
    elif args.command == "search":
        asyncio.run(search_cmd(config, args.query, args.limit, args.page_token, args.from_email))
    elif args.command == "labels":
        asyncio.run(list_labels_cmd(config))
    elif args.command == "create-label":
        asyncio.run(create_label_cmd(config, args.name))
    elif args.command == "delete-label":
        asyncio.run(delete_label_cmd(config, args.name))
    elif args.command == "archive":
        asyncio.run(archive_cmd(config, args.thread_id))
    elif args.command == "trash":
        asyncio.run(trash_cmd(config, args.thread_id))
    elif args.command == "mark-read":
        asyncio.run(mark_read_cmd(config, args.thread_id, unread=args.unread))
    elif args.command == "label":
        asyncio.run(label_cmd(config, args.message_id, args.label))
    elif args.command == "move":
        asyncio.run(move_cmd(config, args.thread_id, args.folder))
    elif args.command == "bulk-archive":
        asyncio.run(bulk_cmd(config, args.senders, "archive"))
    elif args.command == "bulk-trash":
        asyncio.run(bulk_cmd(config, args.senders, "trash"))
    elif args.command == "send":
        asyncio.run(
            send_cmd(
                config,
                args.to,
                args.subject,
                args.body,
                cc=args.cc,
                bcc=args.bcc,
                html=args.html,
                attachments=args.attachments,
            )
        )
    elif args.command == "attachment":
        asyncio.run(attachment_cmd(config, args.message_id, args.attachment_id, args.output))


if __name__ == "__main__":
    main()
