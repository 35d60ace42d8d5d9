"""
Draft commands for Outlook CLI

List, show, create, update, delete and send draft messages.
"""

import sys

from .client import Operation, get_client
from .common import page_size, print_json, split_addresses
from .mail import (
    DEFAULT_LIMIT, MESSAGE_SELECT, delete_operation, display_message,
    get_message_operation, message_body, read_body_argument,
    recipients, render_messages,
)


def draft_payload(subject=None, body=None, to=None, cc=None, html=False):
    """Message resource with only the given fields set"""
    draft = {}
    if subject is not None:
        draft['subject'] = subject
    if body is not None:
        draft['body'] = message_body(body, html)
    if to:
        draft['toRecipients'] = recipients(to)
    if cc:
        draft['ccRecipients'] = recipients(cc)
    return draft


def list_drafts_operation(limit=DEFAULT_LIMIT):
    params = {
        '$top': str(page_size(limit, DEFAULT_LIMIT)),
        '$select': MESSAGE_SELECT,
        '$orderby': 'lastModifiedDateTime desc',
    }
    return Operation('GET', '/me/mailFolders/drafts/messages', params, paginate=True,
                     description="list drafts")


def create_draft_operation(**fields):
    # POST /me/messages creates the message in the Drafts folder
    return Operation('POST', '/me/messages', body=draft_payload(**fields),
                     description="create draft")


def update_draft_operation(draft_id, **fields):
    return Operation('PATCH', f'/me/messages/{draft_id}', body=draft_payload(**fields),
                     description=f"update draft {draft_id}")


def send_draft_operation(draft_id):
    return Operation('POST', f'/me/messages/{draft_id}/send',
                     description=f"send draft {draft_id}")


# Command handlers

def _draft_fields(args):
    return dict(
        subject=args.subject,
        body=read_body_argument(args.body) if args.body is not None else None,
        to=split_addresses(args.to),
        cc=split_addresses(args.cc),
        html=args.html,
    )


def cmd_list(args):
    """Handle 'outlook-cli drafts list' command"""
    client = get_client(args)
    drafts = client.execute(list_drafts_operation(args.limit)).items(args.limit)
    render_messages(drafts, args, empty_text="No drafts")


def cmd_get(args):
    """Handle 'outlook-cli drafts get' command"""
    client = get_client(args)
    draft = client.execute(get_message_operation(args.id))
    if args.json:
        print_json(draft)
    else:
        display_message(draft, html=args.html)


def cmd_create(args):
    """Handle 'outlook-cli drafts create' command"""
    client = get_client(args)
    created = client.execute(create_draft_operation(**_draft_fields(args)))
    if args.json:
        print_json(created)
        return
    print(f"✓ Draft created: {created.get('id')}")


def cmd_update(args):
    """Handle 'outlook-cli drafts update' command"""
    fields = _draft_fields(args)
    if args.subject is None and args.body is None and not fields['to'] and not fields['cc']:
        print("Error: Nothing to update", file=sys.stderr)
        sys.exit(1)

    client = get_client(args)
    client.execute(update_draft_operation(args.id, **fields))
    print(f"✓ Draft updated: {args.id}")


def cmd_delete(args):
    """Handle 'outlook-cli drafts delete' command"""
    client = get_client(args)
    client.execute(delete_operation(args.id))
    print(f"✓ Draft deleted: {args.id}")


def cmd_send(args):
    """Handle 'outlook-cli drafts send' command"""
    client = get_client(args)
    client.execute(send_draft_operation(args.id))
    print(f"✓ Draft sent: {args.id}")


# Setup and routing

def _add_draft_fields(parser):
    parser.add_argument('-s', '--subject', help='Email subject')
    parser.add_argument('-b', '--body', help="Email body ('-' reads stdin)")
    parser.add_argument('-t', '--to', help='Recipient address(es), comma-separated')
    parser.add_argument('--cc', help='CC address(es), comma-separated')
    parser.add_argument('--html', action='store_true', help='Body is HTML')


def setup_parser(subparsers):
    """Setup argparse subcommands for drafts"""

    # outlook-cli drafts list
    list_parser = subparsers.add_parser('list', help='List draft emails')
    list_parser.add_argument('-n', '--limit', type=int, default=DEFAULT_LIMIT, metavar='N',
                             help=f'Number of drafts to show (default: {DEFAULT_LIMIT})')
    list_parser.set_defaults(func=cmd_list)

    # outlook-cli drafts get
    get_parser = subparsers.add_parser('get', help='Show a draft')
    get_parser.add_argument('id', metavar='ID', help='Draft ID')
    get_parser.add_argument('--html', action='store_true',
                            help='Display HTML content as-is (default: convert to text)')
    get_parser.set_defaults(func=cmd_get)

    # outlook-cli drafts create
    create_parser = subparsers.add_parser('create', help='Create a draft email')
    _add_draft_fields(create_parser)
    create_parser.set_defaults(func=cmd_create, mutating=True)

    # outlook-cli drafts update
    update_parser = subparsers.add_parser('update', help='Update a draft email')
    update_parser.add_argument('id', metavar='ID', help='Draft ID')
    _add_draft_fields(update_parser)
    update_parser.set_defaults(func=cmd_update, mutating=True)

    # outlook-cli drafts delete
    delete_parser = subparsers.add_parser('delete', help='Delete a draft')
    delete_parser.add_argument('id', metavar='ID', help='Draft ID')
    delete_parser.set_defaults(func=cmd_delete, mutating=True)

    # outlook-cli drafts send
    send_parser = subparsers.add_parser('send', help='Send a draft')
    send_parser.add_argument('id', metavar='ID', help='Draft ID')
    send_parser.set_defaults(func=cmd_send, mutating=True)


def handle_command(args):
    """Route to appropriate drafts subcommand"""
    if hasattr(args, 'func'):
        args.func(args)
    else:
        print("Error: No drafts subcommand specified", file=sys.stderr)
        sys.exit(1)
