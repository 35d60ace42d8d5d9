"""
Mail commands for Outlook CLI

List, read, search, send, reply, forward, delete and mark messages; list
folders and attachments; download attachments; show the signed-in user.
"""

import argparse
import base64
import sys
from datetime import timezone
from pathlib import Path

import html2text

from .calendar import parse_time_expression
from .client import Operation, get_client
from .common import format_graph_datetime, page_size, print_json, split_addresses

DEFAULT_LIMIT = 10

MESSAGE_SELECT = 'id,subject,from,receivedDateTime,isRead,hasAttachments,bodyPreview'
ATTACHMENT_SELECT = 'id,name,contentType,size,isInline'


# ============================================================================
# OPERATIONS
# ============================================================================


def recipients(addresses):
    """Graph recipient list from plain email addresses"""
    return [{'emailAddress': {'address': addr}} for addr in addresses]


def message_body(content, html=False):
    return {'contentType': 'HTML' if html else 'Text', 'content': content}


def list_messages_operation(folder='inbox', limit=DEFAULT_LIMIT, unread=False):
    """List messages in a folder, newest first"""
    params = {
        '$top': str(page_size(limit, DEFAULT_LIMIT)),
        '$select': MESSAGE_SELECT,
    }
    if unread:
        params['$filter'] = 'isRead eq false'
    else:
        params['$orderby'] = 'receivedDateTime desc'
    return Operation('GET', f'/me/mailFolders/{folder}/messages', params, paginate=True,
                     description=f"list {folder} messages")


def search_operation(query, limit=DEFAULT_LIMIT, subject_only=False):
    """Full-text search across all folders ($orderby is not allowed with $search)"""
    term = f'subject:{query}' if subject_only else query
    params = {
        '$search': f'"{term}"',
        '$top': str(page_size(limit, DEFAULT_LIMIT)),
        '$select': MESSAGE_SELECT,
    }
    return Operation('GET', '/me/messages', params, paginate=True,
                     description=f"search messages for '{query}'")


def poll_operation(since, limit=DEFAULT_LIMIT):
    """Inbox messages received after `since` (aware datetime)"""
    since_str = since.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
    params = {
        '$filter': f'receivedDateTime gt {since_str}',
        '$orderby': 'receivedDateTime desc',
        '$top': str(page_size(limit, DEFAULT_LIMIT)),
        '$select': MESSAGE_SELECT,
    }
    return Operation('GET', '/me/mailFolders/inbox/messages', params, paginate=True,
                     description=f"poll messages since {since_str}")


def get_message_operation(message_id):
    params = {'$expand': f'attachments($select={ATTACHMENT_SELECT})'}
    return Operation('GET', f'/me/messages/{message_id}', params,
                     description=f"get message {message_id}")


def send_operation(to, subject, body, html=False, cc=None, bcc=None):
    message = {
        'subject': subject,
        'body': message_body(body, html),
        'toRecipients': recipients(to),
    }
    if cc:
        message['ccRecipients'] = recipients(cc)
    if bcc:
        message['bccRecipients'] = recipients(bcc)
    return Operation('POST', '/me/sendMail', body={'message': message, 'saveToSentItems': True},
                     description=f"send mail to {', '.join(to)}")


def reply_operation(message_id, comment, reply_all=False):
    action = 'replyAll' if reply_all else 'reply'
    return Operation('POST', f'/me/messages/{message_id}/{action}', body={'comment': comment},
                     description=f"{action} to message {message_id}")


def forward_operation(message_id, to, comment=None):
    body = {'toRecipients': recipients(to)}
    if comment:
        body['comment'] = comment
    return Operation('POST', f'/me/messages/{message_id}/forward', body=body,
                     description=f"forward message {message_id}")


def delete_operation(message_id):
    return Operation('DELETE', f'/me/messages/{message_id}',
                     description=f"delete message {message_id}")


def mark_read_operation(message_id, read=True):
    return Operation('PATCH', f'/me/messages/{message_id}', body={'isRead': read},
                     description=f"mark message {message_id} as {'read' if read else 'unread'}")


def unread_count_operation(folder='inbox'):
    return Operation('GET', f'/me/mailFolders/{folder}',
                     {'$select': 'displayName,unreadItemCount,totalItemCount'},
                     description=f"count messages in {folder}")


def list_attachments_operation(message_id):
    return Operation('GET', f'/me/messages/{message_id}/attachments',
                     {'$select': ATTACHMENT_SELECT}, paginate=True,
                     description=f"list attachments of message {message_id}")


def get_attachment_operation(message_id, attachment_id):
    return Operation('GET', f'/me/messages/{message_id}/attachments/{attachment_id}',
                     description=f"get attachment {attachment_id}")


def list_folders_operation():
    params = {'$top': '100', '$select': 'id,displayName,unreadItemCount,totalItemCount'}
    return Operation('GET', '/me/mailFolders', params, paginate=True,
                     description="list mail folders")


def whoami_operation():
    return Operation('GET', '/me', {'$select': 'displayName,mail,userPrincipalName,id'},
                     description="get signed-in user")


# ============================================================================
# DISPLAY
# ============================================================================

def display_message_summary(msg):
    """Display a single message in list format"""
    date_str = format_graph_datetime(msg.get('receivedDateTime'))

    from_field = (msg.get('from') or {}).get('emailAddress', {})
    sender = from_field.get('name') or from_field.get('address', 'Unknown')
    subject = msg.get('subject') or '(No subject)'

    unread_mark = '●' if not msg.get('isRead', True) else ' '
    attachment_mark = ' 📎' if msg.get('hasAttachments') else ''

    print(f"{unread_mark} [{date_str}] {sender}")
    print(f"  Subject: {subject}{attachment_mark}")
    print(f"  ID: {msg['id']}")
    print()


def display_message(msg, html=False):
    """Display a single message with full details"""
    from_field = (msg.get('from') or {}).get('emailAddress', {})
    sender_name = from_field.get('name', '')
    sender_email = from_field.get('address', '')
    sender = f"{sender_name} <{sender_email}>" if sender_name else sender_email

    to_list = [r.get('emailAddress', {}).get('address', '') for r in msg.get('toRecipients', [])]

    print("\n" + "=" * 80)
    print(f"From:    {sender}")
    print(f"To:      {', '.join(to_list)}")
    print(f"Date:    {format_graph_datetime(msg.get('receivedDateTime'), '%Y-%m-%d %H:%M:%S')}")
    print(f"Subject: {msg.get('subject') or '(No subject)'}")
    print(f"Read:    {'yes' if msg.get('isRead') else 'no'}")
    print(f"ID:      {msg['id']}")

    attachments = [att for att in msg.get('attachments', []) if not att.get('isInline', False)]
    if attachments:
        print(f"\nAttachments ({len(attachments)}):")
        for att in attachments:
            print(f"  📎 {att.get('name', 'Unknown')} ({format_size(att.get('size', 0))})")
            print(f"     ID: {att.get('id', 'Unknown')}")

    print("=" * 80 + "\n")

    body = msg.get('body', {})
    content = body.get('content', '')
    if body.get('contentType', 'text').lower() == 'html' and not html:
        # Convert HTML to plain text
        h = html2text.HTML2Text()
        h.ignore_links = False
        h.ignore_images = True
        content = h.handle(content)

    print(content)
    print("\n" + "=" * 80 + "\n")


def format_size(bytes_size):
    """Format byte size to human-readable string"""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.1f}{unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.1f}TB"


def render_messages(messages, args, empty_text="No messages found"):
    """Print a (lazy) sequence of messages, as text or JSON"""
    if args.json:
        print_json(list(messages))
        return

    count = 0
    for msg in messages:
        display_message_summary(msg)
        count += 1

    if count == 0:
        print(empty_text)
    else:
        print("● = unread")


def read_body_argument(value):
    """'-' means read the body from stdin"""
    if value == '-':
        return sys.stdin.read()
    return value


# ============================================================================
# CLI COMMAND FUNCTIONS
# ============================================================================

def cmd_inbox(args):
    """Handle 'outlook-cli mail inbox' command"""
    client = get_client(args)
    pages = client.execute(list_messages_operation(args.folder, args.limit))
    render_messages(pages.items(args.limit), args)


def cmd_unread(args):
    """Handle 'outlook-cli mail unread' command"""
    client = get_client(args)
    pages = client.execute(list_messages_operation(args.folder, args.limit, unread=True))
    render_messages(pages.items(args.limit), args, empty_text="No unread messages")


def cmd_search(args):
    """Handle 'outlook-cli mail search' command"""
    client = get_client(args)
    pages = client.execute(search_operation(args.query, args.limit, subject_only=args.subject))
    render_messages(pages.items(args.limit), args,
                    empty_text=f"No messages found for: {args.query}")


def cmd_poll(args):
    """Handle 'outlook-cli mail poll' command"""
    try:
        since = parse_time_expression(args.since)
    except ValueError as e:
        print(f"Error in SINCE: {e}", file=sys.stderr)
        sys.exit(1)

    client = get_client(args)
    pages = client.execute(poll_operation(since, args.limit))
    render_messages(pages.items(args.limit), args,
                    empty_text=f"No new messages since {args.since}")


def cmd_get(args):
    """Handle 'outlook-cli mail get' command"""
    client = get_client(args)
    msg = client.execute(get_message_operation(args.id))
    if args.json:
        print_json(msg)
    else:
        display_message(msg, html=args.html)


def cmd_send(args):
    """Handle 'outlook-cli mail send' command"""
    to = split_addresses(args.to)
    if not to:
        print("Error: At least one recipient is required", file=sys.stderr)
        sys.exit(1)

    client = get_client(args)
    client.execute(send_operation(to, args.subject, read_body_argument(args.body), html=args.html,
                                  cc=split_addresses(args.cc), bcc=split_addresses(args.bcc)))
    print(f"✓ Email sent to: {', '.join(to)}")


def cmd_reply(args):
    """Handle 'outlook-cli mail reply' command"""
    client = get_client(args)
    client.execute(reply_operation(args.id, read_body_argument(args.message), reply_all=args.all))
    print(f"✓ {'Replied all' if args.all else 'Replied'} to: {args.id}")


def cmd_forward(args):
    """Handle 'outlook-cli mail forward' command"""
    to = split_addresses(args.to)
    if not to:
        print("Error: At least one recipient is required", file=sys.stderr)
        sys.exit(1)

    client = get_client(args)
    client.execute(forward_operation(args.id, to, args.comment))
    print(f"✓ Forwarded to: {', '.join(to)}")


def cmd_delete(args):
    """Handle 'outlook-cli mail delete' command"""
    client = get_client(args)
    client.execute(delete_operation(args.id))
    print(f"✓ Deleted: {args.id}")


def cmd_mark_read(args):
    """Handle 'outlook-cli mail mark-read' command"""
    client = get_client(args)
    result = client.execute(mark_read_operation(args.id, read=not args.unread))
    subject = (result or {}).get('subject') or args.id
    state = 'unread' if args.unread else 'read'
    print(f"✓ Marked as {state}: {subject}")


def cmd_unread_count(args):
    """Handle 'outlook-cli mail unread-count' command"""
    client = get_client(args)
    folder = client.execute(unread_count_operation(args.folder))
    if args.json:
        print_json(folder)
        return
    print(f"Unread messages: {folder.get('unreadItemCount', 0)}")


def cmd_folders(args):
    """Handle 'outlook-cli mail folders' command"""
    client = get_client(args)
    folders = client.execute(list_folders_operation()).items()

    if args.json:
        print_json(list(folders))
        return

    print("Mail Folders:\n")
    for folder in folders:
        unread = folder.get('unreadItemCount') or 0
        total = folder.get('totalItemCount') or 0
        unread_str = f" ({unread} unread)" if unread else ""
        print(f"  {folder.get('displayName', '')} - {total} items{unread_str}")


def cmd_attachments(args):
    """Handle 'outlook-cli mail attachments' command"""
    client = get_client(args)
    attachments = client.execute(list_attachments_operation(args.id)).collect()

    if args.json:
        print_json(attachments)
        return

    if not attachments:
        print("No attachments")
        return

    print("Attachments:")
    for att in attachments:
        inline = ' [inline]' if att.get('isInline') else ''
        print(f"  📎 {att.get('name', 'Unknown')} ({format_size(att.get('size', 0))}){inline}")
        print(f"     ID: {att.get('id')}")


def cmd_download_attachment(args):
    """Handle 'outlook-cli mail download-attachment' command"""
    client = get_client(args)
    attachment = client.execute(get_attachment_operation(args.message_id, args.attachment_id))

    name = attachment.get('name') or 'attachment'
    content_bytes = attachment.get('contentBytes')

    if not content_bytes:
        print("Error: Attachment has no content (item and reference attachments "
              "cannot be downloaded)", file=sys.stderr)
        sys.exit(1)

    content = base64.b64decode(content_bytes)

    # Determine output path
    if args.output:
        output_path = Path(args.output).expanduser()
        if output_path.is_dir():
            output_path = output_path / Path(name).name
    else:
        output_path = Path.cwd() / Path(name).name

    if output_path.exists() and not args.overwrite:
        print(f"Error: File exists: {output_path}", file=sys.stderr)
        print("Use --overwrite to overwrite existing files", file=sys.stderr)
        sys.exit(1)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(content)

    print(f"✓ Downloaded: {name}")
    print(f"  Saved to: {output_path}")
    print(f"  Size: {format_size(len(content))}")


def cmd_whoami(args):
    """Handle 'outlook-cli mail whoami' command"""
    client = get_client(args)
    user = client.execute(whoami_operation())
    if args.json:
        print_json(user)
        return
    print(f"User:  {user.get('displayName') or ''}")
    print(f"Email: {user.get('mail') or user.get('userPrincipalName') or ''}")


# Setup and routing

def _add_limit(parser, default=DEFAULT_LIMIT):
    parser.add_argument('-n', '--limit', type=int, default=default, metavar='N',
                        help=f'Number of messages to show (default: {default})')


def setup_parser(subparsers):
    """Setup argparse subcommands for mail"""

    # outlook-cli mail inbox
    inbox_parser = subparsers.add_parser(
        'inbox',
        aliases=['list'],
        help='List recent messages',
        description='List the most recent messages in a folder (Inbox by default).'
    )
    _add_limit(inbox_parser)
    inbox_parser.add_argument('-f', '--folder', default='inbox', metavar='FOLDER',
                              help='Folder name or ID (default: inbox)')
    inbox_parser.set_defaults(func=cmd_inbox)

    # outlook-cli mail unread
    unread_parser = subparsers.add_parser('unread', help='List unread messages')
    _add_limit(unread_parser)
    unread_parser.add_argument('-f', '--folder', default='inbox', metavar='FOLDER',
                               help='Folder name or ID (default: inbox)')
    unread_parser.set_defaults(func=cmd_unread)

    # outlook-cli mail search
    search_parser = subparsers.add_parser(
        'search',
        help='Search messages',
        description='Search messages across all folders.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  outlook-cli mail search invoice               # Search subject, body, sender...
  outlook-cli mail search invoice --subject     # Search subjects only
"""
    )
    search_parser.add_argument('query', help='Search query')
    search_parser.add_argument('--subject', action='store_true',
                               help='Only match the subject')
    _add_limit(search_parser)
    search_parser.set_defaults(func=cmd_search)

    # outlook-cli mail poll
    poll_parser = subparsers.add_parser(
        'poll',
        help='List messages received since a point in time',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  outlook-cli mail poll 2025-01-15T09:00:00Z
  outlook-cli mail poll "2 hours ago"
"""
    )
    poll_parser.add_argument('since', metavar='SINCE',
                             help='ISO 8601 datetime or relative expression')
    _add_limit(poll_parser)
    poll_parser.set_defaults(func=cmd_poll)

    # outlook-cli mail get
    get_parser = subparsers.add_parser('get', help='Show a message with its body')
    get_parser.add_argument('id', metavar='ID', help='Message ID')
    get_parser.add_argument('--html', action='store_true',
                            help='Display HTML content as-is (default: convert to text)')
    get_parser.set_defaults(func=cmd_get)

    # outlook-cli mail send
    send_parser = subparsers.add_parser(
        'send',
        help='Send an email',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  outlook-cli mail send bob@example.com -s "Hello" -b "Hi Bob"
  outlook-cli mail send a@example.com,b@example.com -s "Report" --html -b - < report.html
"""
    )
    send_parser.add_argument('to', help='Recipient address(es), comma-separated')
    send_parser.add_argument('-s', '--subject', required=True, help='Email subject')
    send_parser.add_argument('-b', '--body', required=True, help="Email body ('-' reads stdin)")
    send_parser.add_argument('--cc', help='CC address(es), comma-separated')
    send_parser.add_argument('--bcc', help='BCC address(es), comma-separated')
    send_parser.add_argument('--html', action='store_true', help='Send body as HTML')
    send_parser.set_defaults(func=cmd_send, mutating=True)

    # outlook-cli mail reply
    reply_parser = subparsers.add_parser('reply', help='Reply to a message')
    reply_parser.add_argument('id', metavar='ID', help='Message ID')
    reply_parser.add_argument('-m', '--message', required=True, help="Reply text ('-' reads stdin)")
    reply_parser.add_argument('--all', action='store_true', help='Reply to all recipients')
    reply_parser.set_defaults(func=cmd_reply, mutating=True)

    # outlook-cli mail forward
    forward_parser = subparsers.add_parser('forward', help='Forward a message')
    forward_parser.add_argument('id', metavar='ID', help='Message ID')
    forward_parser.add_argument('-t', '--to', required=True, help='Recipient address(es), comma-separated')
    forward_parser.add_argument('-c', '--comment', help='Optional comment')
    forward_parser.set_defaults(func=cmd_forward, mutating=True)

    # outlook-cli mail delete
    delete_parser = subparsers.add_parser('delete', help='Delete a message')
    delete_parser.add_argument('id', metavar='ID', help='Message ID')
    delete_parser.set_defaults(func=cmd_delete, mutating=True)

    # outlook-cli mail mark-read
    mark_read_parser = subparsers.add_parser('mark-read', help='Mark a message as read')
    mark_read_parser.add_argument('id', metavar='ID', help='Message ID')
    mark_read_parser.add_argument('--unread', action='store_true', help='Mark as unread instead')
    mark_read_parser.set_defaults(func=cmd_mark_read, mutating=True)

    # outlook-cli mail unread-count
    count_parser = subparsers.add_parser('unread-count', help='Show the number of unread messages')
    count_parser.add_argument('-f', '--folder', default='inbox', metavar='FOLDER',
                              help='Folder name or ID (default: inbox)')
    count_parser.set_defaults(func=cmd_unread_count)

    # outlook-cli mail folders
    folders_parser = subparsers.add_parser('folders', help='List mail folders')
    folders_parser.set_defaults(func=cmd_folders)

    # outlook-cli mail attachments
    attachments_parser = subparsers.add_parser('attachments', help='List attachments of a message')
    attachments_parser.add_argument('id', metavar='ID', help='Message ID')
    attachments_parser.set_defaults(func=cmd_attachments)

    # outlook-cli mail download-attachment
    download_parser = subparsers.add_parser(
        'download-attachment',
        help='Download an email attachment',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  outlook-cli mail download-attachment <MESSAGE_ID> <ATTACHMENT_ID>
  outlook-cli mail download-attachment <MESSAGE_ID> <ATTACHMENT_ID> -o ~/Downloads/
"""
    )
    download_parser.add_argument('message_id', metavar='MESSAGE_ID',
                                 help='Message ID containing the attachment')
    download_parser.add_argument('attachment_id', metavar='ATTACHMENT_ID',
                                 help='Attachment ID to download')
    download_parser.add_argument('-o', '--output', type=str, metavar='PATH',
                                 help='Output file or directory (default: current directory)')
    download_parser.add_argument('--overwrite', action='store_true',
                                 help='Overwrite existing file')
    download_parser.set_defaults(func=cmd_download_attachment)

    # outlook-cli mail whoami
    whoami_parser = subparsers.add_parser('whoami', help='Show the signed-in user')
    whoami_parser.set_defaults(func=cmd_whoami)


def handle_command(args):
    """Route to appropriate mail subcommand"""
    if hasattr(args, 'func'):
        args.func(args)
    else:
        print("Error: No mail subcommand specified", file=sys.stderr)
        sys.exit(1)
