"""
Calendar commands for Outlook CLI

List, show, create, update and delete events, and accept or decline
invitations.
"""

import argparse
import re
import sys
from datetime import datetime, timedelta, timezone

from .client import Operation, get_client
from .common import format_graph_datetime, page_size, print_json, split_addresses

# Get local timezone
LOCAL_TZ = datetime.now().astimezone().tzinfo

DEFAULT_LIMIT = 10

EVENT_SELECT = 'id,subject,start,end,location,organizer,isAllDay,isOnlineMeeting,responseStatus'

# Seconds per relative time unit
_UNIT_SECONDS = {
    ('s', 'sec', 'secs', 'second', 'seconds'): 1,
    ('m', 'min', 'mins', 'minute', 'minutes'): 60,
    ('h', 'hr', 'hrs', 'hour', 'hours'): 3600,
    ('d', 'day', 'days'): 86400,
    ('w', 'wk', 'wks', 'week', 'weeks'): 604800,
    ('month', 'months'): 2629743,  # Average month in seconds
    ('y', 'yr', 'yrs', 'year', 'years'): 31556926,  # Average year in seconds
}

_RELATIVE_RE = re.compile(
    r'^([+-])?\s*(\d+)\s*([a-z]+)\s*(ago)?$'
)


def parse_time_expression(timestring, default_sign='-', default_tz=None):
    """Parse git-style time expressions

    Supports relative times ("2 days ago", "+3h", "1 week") and absolute
    dates ("2025-01-15", "2025-01-15T09:00:00Z", "tomorrow 14:00").

    Args:
        timestring: Expression to parse
        default_sign: Direction of an unsigned relative time, '-' (past) for
            --since style options and '+' (future) for scheduling
        default_tz: Zone for input without an offset (default: local time)

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: if the expression cannot be parsed
    """
    from dateutil.parser import parse as dateutil_parse

    if not timestring or not timestring.strip():
        raise ValueError("Empty date expression")

    expression = timestring.strip()
    now_local = datetime.now(LOCAL_TZ)

    relative_match = _RELATIVE_RE.match(expression.lower())
    if relative_match:
        sign, num, unit, ago = relative_match.groups()
        # Unknown units ("10 am") fall through to dateutil
        for names, unit_seconds in _UNIT_SECONDS.items():
            if unit in names:
                seconds = int(num) * unit_seconds
                if ago:
                    sign = '-'
                if (sign or default_sign) == '-':
                    seconds = -seconds
                return now_local + timedelta(seconds=seconds)

    # Keyword substitutions for common relative terms
    substitutions = [
        ("yesterday", (now_local - timedelta(days=1)).strftime("%Y-%m-%d")),
        ("today", now_local.strftime("%Y-%m-%d")),
        ("tomorrow", (now_local + timedelta(days=1)).strftime("%Y-%m-%d")),
    ]
    for keyword, substitution in substitutions:
        expression = re.sub(keyword, substitution, expression, flags=re.IGNORECASE)

    # Fall back to dateutil.parser for absolute dates
    try:
        dt = dateutil_parse(expression)
    except (ValueError, OverflowError) as e:
        raise ValueError(
            f"Invalid date expression: '{timestring}'. "
            f"Use formats like '2 days ago', '+1h', or ISO dates like '2025-01-15'."
        ) from e

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=LOCAL_TZ if default_tz is None else default_tz)
    return dt


def parse_duration(duration_str):
    """Parse duration string like '1h', '30m', '1h30m' into timedelta

    Supports formats like:
    - 30m, 1h, 2h30m
    - 1.5h (decimal hours)
    - Combinations: 1h 30m
    """
    if not duration_str:
        return None

    duration_str = duration_str.lower().strip()

    # Try simple decimal hours first (e.g., "1.5h")
    decimal_match = re.match(r'^(\d+\.\d+)h?$', duration_str)
    if decimal_match:
        return timedelta(hours=float(decimal_match.group(1)))

    hour_match = re.search(r'(\d+)\s*h', duration_str)
    min_match = re.search(r'(\d+)\s*m', duration_str)

    total_seconds = 0
    if hour_match:
        total_seconds += int(hour_match.group(1)) * 3600
    if min_match:
        total_seconds += int(min_match.group(1)) * 60

    if total_seconds == 0:
        raise ValueError(f"Invalid duration format: '{duration_str}'. Use formats like '1h', '30m', '1h30m'")

    return timedelta(seconds=total_seconds)


def graph_datetime(dt, all_day=False, time_zone='UTC'):
    """Graph dateTimeTimeZone for an aware datetime

    Timed events are sent in UTC. All-day events must start and end at
    midnight in the event's own time zone.
    """
    if all_day:
        return {'dateTime': dt.strftime('%Y-%m-%dT00:00:00'), 'timeZone': time_zone}
    return {'dateTime': dt.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S'), 'timeZone': 'UTC'}


# ============================================================================
# OPERATIONS
# ============================================================================

def list_events_operation(limit=DEFAULT_LIMIT):
    params = {
        '$top': str(page_size(limit, DEFAULT_LIMIT)),
        '$orderby': 'start/dateTime',
        '$select': EVENT_SELECT,
    }
    return Operation('GET', '/me/events', params, paginate=True, description="list events")


def events_range_operation(start, end, limit=DEFAULT_LIMIT):
    """Expanded occurrences (including recurring ones) between start and end"""
    params = {
        'startDateTime': start.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
        'endDateTime': end.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
        '$top': str(page_size(limit, DEFAULT_LIMIT)),
        '$orderby': 'start/dateTime',
        '$select': EVENT_SELECT,
    }
    return Operation('GET', '/me/calendarView', params, paginate=True,
                     description="list events in range")


def get_event_operation(event_id):
    return Operation('GET', f'/me/events/{event_id}', description=f"get event {event_id}")


def event_payload(subject=None, start=None, end=None, location=None, attendees=None,
                  optional_attendees=None, description=None, all_day=False,
                  online_meeting=False, time_zone='UTC'):
    """Build a Graph event body from the fields that were given"""
    event = {}
    if subject is not None:
        event['subject'] = subject
    if start is not None:
        event['start'] = graph_datetime(start, all_day, time_zone)
    if end is not None:
        event['end'] = graph_datetime(end, all_day, time_zone)
    if all_day:
        event['isAllDay'] = True

    attendee_list = [{'emailAddress': {'address': email}, 'type': 'required'}
                     for email in attendees or []]
    attendee_list += [{'emailAddress': {'address': email}, 'type': 'optional'}
                      for email in optional_attendees or []]
    if attendee_list:
        event['attendees'] = attendee_list

    if description:
        event['body'] = {'contentType': 'text', 'content': description}
    if location:
        event['location'] = {'displayName': location}
    if online_meeting:
        event['isOnlineMeeting'] = True
        event['onlineMeetingProvider'] = 'teamsForBusiness'
    return event


def create_event_operation(subject, start, end, **fields):
    body = event_payload(subject=subject, start=start, end=end, **fields)
    return Operation('POST', '/me/events', body=body, description=f"create event '{subject}'")


def update_event_operation(event_id, **fields):
    return Operation('PATCH', f'/me/events/{event_id}', body=event_payload(**fields),
                     description=f"update event {event_id}")


def delete_event_operation(event_id):
    return Operation('DELETE', f'/me/events/{event_id}', description=f"delete event {event_id}")


def respond_event_operation(event_id, response, comment=None, send_response=True):
    """Accept or decline an invitation ('accept' / 'decline')"""
    body = {'sendResponse': send_response}
    if comment:
        body['comment'] = comment
    return Operation('POST', f'/me/events/{event_id}/{response}', body=body,
                     description=f"{response} event {event_id}")


# ============================================================================
# DISPLAY
# ============================================================================

def display_events(events):
    """Display events in a formatted table, returning how many were shown"""
    count = 0
    for event in events:
        if count == 0:
            print(f"\n{'Date':<12} {'Time':<13} {'Subject':<40} {'Location':<25}")
            print("=" * 92)
        subject = event.get('subject') or '(No subject)'
        location = (event.get('location') or {}).get('displayName') or ''

        start = (event.get('start') or {}).get('dateTime')
        end = (event.get('end') or {}).get('dateTime')
        date_str = format_graph_datetime(start, '%Y-%m-%d')
        if event.get('isAllDay'):
            time_str = 'all day'
        else:
            time_str = f"{format_graph_datetime(start, '%H:%M')}-{format_graph_datetime(end, '%H:%M')}"

        print(f"{date_str:<12} {time_str:<13} {subject[:38]:<40} {location[:23]:<25}")
        print(f"  ID: {event['id']}")
        count += 1

    if count == 0:
        print("No events")
    else:
        print(f"\nTotal: {count} events\n")
    return count


def display_event(event):
    """Display a single event with full details"""
    start = event.get('start') or {}
    end = event.get('end') or {}

    print(f"Subject:  {event.get('subject') or '(No subject)'}")
    if start:
        print(f"Start:    {start.get('dateTime')} ({start.get('timeZone')})")
    if end:
        print(f"End:      {end.get('dateTime')} ({end.get('timeZone')})")
    location = (event.get('location') or {}).get('displayName')
    if location:
        print(f"Location: {location}")
    organizer = (event.get('organizer') or {}).get('emailAddress', {})
    if organizer:
        print(f"Organizer: {organizer.get('name', '')} <{organizer.get('address', '')}>")
    attendees = event.get('attendees') or []
    if attendees:
        print("Attendees:")
        for att in attendees:
            status = (att.get('status') or {}).get('response', '')
            status_str = f" ({status})" if status and status != 'none' else ''
            print(f"  - {att.get('emailAddress', {}).get('address', '')}{status_str}")
    if event.get('onlineMeeting'):
        print(f"Join URL: {event['onlineMeeting'].get('joinUrl', '')}")
    print(f"ID:       {event['id']}")


# ============================================================================
# CLI COMMAND FUNCTIONS
# ============================================================================

def _parse_time_arg(value, option, default_sign='+', default_tz=None):
    try:
        return parse_time_expression(value, default_sign=default_sign, default_tz=default_tz)
    except ValueError as e:
        print(f"Error in {option}: {e}", file=sys.stderr)
        sys.exit(1)


def _event_zone(name, all_day=False):
    """tzinfo for --timezone, or None for a zone only Graph knows (all-day only)"""
    from dateutil import tz

    zone = tz.gettz(name)
    if zone is None and not all_day:
        print(f"Error: Unknown time zone '{name}'", file=sys.stderr)
        sys.exit(1)
    return zone


def _resolve_end(args, start, default_tz=None):
    """End time from --end or --duration (defaults: 1 hour, or 1 day if all-day)"""
    if args.end and args.duration:
        print("Error: Use either --end or --duration, not both", file=sys.stderr)
        sys.exit(1)
    if args.end:
        end = _parse_time_arg(args.end, '--end', default_tz=default_tz)
    elif args.duration:
        try:
            end = start + parse_duration(args.duration)
        except ValueError as e:
            print(f"Error in --duration: {e}", file=sys.stderr)
            sys.exit(1)
    elif getattr(args, 'all_day', False):
        end = start + timedelta(days=1)
    else:
        end = start + timedelta(hours=1)

    if end <= start:
        print("Error: Event must end after it starts", file=sys.stderr)
        sys.exit(1)
    return end


def cmd_list(args):
    """Handle 'outlook-cli calendar list' command"""
    if bool(args.start) != bool(args.end):
        print("Error: --start and --end must be given together", file=sys.stderr)
        sys.exit(1)

    if args.start:
        start = _parse_time_arg(args.start, '--start', default_sign='-')
        end = _parse_time_arg(args.end, '--end')
        operation = events_range_operation(start, end, args.limit)
    else:
        operation = list_events_operation(args.limit)

    client = get_client(args)
    events = client.execute(operation).items(args.limit)

    if args.json:
        print_json(list(events))
    else:
        display_events(events)


def cmd_get(args):
    """Handle 'outlook-cli calendar get' command"""
    client = get_client(args)
    event = client.execute(get_event_operation(args.id))
    if args.json:
        print_json(event)
    else:
        display_event(event)


def cmd_create(args):
    """Handle 'outlook-cli calendar create' command"""
    zone = _event_zone(args.timezone, args.all_day)
    start = _parse_time_arg(args.start, '--start', default_tz=zone)
    end = _resolve_end(args, start, default_tz=zone)

    operation = create_event_operation(
        args.subject, start, end,
        location=args.location,
        attendees=split_addresses(args.attendees),
        optional_attendees=split_addresses(args.optional),
        description=args.description,
        all_day=args.all_day,
        online_meeting=args.online,
        time_zone=args.timezone,
    )
    client = get_client(args)
    created = client.execute(operation)

    if args.json:
        print_json(created)
        return
    print(f"✓ Event created: {created.get('subject', args.subject)}")
    print(f"  ID: {created.get('id')}")
    join_url = (created.get('onlineMeeting') or {}).get('joinUrl')
    if join_url:
        print(f"  Join URL: {join_url}")


def cmd_update(args):
    """Handle 'outlook-cli calendar update' command"""
    start = _parse_time_arg(args.start, '--start') if args.start else None
    end = None
    if args.end or args.duration:
        if start is None and args.duration:
            print("Error: --duration requires --start", file=sys.stderr)
            sys.exit(1)
        end = _resolve_end(args, start) if start else _parse_time_arg(args.end, '--end')

    fields = dict(subject=args.subject, start=start, end=end, location=args.location,
                  description=args.description)
    if not any(value is not None for value in fields.values()):
        print("Error: Nothing to update", file=sys.stderr)
        sys.exit(1)

    client = get_client(args)
    client.execute(update_event_operation(args.id, **fields))
    print(f"✓ Event updated: {args.id}")


def cmd_delete(args):
    """Handle 'outlook-cli calendar delete' command"""
    client = get_client(args)
    client.execute(delete_event_operation(args.id))
    print(f"✓ Event deleted: {args.id}")


def cmd_accept(args):
    """Handle 'outlook-cli calendar accept' command"""
    client = get_client(args)
    client.execute(respond_event_operation(args.id, 'accept', args.comment,
                                           send_response=not args.silent))
    print(f"✓ Event accepted: {args.id}")


def cmd_decline(args):
    """Handle 'outlook-cli calendar decline' command"""
    client = get_client(args)
    client.execute(respond_event_operation(args.id, 'decline', args.comment,
                                           send_response=not args.silent))
    print(f"✓ Event declined: {args.id}")


# Setup and routing

def _add_event_fields(parser):
    parser.add_argument('--end', metavar='TIME', help='End time (ISO 8601 or relative)')
    parser.add_argument('-d', '--duration', metavar='DURATION',
                        help="Duration instead of --end (e.g. '30m', '1h30m', '1.5h')")
    parser.add_argument('-l', '--location', help='Location')
    parser.add_argument('--description', help='Event body text')


def setup_parser(subparsers):
    """Setup argparse subcommands for calendar"""

    # outlook-cli calendar list
    list_parser = subparsers.add_parser(
        'list',
        help='List calendar events',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  outlook-cli calendar list                                 # Next events
  outlook-cli calendar list --start today --end "+7d"       # Events this week
  outlook-cli calendar list --start 2025-01-01 --end 2025-02-01
"""
    )
    list_parser.add_argument('-n', '--limit', type=int, default=DEFAULT_LIMIT, metavar='N',
                             help=f'Number of events to show (default: {DEFAULT_LIMIT})')
    list_parser.add_argument('--start', metavar='TIME', help='Range start (requires --end)')
    list_parser.add_argument('--end', metavar='TIME', help='Range end (requires --start)')
    list_parser.set_defaults(func=cmd_list)

    # outlook-cli calendar get
    get_parser = subparsers.add_parser('get', help='Show event details')
    get_parser.add_argument('id', metavar='ID', help='Event ID')
    get_parser.set_defaults(func=cmd_get)

    # outlook-cli calendar create
    create_parser = subparsers.add_parser(
        'create',
        help='Create a calendar event',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  outlook-cli calendar create -s "Standup" --start "tomorrow 09:00" -d 15m
  outlook-cli calendar create -s "Review" --start 2025-01-15T14:00 --end 2025-01-15T15:00 \\
      -a bob@example.com,carol@example.com --online
  outlook-cli calendar create -s "Holiday" --start 2025-12-25 --all-day
"""
    )
    create_parser.add_argument('-s', '--subject', required=True, help='Event subject')
    create_parser.add_argument('--start', required=True, metavar='TIME',
                               help='Start time (ISO 8601 or relative)')
    _add_event_fields(create_parser)
    create_parser.add_argument('-a', '--attendees', help='Required attendees, comma-separated')
    create_parser.add_argument('-o', '--optional', help='Optional attendees, comma-separated')
    create_parser.add_argument('--timezone', default='UTC',
                               help='Time zone for --start/--end given without an offset, '
                                    'and for all-day events (default: UTC)')
    create_parser.add_argument('--all-day', action='store_true', help='All day event')
    create_parser.add_argument('--online', action='store_true', help='Create as online meeting')
    create_parser.set_defaults(func=cmd_create, mutating=True)

    # outlook-cli calendar update
    update_parser = subparsers.add_parser('update', help='Update a calendar event')
    update_parser.add_argument('id', metavar='ID', help='Event ID')
    update_parser.add_argument('-s', '--subject', help='New subject')
    update_parser.add_argument('--start', metavar='TIME', help='New start time')
    _add_event_fields(update_parser)
    update_parser.set_defaults(func=cmd_update, mutating=True)

    # outlook-cli calendar delete
    delete_parser = subparsers.add_parser('delete', help='Delete a calendar event')
    delete_parser.add_argument('id', metavar='ID', help='Event ID')
    delete_parser.set_defaults(func=cmd_delete, mutating=True)

    # outlook-cli calendar accept / decline
    for name, func, help_text in (('accept', cmd_accept, 'Accept an invitation'),
                                  ('decline', cmd_decline, 'Decline an invitation')):
        respond_parser = subparsers.add_parser(name, help=help_text)
        respond_parser.add_argument('id', metavar='ID', help='Event ID')
        respond_parser.add_argument('-m', '--comment', help='Optional comment for the organizer')
        respond_parser.add_argument('--silent', action='store_true',
                                    help='Do not send a response to the organizer')
        respond_parser.set_defaults(func=func, mutating=True)


def handle_command(args):
    """Route to appropriate calendar subcommand"""
    if hasattr(args, 'func'):
        args.func(args)
    else:
        print("Error: No calendar subcommand specified", file=sys.stderr)
        sys.exit(1)
