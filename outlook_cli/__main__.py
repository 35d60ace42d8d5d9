#!/usr/bin/env python3
"""
Outlook CLI - Main Entry Point

Command-line client for Outlook mail, calendar and contacts via Microsoft Graph.
"""

import argparse
import logging
import sys

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError, InvalidGrant, OutlookError, UnknownOutcome

logger = logging.getLogger('outlook_cli')

# (group, help) in display order
COMMAND_GROUPS = [
    ('mail', 'Read, send and manage email'),
    ('drafts', 'Manage draft emails'),
    ('calendar', 'Manage calendar events'),
    ('contacts', 'Manage contacts'),
    ('auth', 'Obtain and check OAuth2 tokens'),
    ('config', 'Manage the configuration file'),
]

EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def build_parser():
    """Build the top-level parser with one subparser per command group"""
    parser = argparse.ArgumentParser(
        prog='outlook-cli',
        description='Outlook command-line interface for email, calendar, and contacts.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  outlook-cli mail inbox -n 20                 # 20 most recent messages
  outlook-cli mail send bob@example.com -s Hi -b "Hello"
  outlook-cli calendar list --start today --end +7d
  outlook-cli contacts list --search quinn
  outlook-cli auth check                       # Verify the refresh token

Credentials:
  --token / OUTLOOK_REFRESH_TOKEN and --client-id / OUTLOOK_CLIENT_ID.
  Variables may also be placed in a .env file in the working directory.

For more help on a specific command:
  outlook-cli <command> --help
  outlook-cli <command> <subcommand> --help
"""
    )
    parser.add_argument('-t', '--token', metavar='REFRESH_TOKEN',
                        help='OAuth refresh token (default: $OUTLOOK_REFRESH_TOKEN)')
    parser.add_argument('-c', '--client-id', metavar='ID',
                        help='Azure AD application ID (default: $OUTLOOK_CLIENT_ID)')
    parser.add_argument('--tenant', metavar='TENANT',
                        help='Azure AD tenant (default: $OUTLOOK_TENANT or "common")')
    parser.add_argument('--json', action='store_true', help='Print raw JSON results')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log requests and retries')

    subparsers = parser.add_subparsers(dest='command', help='Command groups')

    # Import and setup subcommands
    from . import mail, drafts, calendar, contacts, auth, config_cmd
    modules = {
        'mail': mail, 'drafts': drafts, 'calendar': calendar,
        'contacts': contacts, 'auth': auth, 'config': config_cmd,
    }

    groups = {}
    for name, help_text in COMMAND_GROUPS:
        group_parser = subparsers.add_parser(name, help=help_text)
        group_subparsers = group_parser.add_subparsers(dest='subcommand', help=f'{name} operations')
        modules[name].setup_parser(group_subparsers)
        groups[name] = (group_parser, modules[name])

    return parser, groups


def setup_logging(verbose=False):
    """Log to stderr; warnings only unless --verbose"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )


def main(argv=None):
    """Main entry point for outlook-cli command"""
    # Real environment variables win over .env
    load_dotenv(find_dotenv(usecwd=True), override=False)

    parser, groups = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_ERROR)

    group_parser, module = groups[args.command]
    if not args.subcommand:
        group_parser.print_help()
        sys.exit(EXIT_ERROR)

    setup_logging(args.verbose)

    try:
        module.handle_command(args)
    except KeyboardInterrupt:
        if getattr(args, 'mutating', False):
            print(f"\nInterrupted: the outcome of '{args.command} {args.subcommand}' is unknown. "
                  "Check before retrying.", file=sys.stderr)
        else:
            print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)
    except InvalidGrant as e:
        print(f"Error: The refresh token was rejected ({e.description or e.code}).", file=sys.stderr)
        print("Run 'outlook-cli auth login' to obtain a new one.", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except UnknownOutcome as e:
        print(f"Error: {e}. Check before retrying.", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except OutlookError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)


if __name__ == '__main__':
    main()
