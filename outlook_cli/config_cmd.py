"""
Config management commands for Outlook CLI

Read and edit the INI config file. Only settings load_config() understands
can be set, and secrets (refresh tokens) are refused: they come from
--token or OUTLOOK_REFRESH_TOKEN only.
"""

import sys
from configparser import ConfigParser

from .common import CONFIG_FILE

# section -> options load_config() reads
KNOWN_KEYS = {
    'auth': ('client_id', 'tenant'),
    'scopes': ('mail', 'calendar', 'contacts', 'custom'),
    'retry': ('attempts', 'base_delay', 'max_delay'),
    'network': ('timeout',),
}

SECRET_OPTIONS = ('refresh_token', 'access_token', 'token')


def load_config_parser():
    """Load config file as ConfigParser (empty if the file does not exist)"""
    parser = ConfigParser()
    if CONFIG_FILE.exists():
        parser.read(CONFIG_FILE)
    return parser


def save_config_parser(parser):
    """Save ConfigParser to config file"""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_FILE, 'w') as f:
        parser.write(f)
    CONFIG_FILE.chmod(0o600)


def parse_key(key):
    """Parse key into section and option (e.g., 'auth.client_id' -> ('auth', 'client_id'))"""
    if '.' not in key:
        print("Error: Key must be in format 'section.option' (e.g., 'auth.client_id')", file=sys.stderr)
        sys.exit(1)

    section, option = key.split('.', 1)
    return section, option


def validate_key(section, option):
    """Exit unless section.option is a setting we are willing to store"""
    if option in SECRET_OPTIONS:
        print(f"Error: Refusing to store '{option}' in the config file.", file=sys.stderr)
        print("Pass it with --token or the OUTLOOK_REFRESH_TOKEN environment variable.", file=sys.stderr)
        sys.exit(1)

    if option not in KNOWN_KEYS.get(section, ()):
        known = ', '.join(f"{s}.{o}" for s, options in KNOWN_KEYS.items() for o in options)
        print(f"Error: Unknown setting '{section}.{option}'", file=sys.stderr)
        print(f"Known settings: {known}", file=sys.stderr)
        sys.exit(1)


# Command handlers

def cmd_list(args):
    """Handle 'outlook-cli config list' command"""
    parser = load_config_parser()

    if not parser.sections():
        print("Config file is empty. Use 'outlook-cli config set' to add values.")
        return

    print(f"\nConfiguration ({CONFIG_FILE}):\n")

    for section in parser.sections():
        print(f"[{section}]")
        for option in parser.options(section):
            print(f"  {option} = {parser.get(section, option)}")
        print()


def cmd_get(args):
    """Handle 'outlook-cli config get' command"""
    parser = load_config_parser()
    section, option = parse_key(args.key)

    if not parser.has_option(section, option):
        print(f"Error: '{section}.{option}' is not set", file=sys.stderr)
        sys.exit(1)

    print(parser.get(section, option))


def cmd_set(args):
    """Handle 'outlook-cli config set' command"""
    section, option = parse_key(args.key)
    validate_key(section, option)

    parser = load_config_parser()
    if not parser.has_section(section):
        parser.add_section(section)

    parser.set(section, option, args.value)
    save_config_parser(parser)

    print(f"Set {section}.{option} = {args.value}")


def cmd_unset(args):
    """Handle 'outlook-cli config unset' command"""
    parser = load_config_parser()
    section, option = parse_key(args.key)

    if not parser.has_option(section, option):
        print(f"Error: '{section}.{option}' is not set", file=sys.stderr)
        sys.exit(1)

    parser.remove_option(section, option)

    # Remove section if empty
    if not parser.options(section):
        parser.remove_section(section)

    save_config_parser(parser)
    print(f"Unset {section}.{option}")


def cmd_path(args):
    """Handle 'outlook-cli config path' command"""
    print(CONFIG_FILE)


# Setup and routing

def setup_parser(subparsers):
    """Setup argparse subcommands for config"""

    list_parser = subparsers.add_parser(
        'list',
        help='List all configuration values',
        description='Display all configuration values from the config file.'
    )
    list_parser.set_defaults(func=cmd_list)

    get_parser = subparsers.add_parser(
        'get',
        help='Get a configuration value',
        epilog="""
Examples:
  outlook-cli config get auth.client_id
  outlook-cli config get retry.attempts
"""
    )
    get_parser.add_argument('key', help='Config key in format section.option (e.g., auth.client_id)')
    get_parser.set_defaults(func=cmd_get)

    set_parser = subparsers.add_parser(
        'set',
        help='Set a configuration value',
        epilog="""
Examples:
  outlook-cli config set auth.client_id "your-client-id"
  outlook-cli config set auth.tenant "consumers"
  outlook-cli config set scopes.contacts false
  outlook-cli config set retry.attempts 5
"""
    )
    set_parser.add_argument('key', help='Config key in format section.option (e.g., auth.client_id)')
    set_parser.add_argument('value', help='Value to set')
    set_parser.set_defaults(func=cmd_set)

    unset_parser = subparsers.add_parser('unset', help='Remove a configuration value')
    unset_parser.add_argument('key', help='Config key in format section.option (e.g., auth.client_id)')
    unset_parser.set_defaults(func=cmd_unset)

    path_parser = subparsers.add_parser('path', help='Show configuration file path')
    path_parser.set_defaults(func=cmd_path)


def handle_command(args):
    """Route to appropriate config subcommand"""
    if hasattr(args, 'func'):
        args.func(args)
    else:
        print("Error: No config subcommand specified", file=sys.stderr)
        sys.exit(1)
