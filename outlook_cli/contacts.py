"""
Contacts commands for Outlook CLI

List, search, show, create, update and delete personal contacts.
"""

import sys

from .client import Operation, get_client
from .common import escape_odata_string, page_size, print_json

DEFAULT_LIMIT = 20

CONTACT_SELECT = 'id,displayName,givenName,surname,emailAddresses,mobilePhone,companyName,jobTitle'


def list_contacts_operation(limit=DEFAULT_LIMIT, search=None):
    """List contacts, optionally those whose name or email starts with `search`"""
    params = {
        '$top': str(page_size(limit, DEFAULT_LIMIT)),
        '$select': CONTACT_SELECT,
    }
    if search:
        term = escape_odata_string(search)
        params['$filter'] = (
            f"startswith(displayName,'{term}') or startswith(givenName,'{term}') "
            f"or startswith(surname,'{term}') "
            f"or emailAddresses/any(a:startswith(a/address,'{term}'))"
        )
    else:
        params['$orderby'] = 'displayName'
    return Operation('GET', '/me/contacts', params, paginate=True,
                     description=f"search contacts for '{search}'" if search else "list contacts")


def get_contact_operation(contact_id):
    return Operation('GET', f'/me/contacts/{contact_id}', description=f"get contact {contact_id}")


def contact_payload(first_name=None, last_name=None, email=None, mobile=None,
                    company=None, job_title=None):
    """Contact resource with only the given fields set"""
    contact = {}
    if first_name is not None:
        contact['givenName'] = first_name
    if last_name is not None:
        contact['surname'] = last_name
    if email:
        name = ' '.join(part for part in (first_name, last_name) if part)
        contact['emailAddresses'] = [{'address': email, 'name': name or email}]
    if mobile is not None:
        contact['mobilePhone'] = mobile
    if company is not None:
        contact['companyName'] = company
    if job_title is not None:
        contact['jobTitle'] = job_title
    return contact


def create_contact_operation(first_name, last_name, **fields):
    body = contact_payload(first_name=first_name, last_name=last_name, **fields)
    return Operation('POST', '/me/contacts', body=body,
                     description=f"create contact {first_name} {last_name}")


def update_contact_operation(contact_id, **fields):
    return Operation('PATCH', f'/me/contacts/{contact_id}', body=contact_payload(**fields),
                     description=f"update contact {contact_id}")


def delete_contact_operation(contact_id):
    return Operation('DELETE', f'/me/contacts/{contact_id}',
                     description=f"delete contact {contact_id}")


def primary_email(contact):
    addresses = contact.get('emailAddresses') or []
    return (addresses[0].get('address') or '') if addresses else ''


# Command handlers

def cmd_list(args):
    """Handle 'outlook-cli contacts list' command"""
    client = get_client(args)
    contacts = client.execute(list_contacts_operation(args.limit, args.search)).items(args.limit)

    if args.json:
        print_json(list(contacts))
        return

    count = 0
    for contact in contacts:
        if count == 0:
            print(f"\n{'Name':<30} {'Email':<40}")
            print("=" * 72)
        name = contact.get('displayName') or '(no name)'
        print(f"{name[:28]:<30} {primary_email(contact)[:38]:<40}")
        print(f"  ID: {contact['id']}")
        count += 1

    if count == 0:
        print(f"No contacts matching '{args.search}'" if args.search else "No contacts")
    else:
        print(f"\nTotal: {count} contacts\n")


def cmd_get(args):
    """Handle 'outlook-cli contacts get' command"""
    client = get_client(args)
    contact = client.execute(get_contact_operation(args.id))

    if args.json:
        print_json(contact)
        return

    print(f"Name: {contact.get('givenName') or ''} {contact.get('surname') or ''}".rstrip())
    for email in contact.get('emailAddresses') or []:
        if email.get('address'):
            print(f"Email: {email['address']}")
    if contact.get('mobilePhone'):
        print(f"Mobile: {contact['mobilePhone']}")
    if contact.get('companyName'):
        print(f"Company: {contact['companyName']}")
    if contact.get('jobTitle'):
        print(f"Title: {contact['jobTitle']}")
    print(f"ID: {contact['id']}")


def _contact_fields(args):
    return dict(email=args.email, mobile=args.mobile, company=args.company,
                job_title=args.job_title)


def cmd_create(args):
    """Handle 'outlook-cli contacts create' command"""
    client = get_client(args)
    created = client.execute(create_contact_operation(args.first_name, args.last_name,
                                                      **_contact_fields(args)))
    if args.json:
        print_json(created)
        return
    print(f"✓ Contact created: {created.get('id')}")


def cmd_update(args):
    """Handle 'outlook-cli contacts update' command"""
    fields = _contact_fields(args)
    fields.update(first_name=args.first_name, last_name=args.last_name)
    if not contact_payload(**fields):
        print("Error: Nothing to update", file=sys.stderr)
        sys.exit(1)

    client = get_client(args)
    client.execute(update_contact_operation(args.id, **fields))
    print(f"✓ Contact updated: {args.id}")


def cmd_delete(args):
    """Handle 'outlook-cli contacts delete' command"""
    client = get_client(args)
    client.execute(delete_contact_operation(args.id))
    print(f"✓ Contact deleted: {args.id}")


# Setup and routing

def _add_contact_fields(parser):
    parser.add_argument('-e', '--email', help='Email address')
    parser.add_argument('-m', '--mobile', help='Mobile phone')
    parser.add_argument('--company', help='Company name')
    parser.add_argument('-j', '--job-title', help='Job title')


def setup_parser(subparsers):
    """Setup argparse subcommands for contacts"""

    # outlook-cli contacts list
    list_parser = subparsers.add_parser(
        'list',
        help='List or search contacts',
        description='List contacts, or those whose name or email starts with --search.'
    )
    list_parser.add_argument('-n', '--limit', type=int, default=DEFAULT_LIMIT, metavar='N',
                             help=f'Number of contacts to show (default: {DEFAULT_LIMIT})')
    list_parser.add_argument('-s', '--search', metavar='QUERY', help='Name or email prefix')
    list_parser.set_defaults(func=cmd_list)

    # outlook-cli contacts get
    get_parser = subparsers.add_parser('get', help='Show contact details')
    get_parser.add_argument('id', metavar='ID', help='Contact ID')
    get_parser.set_defaults(func=cmd_get)

    # outlook-cli contacts create
    create_parser = subparsers.add_parser('create', help='Create a contact')
    create_parser.add_argument('--first-name', required=True, help='First name')
    create_parser.add_argument('--last-name', required=True, help='Last name')
    _add_contact_fields(create_parser)
    create_parser.set_defaults(func=cmd_create, mutating=True)

    # outlook-cli contacts update
    update_parser = subparsers.add_parser('update', help='Update a contact')
    update_parser.add_argument('id', metavar='ID', help='Contact ID')
    update_parser.add_argument('--first-name', help='First name')
    update_parser.add_argument('--last-name', help='Last name')
    _add_contact_fields(update_parser)
    update_parser.set_defaults(func=cmd_update, mutating=True)

    # outlook-cli contacts delete
    delete_parser = subparsers.add_parser('delete', help='Delete a contact')
    delete_parser.add_argument('id', metavar='ID', help='Contact ID')
    delete_parser.set_defaults(func=cmd_delete, mutating=True)


def handle_command(args):
    """Route to appropriate contacts subcommand"""
    if hasattr(args, 'func'):
        args.func(args)
    else:
        print("Error: No contacts subcommand specified", file=sys.stderr)
        sys.exit(1)
