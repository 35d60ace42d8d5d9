"""
Tests for outlook-cli contacts commands
"""

import json

import pytest

from conftest import make_args, page_of
from outlook_cli import contacts


def executed_operation(client):
    return client.execute.call_args.args[0]


def contact_args(**kwargs):
    values = dict(first_name=None, last_name=None, email=None, mobile=None, company=None,
                  job_title=None)
    values.update(kwargs)
    return make_args(**values)


class TestContactsList:
    """Tests for 'outlook-cli contacts list' command"""

    def test_list_contacts(self, mock_client, sample_contact, capsys):
        mock_client.execute.return_value = page_of([sample_contact])

        contacts.cmd_list(make_args(limit=20, search=None))

        out = capsys.readouterr().out
        assert "John Doe" in out
        assert "john.doe@example.com" in out
        assert "Total: 1 contacts" in out

        op = executed_operation(mock_client)
        assert op.path == '/me/contacts'
        assert op.query_params['$orderby'] == 'displayName'
        assert '$filter' not in op.query_params

    def test_list_empty(self, mock_client, capsys):
        mock_client.execute.return_value = page_of([])

        contacts.cmd_list(make_args(limit=20, search=None))

        assert "No contacts" in capsys.readouterr().out

    def test_search(self, mock_client, sample_contact, capsys):
        mock_client.execute.return_value = page_of([sample_contact])

        contacts.cmd_list(make_args(limit=20, search='john'))

        op = executed_operation(mock_client)
        assert "startswith(displayName,'john')" in op.query_params['$filter']
        assert "a/address,'john'" in op.query_params['$filter']
        assert '$orderby' not in op.query_params
        assert "John Doe" in capsys.readouterr().out

    def test_nonpositive_limit_sends_valid_top(self):
        assert contacts.list_contacts_operation(limit=0).query_params['$top'] == str(contacts.DEFAULT_LIMIT)
        assert contacts.list_contacts_operation(limit=-5).query_params['$top'] == str(contacts.DEFAULT_LIMIT)

    def test_search_escapes_quotes(self):
        op = contacts.list_contacts_operation(search="o'brien")
        assert "startswith(surname,'o''brien')" in op.query_params['$filter']

    def test_search_no_results(self, mock_client, capsys):
        mock_client.execute.return_value = page_of([])

        contacts.cmd_list(make_args(limit=20, search='nobody'))

        assert "No contacts matching 'nobody'" in capsys.readouterr().out

    def test_list_json(self, mock_client, sample_contact, capsys):
        mock_client.execute.return_value = page_of([sample_contact])

        contacts.cmd_list(make_args(limit=20, search=None, json=True))

        assert json.loads(capsys.readouterr().out) == [sample_contact]


class TestContactsGet:
    """Tests for 'outlook-cli contacts get' command"""

    def test_get_contact(self, mock_client, sample_contact, capsys):
        mock_client.execute.return_value = sample_contact

        contacts.cmd_get(make_args(id='test-contact-id-123'))

        out = capsys.readouterr().out
        assert "Name: John Doe" in out
        assert "Email: john.doe@example.com" in out
        assert "Mobile: +1 555 0100" in out
        assert executed_operation(mock_client).path == '/me/contacts/test-contact-id-123'


class TestContactsCreate:
    """Tests for 'outlook-cli contacts create' command"""

    def test_create(self, mock_client, capsys):
        mock_client.execute.return_value = {'id': 'new-contact'}

        contacts.cmd_create(contact_args(first_name='Quinn', last_name='Lee',
                                         email='quinn@example.com', company='Acme'))

        op = executed_operation(mock_client)
        assert op.method == 'POST'
        assert op.path == '/me/contacts'
        assert op.body == {
            'givenName': 'Quinn',
            'surname': 'Lee',
            'emailAddresses': [{'address': 'quinn@example.com', 'name': 'Quinn Lee'}],
            'companyName': 'Acme',
        }
        assert "✓ Contact created: new-contact" in capsys.readouterr().out


class TestContactsUpdateDelete:
    """Tests for 'outlook-cli contacts update' and 'delete' commands"""

    def test_update(self, mock_client, capsys):
        contacts.cmd_update(contact_args(id='c-1', mobile='+1 555 0199', job_title='CTO'))

        op = executed_operation(mock_client)
        assert op.method == 'PATCH'
        assert op.path == '/me/contacts/c-1'
        assert op.body == {'mobilePhone': '+1 555 0199', 'jobTitle': 'CTO'}
        assert "✓ Contact updated: c-1" in capsys.readouterr().out

    def test_update_nothing(self, mock_client):
        with pytest.raises(SystemExit):
            contacts.cmd_update(contact_args(id='c-1'))
        mock_client.execute.assert_not_called()

    def test_delete(self, mock_client, capsys):
        contacts.cmd_delete(make_args(id='c-1'))

        op = executed_operation(mock_client)
        assert op.method == 'DELETE'
        assert op.path == '/me/contacts/c-1'
        assert "✓ Contact deleted: c-1" in capsys.readouterr().out


class TestPrimaryEmail:

    def test_primary_email(self, sample_contact):
        assert contacts.primary_email(sample_contact) == 'john.doe@example.com'
        assert contacts.primary_email({'emailAddresses': []}) == ''
        assert contacts.primary_email({}) == ''
