#!/usr/bin/env python3
"""
Tests for the provisioning application and its command-line interface.

The directory session is replaced with the in-memory directory so whole
commands run end to end.
"""

import io
import os
import sys

import pytest

# Add the project directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_provision import main as main_module
from ldap_provision.directory import DirectoryClient, DirectoryConnectionError, user_dn
from ldap_provision.main import (
    EXIT_CONFIGURATION_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_INPUT_ERROR,
    EXIT_RECORD_FAILURES,
    EXIT_SUCCESS,
    EXIT_UNEXPECTED_ERROR,
    InputFileError,
    ProvisioningApp,
    read_import_file,
)
from ldap_provision.report import ReportKind
from ldap_provision.users import UserDirectory

from directory_fixtures import BASE_PATH, HEADER, InMemorySession

TEST_CONFIG = {
    'ldap': {
        'server_url': 'ldap://ldap.test:389',
        'bind_dn': 'cn=admin,o=test',
        'bind_password': 'admin_password',
        'base_path': BASE_PATH,
    },
    'logging': {'level': 'INFO', 'log_dir': 'logs'},
    'error_handling': {'max_retries': 1, 'retry_wait_seconds': 0},
}


@pytest.fixture
def directory():
    return InMemorySession()


@pytest.fixture
def app(mocker, directory):
    mocker.patch.object(main_module, 'load_config', return_value=TEST_CONFIG)
    mocker.patch.object(main_module, 'setup_logging')
    output = io.StringIO()
    application = ProvisioningApp(session_factory=lambda config: directory, output=output)
    application.output_text = output.getvalue
    return application


def write_csv(tmp_path, *rows, name='users.csv'):
    path = tmp_path / name
    path.write_text('\n'.join((HEADER,) + rows) + '\n', encoding='utf-8')
    return str(path)


def test_import_all_users_created(app, directory, tmp_path):
    path = write_csv(tmp_path,
                     'u001,Alice Smith,555-0100,alice@example.com,Engineering,Developer',
                     'u002,Bob Jones,555-0101,bob@example.com,Sales,Account Manager')

    assert app.import_users(path) == EXIT_SUCCESS

    assert app.last_summary.kind is ReportKind.ALL_SUCCEEDED
    assert 'All users successfully added: u001 u002' in app.output_text()
    assert directory.disconnected


def test_import_twice_reports_common_cause(app, tmp_path):
    path = write_csv(tmp_path, 'u001,Alice Smith,555-0100,alice@example.com,Engineering,Developer')
    app.import_users(path)

    assert app.import_users(path) == EXIT_RECORD_FAILURES
    assert app.last_summary.kind is ReportKind.COMMON_FAILURE
    assert 'same reason: User already exists' in app.output_text()


def test_import_partial_success(app, directory, tmp_path):
    directory.add_user('u002')
    path = write_csv(tmp_path,
                     'u001,Alice Smith,555-0100,alice@example.com,Engineering,Developer',
                     'u002,Bob Jones,555-0101,bob@example.com,Sales,Account Manager',
                     'u003,Carol White,555-0102,carol@example.com,HR,Recruiter')

    assert app.import_users(path) == EXIT_RECORD_FAILURES

    assert app.last_summary.kind is ReportKind.PARTIAL_SUCCESS
    assert app.last_summary.succeeded == ('u001', 'u003')
    assert 'User ID: u002 - Reason: User already exists' in app.output_text()


def test_import_header_only_skips_directory(mocker, tmp_path):
    mocker.patch.object(main_module, 'load_config', return_value=TEST_CONFIG)
    mocker.patch.object(main_module, 'setup_logging')
    session_factory = mocker.Mock()
    app = ProvisioningApp(session_factory=session_factory, output=io.StringIO())

    assert app.import_users(write_csv(tmp_path)) == EXIT_RECORD_FAILURES

    assert app.last_summary.kind is ReportKind.NO_VALID_ROWS
    session_factory.assert_not_called()


def test_import_bad_header_never_connects(mocker, tmp_path):
    mocker.patch.object(main_module, 'load_config', return_value=TEST_CONFIG)
    mocker.patch.object(main_module, 'setup_logging')
    session_factory = mocker.Mock()
    path = tmp_path / 'users.csv'
    path.write_text('id,name\nu001,Alice\n', encoding='utf-8')
    app = ProvisioningApp(session_factory=session_factory, output=io.StringIO())

    assert app.import_users(str(path)) == EXIT_INPUT_ERROR
    session_factory.assert_not_called()


def test_import_malformed_line(app, tmp_path):
    path = write_csv(tmp_path, 'u001,Alice Smith,555-0100')

    assert app.import_users(path) == EXIT_INPUT_ERROR
    assert 'not properly comma-delimited' in app.output_text()


def test_import_rejects_non_csv(app, tmp_path):
    path = tmp_path / 'users.txt'
    path.write_text(HEADER + '\n', encoding='utf-8')

    assert app.import_users(str(path)) == EXIT_INPUT_ERROR


def test_connection_failure(mocker, tmp_path):
    mocker.patch.object(main_module, 'load_config', return_value=TEST_CONFIG)
    mocker.patch.object(main_module, 'setup_logging')
    session = mocker.Mock()
    session.connect.side_effect = DirectoryConnectionError('Failed to connect to LDAP after 1 attempts')
    app = ProvisioningApp(session_factory=lambda config: session, output=io.StringIO())
    path = write_csv(tmp_path, 'u001,Alice Smith,555-0100,alice@example.com,Engineering,Developer')

    assert app.import_users(path) == EXIT_CONNECTION_ERROR
    session.disconnect.assert_called_once()


def test_configuration_error(tmp_path):
    app = ProvisioningApp(config_path=str(tmp_path / 'missing.yaml'), output=io.StringIO())

    assert app.list_users() == EXIT_CONFIGURATION_ERROR


def test_session_receives_error_handling(mocker, directory):
    mocker.patch.object(main_module, 'load_config', return_value=TEST_CONFIG)
    mocker.patch.object(main_module, 'setup_logging')
    session_factory = mocker.Mock(return_value=directory)
    app = ProvisioningApp(session_factory=session_factory, output=io.StringIO())

    app.list_users()

    config = session_factory.call_args.args[0]
    assert config['base_path'] == BASE_PATH
    assert config['error_handling'] == {'max_retries': 1, 'retry_wait_seconds': 0}


def test_show_user(app, directory):
    directory.add_user('u001', given_name='Alice', surname='Smith')

    assert app.show_user('u001') == EXIT_SUCCESS

    output = app.output_text()
    assert f'User Details (DN: {user_dn("u001", BASE_PATH)}):' in output
    assert 'givenName: Alice' in output


def test_show_missing_user(app):
    assert app.show_user('nobody') == EXIT_RECORD_FAILURES
    assert 'No user found with DN' in app.output_text()


def test_list_users(app, directory):
    directory.add_user('u002')
    directory.add_user('u001')

    assert app.list_users() == EXIT_SUCCESS

    output = app.output_text()
    assert output.index('cn=u001') < output.index('cn=u002')


def test_list_without_users(app):
    assert app.list_users() == EXIT_SUCCESS
    assert 'There are no users to view' in app.output_text()


def test_delete_user(app, directory):
    directory.add_user('u001')

    assert app.delete_user('u001') == EXIT_SUCCESS
    assert 'has been deleted successfully' in app.output_text()


def test_delete_missing_user(app):
    assert app.delete_user('nobody') == EXIT_RECORD_FAILURES
    assert 'does not exist' in app.output_text()


def test_delete_all_users(app, directory):
    directory.add_user('u001')
    directory.add_user('u002')

    assert app.delete_all_users() == EXIT_SUCCESS
    assert 'All users successfully deleted' in app.output_text()


def test_delete_all_without_users(app):
    assert app.delete_all_users() == EXIT_SUCCESS
    assert 'There are no users to delete' in app.output_text()


def test_health_check(app, directory):
    directory.add_user('u001')

    status = app.health_check()

    assert status['status'] == 'healthy'
    assert '1 users' in status['checks']['ldap']['message']
    assert directory.disconnected


def test_read_import_file_strips_bom(tmp_path):
    path = tmp_path / 'users.csv'
    path.write_bytes(('\ufeff' + HEADER + '\r\nu1,A B,1,a@b.c,D,J\r\n').encode('utf-8'))

    assert read_import_file(str(path)) == [HEADER, 'u1,A B,1,a@b.c,D,J']


def test_read_import_file_splits_on_newline_only(tmp_path):
    path = tmp_path / 'users.csv'
    row = 'u002,Bob\x0cJones,556,b@x.com,IT Ops,Dev'
    path.write_text(HEADER + '\n' + row + '\r\n', encoding='utf-8')

    assert read_import_file(str(path)) == [HEADER, row]


def test_import_keeps_form_feed_inside_field(app, directory, tmp_path):
    path = write_csv(tmp_path, 'u002,Bob\x0cJones,556,b@x.com,IT,Dev')

    assert app.import_users(path) == EXIT_SUCCESS
    assert app.last_summary.succeeded == ('u002',)


def test_read_import_file_empty(tmp_path):
    path = tmp_path / 'users.csv'
    path.write_text('', encoding='utf-8')

    assert read_import_file(str(path)) == []


def test_session_released_on_unexpected_error(app, directory, mocker, tmp_path):
    mocker.patch.object(DirectoryClient, 'create', side_effect=RuntimeError('socket closed'))
    path = write_csv(tmp_path, 'u001,Alice Smith,555-0100,alice@example.com,Engineering,Developer')

    assert app.import_users(path) == EXIT_UNEXPECTED_ERROR
    assert 'Unexpected error: socket closed' in app.output_text()
    assert directory.disconnected
    assert app.session is None


def test_list_counts_before_listing(app, directory, mocker):
    list_users = mocker.spy(UserDirectory, 'list_users')

    assert app.list_users() == EXIT_SUCCESS

    list_users.assert_not_called()


def test_read_import_file_missing(tmp_path):
    with pytest.raises(InputFileError):
        read_import_file(str(tmp_path / 'missing.csv'))


def test_read_import_file_empty_path():
    with pytest.raises(InputFileError):
        read_import_file('')


def test_cli_dispatches_import(mocker):
    app = mocker.Mock()
    app.import_users.return_value = EXIT_SUCCESS
    mocker.patch.object(main_module, 'ProvisioningApp', return_value=app)

    with pytest.raises(SystemExit) as exc_info:
        main_module.main(['--config', 'config.yaml', 'import', 'users.csv'])

    assert exc_info.value.code == EXIT_SUCCESS
    app.import_users.assert_called_once_with('users.csv')


def test_cli_dispatches_delete_all(mocker):
    app = mocker.Mock()
    app.delete_all_users.return_value = EXIT_SUCCESS
    mocker.patch.object(main_module, 'ProvisioningApp', return_value=app)

    with pytest.raises(SystemExit):
        main_module.main(['delete', '--all'])

    app.delete_all_users.assert_called_once_with()
    app.delete_user.assert_not_called()


def test_cli_delete_requires_target():
    with pytest.raises(SystemExit) as exc_info:
        main_module.main(['delete'])

    assert exc_info.value.code == 2
