"""
Command-line entry point and orchestration for LDAP Provision.

ProvisioningApp loads configuration, sets up logging, owns the directory
session for the duration of one command and maps failures to exit codes.
"""

import os
import sys
import json
import logging
import argparse
from typing import Any, Callable, Dict, List, Optional, TextIO

from ldap_provision.config import load_config, ConfigurationError
from ldap_provision.directory import (
    DirectoryClient,
    DirectoryConnectionError,
    DirectoryError,
    DirectorySession,
    DISPLAY_ATTRIBUTES,
    user_dn,
    users_base,
)
from ldap_provision.logging_setup import setup_logging
from ldap_provision.models import FailureKind
from ldap_provision.parser import RecordParser, ParseError
from ldap_provision.reconcile import ReconciliationEngine
from ldap_provision.report import OutcomeReporter, ReportSummary, render_summary
from ldap_provision.users import UserDirectory

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_RECORD_FAILURES = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_CONNECTION_ERROR = 3
EXIT_UNEXPECTED_ERROR = 4
EXIT_INPUT_ERROR = 5


class InputFileError(Exception):
    """Raised when the import file cannot be used."""
    pass


def read_import_file(file_path: str) -> List[str]:
    """
    Read the lines of a CSV import file.

    Args:
        file_path: Path to the file

    Returns:
        Lines without line terminators

    Raises:
        InputFileError: If the path is empty, missing or not a .csv file
    """
    if not file_path:
        raise InputFileError("The file path is empty")
    if not os.path.isfile(file_path):
        raise InputFileError(f"The file does not exist: {file_path}")
    if os.path.splitext(file_path)[1].lower() != '.csv':
        raise InputFileError(f"The file is not a CSV file: {file_path}")

    try:
        with open(file_path, 'r', encoding='utf-8-sig', newline='') as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise InputFileError(f"Could not read {file_path}: {e}")

    # Lines end at '\n' only; other Unicode line breaks are field content
    lines = content.split('\n')
    if lines[-1] == '':
        lines.pop()
    return [line[:-1] if line.endswith('\r') else line for line in lines]


class ProvisioningApp:
    """
    Runs one provisioning command against the directory.

    Every public command returns a process exit code and always releases
    the directory session.
    """

    def __init__(self, config_path: Optional[str] = None,
                 session_factory: Callable[[Dict[str, Any]], DirectorySession] = DirectorySession,
                 output: Optional[TextIO] = None):
        """
        Args:
            config_path: Path to configuration file
            session_factory: Builds a session from the LDAP configuration
            output: Stream reports are written to (stdout by default)
        """
        self.config_path = config_path
        self.session_factory = session_factory
        self.output = output
        self.config = None
        self.session = None
        self.last_summary = None

    @property
    def base_path(self) -> str:
        return self.config['ldap']['base_path']

    def import_users(self, file_path: str) -> int:
        """Create the users listed in a CSV file."""
        return self._execute(lambda: self._import_users(file_path))

    def show_user(self, user_id: str) -> int:
        return self._execute(lambda: self._show_user(user_id))

    def list_users(self) -> int:
        return self._execute(self._list_users)

    def delete_user(self, user_id: str) -> int:
        return self._execute(lambda: self._delete_user(user_id))

    def delete_all_users(self) -> int:
        return self._execute(self._delete_all_users)

    def _execute(self, operation: Callable[[], int]) -> int:
        try:
            self._load_configuration()
            self._setup_logging()
            return operation()

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            self._emit_error(f"Configuration error: {e}")
            return EXIT_CONFIGURATION_ERROR
        except (InputFileError, ParseError) as e:
            logger.error(f"Import file rejected: {e}")
            self._emit_error(f"Error: {e}")
            return EXIT_INPUT_ERROR
        except DirectoryConnectionError as e:
            logger.error(f"LDAP connection error: {e}")
            self._emit_error(f"LDAP connection error: {e}")
            return EXIT_CONNECTION_ERROR
        except DirectoryError as e:
            logger.error(f"LDAP operation failed: {e.reason}")
            self._emit_error(f"LDAP operation failed: {e.reason}")
            return EXIT_RECORD_FAILURES
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            self._emit_error(f"Unexpected error: {e}")
            return EXIT_UNEXPECTED_ERROR
        finally:
            self._cleanup()

    def _load_configuration(self):
        if self.config is None:
            self.config = load_config(self.config_path)

    def _setup_logging(self):
        setup_logging(self.config.get('logging', {}))

    def _open_directory(self) -> DirectoryClient:
        session_config = dict(self.config['ldap'])
        session_config['error_handling'] = self.config.get('error_handling', {})
        self.session = self.session_factory(session_config)
        self.session.connect()
        return DirectoryClient(self.session)

    def _import_users(self, file_path: str) -> int:
        # Format errors surface before the directory is contacted
        records = RecordParser().parse(read_import_file(file_path))
        logger.info(f"Importing {len(records)} users from {file_path}")

        outcomes = []
        if records:
            directory = self._open_directory()
            outcomes = ReconciliationEngine(self.base_path).reconcile(records, directory)

        summary = OutcomeReporter().summarize(outcomes)
        self._emit(render_summary(summary, 'added'))
        return self._finish(summary)

    def _show_user(self, user_id: str) -> int:
        users = UserDirectory(self._open_directory(), self.base_path)
        user = users.show_user(user_id)
        if user is None:
            self._emit(f"No user found with DN: {user_dn(user_id, self.base_path)}")
            return EXIT_RECORD_FAILURES
        self._emit(self._format_user(user))
        return EXIT_SUCCESS

    def _list_users(self) -> int:
        directory = UserDirectory(self._open_directory(), self.base_path)
        if directory.count_users() == 0:
            self._emit("There are no users to view. Try adding users to the directory first.")
            return EXIT_SUCCESS

        self._emit(f"Existing LDAP users under {users_base(self.base_path)}:")
        for user in directory.list_users():
            self._emit("")
            self._emit(self._format_user(user))
        return EXIT_SUCCESS

    def _delete_user(self, user_id: str) -> int:
        outcome = UserDirectory(self._open_directory(), self.base_path).delete_user(user_id)
        dn = user_dn(user_id, self.base_path)
        if outcome.succeeded:
            self._emit(f"User with DN '{dn}' has been deleted successfully.")
            return EXIT_SUCCESS
        if outcome.failure.kind is FailureKind.NOT_FOUND:
            self._emit(f"User with DN '{dn}' does not exist.")
        else:
            self._emit(f"Failed to delete user with DN '{dn}': {outcome.reason}")
        return EXIT_RECORD_FAILURES

    def _delete_all_users(self) -> int:
        directory = UserDirectory(self._open_directory(), self.base_path)
        if directory.count_users() == 0:
            self.last_summary = OutcomeReporter().summarize([])
            self._emit(render_summary(self.last_summary, 'deleted'))
            return EXIT_SUCCESS

        summary = OutcomeReporter().summarize(directory.delete_all_users())
        self._emit(render_summary(summary, 'deleted'))
        return self._finish(summary)

    def _finish(self, summary: ReportSummary) -> int:
        self.last_summary = summary
        logger.info(f"Batch finished: {summary.kind.value}, "
                    f"{len(summary.succeeded)} succeeded, {len(summary.failures)} failed")
        return EXIT_SUCCESS if summary.all_succeeded else EXIT_RECORD_FAILURES

    @staticmethod
    def _format_user(user: Dict[str, Any]) -> str:
        lines = [f"User Details (DN: {user['dn']}):"]
        for attribute in DISPLAY_ATTRIBUTES:
            if attribute in user:
                lines.append(f"{attribute}: {user[attribute]}")
        return "\n".join(lines)

    def _emit(self, text: str):
        print(text, file=self.output or sys.stdout)

    def _emit_error(self, text: str):
        print(text, file=self.output or sys.stderr)

    def health_check(self) -> Dict[str, Any]:
        """
        Check configuration and directory connectivity.

        Returns:
            Dictionary with overall status and per-check results
        """
        health_status = {'status': 'healthy', 'checks': {}}

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except ConfigurationError as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        try:
            user_count = UserDirectory(self._open_directory(), self.base_path).count_users()
            health_status['checks']['ldap'] = {
                'status': 'pass',
                'message': f'LDAP connection successful, {user_count} users under {users_base(self.base_path)}'
            }
        except (DirectoryConnectionError, DirectoryError) as e:
            health_status['checks']['ldap'] = {
                'status': 'fail',
                'message': f'LDAP check failed: {e}'
            }
            health_status['status'] = 'unhealthy'
        finally:
            self._cleanup()

        return health_status

    def _cleanup(self):
        if self.session:
            self.session.disconnect()
            self.session = None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='LDAP user provisioning')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--health-check', action='store_true',
                        help='Check configuration and LDAP connectivity, then exit')

    subparsers = parser.add_subparsers(dest='command')

    import_parser = subparsers.add_parser('import', help='Add users from a .csv file')
    import_parser.add_argument('file', help='Path to the CSV file')

    show_parser = subparsers.add_parser('show', help='View a single user')
    show_parser.add_argument('user_id', help='User ID (cn)')

    subparsers.add_parser('list', help='View all users')

    delete_parser = subparsers.add_parser('delete', help='Delete a single user or all users')
    target = delete_parser.add_mutually_exclusive_group(required=True)
    target.add_argument('user_id', nargs='?', help='User ID (cn)')
    target.add_argument('--all', action='store_true', dest='delete_all', help='Delete every user')

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    app = ProvisioningApp(config_path=args.config)

    if args.health_check:
        health_status = app.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(0 if health_status['status'] == 'healthy' else 1)

    if args.command == 'import':
        exit_code = app.import_users(args.file)
    elif args.command == 'show':
        exit_code = app.show_user(args.user_id)
    elif args.command == 'list':
        exit_code = app.list_users()
    elif args.command == 'delete':
        exit_code = app.delete_all_users() if args.delete_all else app.delete_user(args.user_id)
    else:
        parser.print_help()
        exit_code = EXIT_CONFIGURATION_ERROR

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
