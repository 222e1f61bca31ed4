"""
LDAP session and directory operations.

DirectorySession owns the single long-lived connection of a run (connect,
protocol negotiation, bind, unbind). DirectoryClient performs the blocking
per-entry operations the provisioning engine needs on top of a session.
"""

import logging
import ssl
from typing import Any, Dict, Iterable, List, Optional

from ldap3 import Server, Connection, Tls, ALL, BASE, LEVEL
from ldap3.core.exceptions import LDAPException, LDAPBindError

from ldap_provision.logging_setup import security_logger
from ldap_provision.models import CandidateRecord
from ldap_provision.retry import retry_call, create_retry_callback, MaxRetriesExceeded

logger = logging.getLogger(__name__)

USERS_OU = 'ou=users'
USER_FILTER = '(objectClass=inetOrgPerson)'
USER_OBJECT_CLASSES = ['inetOrgPerson', 'organizationalPerson', 'person', 'top']
DISPLAY_ATTRIBUTES = ['cn', 'sn', 'givenName', 'mail', 'ou', 'telephoneNumber', 'description']

RESULT_SUCCESS = 0


class DirectoryConnectionError(Exception):
    """Raised when the LDAP session cannot be established or is not open."""
    pass


class DirectoryError(Exception):
    """
    Raised when a single directory operation fails.

    Attributes:
        reason: Human-readable reason reported by the directory
        code: LDAP result code, if the server answered
        message: Diagnostic message from the server, if any
    """

    def __init__(self, reason: str, code: Optional[int] = None, message: str = ""):
        self.reason = reason
        self.code = code
        self.message = message
        super().__init__(reason)


def users_base(base_path: str) -> str:
    """Search base holding the user entries of a base path."""
    return f"{USERS_OU},{base_path}"


def user_dn(user_id: str, base_path: str) -> str:
    """Distinguished name of a user; the id is used verbatim."""
    return f"cn={user_id},{users_base(base_path)}"


def build_user_attributes(record: CandidateRecord) -> Dict[str, str]:
    """
    Map a candidate record to LDAP attributes (objectClass excluded).

    Empty values are left out so the directory reports missing mandatory
    attributes itself.
    """
    name = record.parsed_name()
    attributes = {
        'cn': record.id,
        'sn': name.surname,
        'givenName': name.given_name,
        'mail': record.email,
        'ou': record.department,
        'telephoneNumber': record.phone_number,
        'description': record.job_description,
    }
    return {key: value for key, value in attributes.items() if value}


class DirectorySession:
    """
    A bound LDAP connection scoped to one run.

    Use as a context manager so the connection is released on every exit path.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the session from the 'ldap' configuration section.

        Args:
            config: LDAP configuration dictionary, optionally with an
                'error_handling' sub-dictionary for retry settings
        """
        self.config = config
        self.server_url = config['server_url']
        self.bind_dn = config['bind_dn']
        self.bind_password = config['bind_password']

        self.use_ssl = config.get('use_ssl', self.server_url.lower().startswith('ldaps://'))
        self.start_tls = config.get('start_tls', False)
        self.verify_ssl = config.get('verify_ssl', True)
        self.ca_cert_file = config.get('ca_cert_file')

        self.connection_timeout = config.get('connection_timeout', 10)
        self.receive_timeout = config.get('receive_timeout', 10)

        error_config = config.get('error_handling', {})
        self.max_retries = error_config.get('max_retries', 3)
        self.retry_wait = error_config.get('retry_wait_seconds', 5)

        self.server = None
        self._connection = None

    @property
    def connected(self) -> bool:
        return self._connection is not None

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise DirectoryConnectionError("Not connected to LDAP server")
        return self._connection

    def connect(self) -> None:
        """
        Open the connection, negotiate TLS if configured and bind.

        Raises:
            DirectoryConnectionError: If the session cannot be established
                within the configured number of attempts
        """
        if self.connected:
            return

        try:
            self.server = Server(
                self.server_url,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                get_info=ALL,
                connect_timeout=self.connection_timeout
            )
        except LDAPException as e:
            raise DirectoryConnectionError(f"Failed to create LDAP server: {e}")

        attempts = max(1, int(self.max_retries))
        try:
            self._connection = retry_call(
                self._open_and_bind,
                max_attempts=attempts,
                delay=self.retry_wait,
                exceptions=(LDAPException,),
                on_retry=create_retry_callback("LDAP connection", attempts)
            )
        except MaxRetriesExceeded as e:
            raise DirectoryConnectionError(
                f"Failed to connect to LDAP after {e.attempts} attempts: {e.last_exception}"
            )

        logger.info(f"Connected and bound to LDAP server {self.server_url}")

    def _open_and_bind(self) -> Connection:
        connection = Connection(
            self.server,
            user=self.bind_dn,
            password=self.bind_password,
            version=3,
            auto_bind=False,
            receive_timeout=self.receive_timeout
        )
        try:
            connection.open()

            if self.start_tls and not self.use_ssl:
                if not connection.start_tls():
                    raise LDAPException(f"Failed to start TLS: {connection.result}")
                logger.debug("StartTLS negotiation successful")

            if not connection.bind():
                security_logger.log_authentication_attempt(self.server_url, self.bind_dn, False)
                raise LDAPBindError(f"Bind failed: {connection.result}")
        except LDAPException:
            self._safe_unbind(connection)
            raise

        security_logger.log_authentication_attempt(self.server_url, self.bind_dn, True)
        return connection

    def _create_tls_config(self) -> Optional[Tls]:
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {}
        if not self.verify_ssl:
            tls_config['validate'] = ssl.CERT_NONE
            logger.warning("SSL certificate verification disabled")
        else:
            tls_config['validate'] = ssl.CERT_REQUIRED

        if self.ca_cert_file:
            tls_config['ca_certs_file'] = self.ca_cert_file
            logger.debug(f"Using CA certificate file: {self.ca_cert_file}")

        try:
            return Tls(**tls_config)
        except LDAPException as e:
            raise DirectoryConnectionError(f"Failed to create TLS configuration: {e}")

    def disconnect(self) -> None:
        """Unbind and forget the connection. Safe to call more than once."""
        if self._connection is None:
            return
        try:
            self._safe_unbind(self._connection)
            logger.debug("LDAP connection closed")
        finally:
            self._connection = None

    @staticmethod
    def _safe_unbind(connection: Connection) -> None:
        try:
            connection.unbind()
        except LDAPException as e:
            logger.warning(f"Error closing LDAP connection: {e}")

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


class DirectoryClient:
    """
    Blocking, single-outcome directory operations over a session.

    Every failed operation raises DirectoryError; nothing is retried here.
    """

    def __init__(self, session: DirectorySession):
        self.session = session

    @property
    def connection(self) -> Connection:
        return self.session.connection

    def exists(self, path: str) -> bool:
        """
        Check whether a user entry exists at the given DN.

        Raises:
            DirectoryError: On transport-level failures
        """
        try:
            found = self.connection.search(
                search_base=path,
                search_filter=USER_FILTER,
                search_scope=BASE
            )
        except LDAPException as e:
            raise DirectoryError(str(e))
        return bool(found and self.connection.entries)

    def create(self, record: CandidateRecord, path: str) -> None:
        """
        Add a user entry for a candidate record.

        Raises:
            DirectoryError: If the directory rejects the entry
        """
        attributes = build_user_attributes(record)
        logger.debug(f"Adding entry {path} with attributes {sorted(attributes)}")
        try:
            added = self.connection.add(path, object_class=USER_OBJECT_CLASSES, attributes=attributes)
        except LDAPException as e:
            raise DirectoryError(str(e))
        if not added:
            raise self._error_from_result()

    def delete(self, path: str) -> None:
        """
        Delete the entry at the given DN.

        Raises:
            DirectoryError: If the directory refuses the deletion
        """
        try:
            deleted = self.connection.delete(path)
        except LDAPException as e:
            raise DirectoryError(str(e))
        if not deleted:
            raise self._error_from_result()

    def list_children(self, base_path: str) -> List[str]:
        """
        List the DNs of the user entries one level below the users OU.

        Args:
            base_path: Directory base path, e.g. 'o=example'

        Raises:
            DirectoryError: If the search fails
        """
        search_base = users_base(base_path)
        try:
            found = self.connection.search(
                search_base=search_base,
                search_filter=USER_FILTER,
                search_scope=LEVEL,
                attributes=['cn']
            )
        except LDAPException as e:
            raise DirectoryError(str(e))

        # search() also returns False for an empty but successful result
        if not found and self._result_code() != RESULT_SUCCESS:
            raise self._error_from_result()

        dns = [str(entry.entry_dn) for entry in self.connection.entries] if found else []
        logger.debug(f"Found {len(dns)} entries under {search_base}")
        return dns

    def fetch_attributes(self, path: str, attribute_names: Iterable[str]) -> Dict[str, Any]:
        """
        Read attributes of one entry.

        Args:
            path: DN of the entry
            attribute_names: Attributes to read

        Returns:
            Mapping of attribute name to its first value. Attributes without a
            value are left out; the mapping is empty when the entry does not exist.

        Raises:
            DirectoryError: On transport-level failures
        """
        names = list(attribute_names)
        try:
            found = self.connection.search(
                search_base=path,
                search_filter=USER_FILTER,
                search_scope=BASE,
                attributes=names
            )
        except LDAPException as e:
            raise DirectoryError(str(e))

        if not found or not self.connection.entries:
            return {}

        raw = self.connection.entries[0].entry_attributes_as_dict
        by_lower = {key.lower(): values for key, values in raw.items()}

        attributes = {}
        for name in names:
            values = by_lower.get(name.lower())
            if values:
                attributes[name] = values[0]
        return attributes

    def _result_code(self) -> Optional[int]:
        result = self.connection.result or {}
        return result.get('result')

    def _error_from_result(self) -> DirectoryError:
        result = self.connection.result or {}
        reason = result.get('description') or 'unknown error'
        return DirectoryError(reason, code=result.get('result'), message=result.get('message') or '')
