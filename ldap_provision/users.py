"""
Lookup and deletion of provisioned users.
"""

import logging
from typing import Any, Dict, List, Optional

from ldap_provision.directory import DirectoryClient, DirectoryError, DISPLAY_ATTRIBUTES, user_dn
from ldap_provision.logging_setup import security_logger
from ldap_provision.models import Outcome, RecordFailure

logger = logging.getLogger(__name__)


def _user_id_from_dn(dn: str) -> str:
    rdn = dn.split(',', 1)[0]
    return rdn.split('=', 1)[1] if '=' in rdn else rdn


class UserDirectory:
    """User-level operations on the users OU of a base path."""

    def __init__(self, directory: DirectoryClient, base_path: str):
        self.directory = directory
        self.base_path = base_path

    def show_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Read the display attributes of one user.

        Returns:
            Attribute mapping including 'dn', or None if the user does not exist
        """
        dn = user_dn(user_id, self.base_path)
        attributes = self.directory.fetch_attributes(dn, DISPLAY_ATTRIBUTES)
        if not attributes:
            logger.info(f"No user found with DN: {dn}")
            return None
        return {'dn': dn, **attributes}

    def list_users(self) -> List[Dict[str, Any]]:
        """Display attributes of every user, sorted by DN."""
        users = []
        for dn in sorted(self.directory.list_children(self.base_path)):
            attributes = self.directory.fetch_attributes(dn, DISPLAY_ATTRIBUTES)
            users.append({'dn': dn, **attributes})
        return users

    def count_users(self) -> int:
        return len(self.directory.list_children(self.base_path))

    def delete_user(self, user_id: str) -> Outcome:
        """
        Delete one user after checking that it exists.

        Returns:
            Success, or a NOT_FOUND / DIRECTORY_REJECTED failure
        """
        dn = user_dn(user_id, self.base_path)
        try:
            if not self.directory.exists(dn):
                logger.info(f"User with DN '{dn}' does not exist")
                return Outcome.failed(user_id, RecordFailure.not_found())
        except DirectoryError as e:
            return Outcome.failed(user_id, RecordFailure.rejected(e.reason, e.code))

        return self._delete(user_id, dn)

    def delete_all_users(self) -> List[Outcome]:
        """
        Delete every user under the users OU, continuing past failures.

        Returns:
            One outcome per user found, in listing order; empty if there were none

        Raises:
            DirectoryError: If the users cannot be listed
        """
        dns = self.directory.list_children(self.base_path)
        if not dns:
            logger.info(f"There are no users to delete under {self.base_path}")
            return []

        return [self._delete(_user_id_from_dn(dn), dn) for dn in dns]

    def _delete(self, user_id: str, dn: str) -> Outcome:
        try:
            self.directory.delete(dn)
        except DirectoryError as e:
            logger.error(f"Failed to delete user with DN '{dn}': {e.reason}")
            security_logger.log_user_operation('delete', dn, False, e.reason)
            return Outcome.failed(user_id, RecordFailure.rejected(e.reason, e.code))

        logger.info(f"Deleted user with DN '{dn}'")
        security_logger.log_user_operation('delete', dn, True)
        return Outcome.success(user_id)
