"""
LDAP Provision - Bulk provisioning and management of user accounts in an LDAP directory.

This package imports candidate users from CSV files, reconciles them against the
current directory state, creates the missing entries and reports the outcome of
every record. It also provides single and bulk deletion and user lookups.
"""

__version__ = "1.0.0"
__author__ = "LDAP Provision Team"
