"""
Reconciliation of candidate records against the directory.

For each record the engine decides whether to create it, skip it because it
already exists, or record the directory's refusal. Record-level problems never
stop the batch.
"""

import logging
from typing import List, Sequence

from ldap_provision.directory import DirectoryClient, DirectoryError, user_dn
from ldap_provision.logging_setup import security_logger
from ldap_provision.models import CandidateRecord, Outcome, RecordFailure

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Create-only provisioning of a batch of candidate records.

    Records are processed strictly in input order, one directory call at a
    time. Existing entries are never modified.
    """

    def __init__(self, base_path: str):
        """
        Args:
            base_path: Directory base path the users OU lives under
        """
        self.base_path = base_path

    def target_path(self, record: CandidateRecord) -> str:
        return user_dn(record.id, self.base_path)

    def reconcile(self, records: Sequence[CandidateRecord], directory: DirectoryClient) -> List[Outcome]:
        """
        Apply a batch of records to the directory.

        Args:
            records: Parsed candidate records
            directory: Client bound to the run's session

        Returns:
            One outcome per record, in input order
        """
        outcomes = []
        for record in records:
            outcomes.append(self._reconcile_record(record, directory))

        created = sum(1 for outcome in outcomes if outcome.succeeded)
        logger.info(f"Reconciled {len(records)} records: {created} created, {len(records) - created} failed")
        return outcomes

    def _reconcile_record(self, record: CandidateRecord, directory: DirectoryClient) -> Outcome:
        path = self.target_path(record)
        try:
            if directory.exists(path):
                logger.info(f"Skipping {path}: entry already exists")
                return Outcome.failed(record.id, RecordFailure.already_exists())

            directory.create(record, path)
        except DirectoryError as e:
            logger.warning(f"Directory rejected {path}: {e.reason} (code={e.code})")
            security_logger.log_user_operation('create', path, False, e.reason)
            return Outcome.failed(record.id, RecordFailure.rejected(e.reason, e.code))

        logger.info(f"Created {path}")
        security_logger.log_user_operation('create', path, True)
        return Outcome.success(record.id)
