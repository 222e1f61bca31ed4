"""
Aggregation of per-record outcomes into a batch report.

The report shape is decided from structured outcomes; text is only produced
by render_summary for display.
"""

import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ldap_provision.models import Outcome


class ReportKind(enum.Enum):
    NO_VALID_ROWS = "no_valid_rows"
    ALL_SUCCEEDED = "all_succeeded"
    COMMON_FAILURE = "common_failure"
    CLUSTERED_FAILURES = "clustered_failures"
    PARTIAL_SUCCESS = "partial_success"


@dataclass(frozen=True)
class ReportSummary:
    """
    Result of summarizing one batch.

    Attributes:
        kind: Which of the report shapes applies
        succeeded: Successful ids in original order
        failures: (id, reason) pairs in original order
        common_reason: The single reason when kind is COMMON_FAILURE
        clusters: (reason, ids) pairs in order of first appearance
    """
    kind: ReportKind
    succeeded: Tuple[str, ...] = ()
    failures: Tuple[Tuple[str, str], ...] = ()
    common_reason: Optional[str] = None
    clusters: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failures)

    @property
    def all_succeeded(self) -> bool:
        return self.kind is ReportKind.ALL_SUCCEEDED


class OutcomeReporter:
    """Decides the report shape for a sequence of outcomes."""

    def summarize(self, outcomes: Sequence[Outcome]) -> ReportSummary:
        """
        Summarize the outcomes of one batch. Never raises.

        Args:
            outcomes: Outcomes in processing order

        Returns:
            The report summary for the first matching shape
        """
        if not outcomes:
            return ReportSummary(ReportKind.NO_VALID_ROWS)

        succeeded = tuple(outcome.id for outcome in outcomes if outcome.succeeded)
        failed = [outcome for outcome in outcomes if not outcome.succeeded]
        failures = tuple((outcome.id, outcome.reason) for outcome in failed)

        if not failed:
            return ReportSummary(ReportKind.ALL_SUCCEEDED, succeeded=succeeded)

        if succeeded:
            return ReportSummary(ReportKind.PARTIAL_SUCCESS, succeeded=succeeded, failures=failures)

        clusters = self._cluster(failed)
        if len(clusters) == 1:
            reason = next(iter(clusters))
            return ReportSummary(ReportKind.COMMON_FAILURE, failures=failures, common_reason=reason)

        return ReportSummary(
            ReportKind.CLUSTERED_FAILURES,
            failures=failures,
            clusters=tuple((reason, tuple(ids)) for reason, ids in clusters.items())
        )

    @staticmethod
    def _cluster(failed: Sequence[Outcome]) -> Dict[str, List[str]]:
        # keyed on the displayed reason; dicts keep first-appearance order
        clusters = {}
        for outcome in failed:
            clusters.setdefault(outcome.reason, []).append(outcome.id)
        return clusters


def summarize(outcomes: Sequence[Outcome]) -> ReportSummary:
    """Convenience function to summarize outcomes."""
    return OutcomeReporter().summarize(outcomes)


_EMPTY_MESSAGES = {
    'added': "Error: CSV file does not contain any valid data rows.",
    'deleted': "There are no users to delete. Try adding users to the directory first.",
}


def render_summary(summary: ReportSummary, action: str = "added") -> str:
    """
    Render a summary as the text shown to the operator.

    Args:
        summary: Summary produced by OutcomeReporter
        action: Past-tense verb for the operation, e.g. 'added' or 'deleted'

    Returns:
        Multi-line report text
    """
    if summary.kind is ReportKind.NO_VALID_ROWS:
        return _EMPTY_MESSAGES.get(action, f"No users were {action}.")

    if summary.kind is ReportKind.ALL_SUCCEEDED:
        return f"All users successfully {action}: " + " ".join(summary.succeeded)

    if summary.kind is ReportKind.COMMON_FAILURE:
        return f"All users can't be {action} due to the same reason: {summary.common_reason}"

    if summary.kind is ReportKind.CLUSTERED_FAILURES:
        lines = [f"All users can't be {action} due to the following reasons:"]
        for reason, ids in summary.clusters:
            lines.append(f"Reason: {reason} - Users: " + " ".join(ids))
        return "\n".join(lines)

    lines = [f"Some users couldn't be {action}:"]
    for user_id, reason in summary.failures:
        lines.append(f"User ID: {user_id} - Reason: {reason}")
    lines.append(f"Successfully {action} users: " + " ".join(summary.succeeded))
    return "\n".join(lines)
