"""Duplicate reports over a time range of issued certificates."""

import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Optional

from ..errors import ErrorHandler, ValidationError
from ..models import (
    DuplicateClass,
    DuplicateReport,
    ExistingCertificateView,
    ReportedDuplicate,
    TimeRange,
    as_utc,
)
from ..repositories import CertificateStore
from .rule_evaluator import utcnow

logger = logging.getLogger(__name__)

# Issuer bucket for flagged certificates that carry no issuer
UNKNOWN_ISSUER = "unknown"


def classify_duplicate(cert: ExistingCertificateView) -> DuplicateClass:
    """A flagged certificate pointing at its original is exact, any other is fuzzy."""
    if cert.duplicate_of_id:
        return DuplicateClass.EXACT
    return DuplicateClass.FUZZY


class ReportGenerator:
    """Summarizes certificates already flagged as duplicates."""

    def __init__(
        self,
        store: CertificateStore,
        clock: Callable[[], datetime] = utcnow,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.store = store
        self.clock = clock
        self.error_handler = error_handler or ErrorHandler()

    def generate_report(self, start: datetime, end: datetime) -> DuplicateReport:
        """Build a report of flagged certificates issued within [start, end].

        Raises:
            ValidationError: If ``start`` is after ``end``
            StoreError: If the certificate store cannot be read
        """
        start, end = as_utc(start), as_utc(end)
        if start > end:
            raise ValidationError(
                f"Report start {start.isoformat()} is after end {end.isoformat()}",
                field="start",
                value=start.isoformat(),
            )

        with self.error_handler.error_context(
            operation="query_duplicates_in_range",
            resource_type="report",
            metadata={"start": start.isoformat(), "end": end.isoformat()},
        ):
            try:
                flagged = self.store.query_duplicates_in_range(start, end)
            except Exception as e:
                self.error_handler.handle_error(e)

        flagged = sorted(flagged, key=lambda cert: (cert.issued_at, cert.id))
        by_issuer = Counter(cert.issuer_id or UNKNOWN_ISSUER for cert in flagged)
        by_type = Counter()
        entries = []
        for cert in flagged:
            kind = classify_duplicate(cert)
            by_type[kind.value] += 1
            entries.append(
                ReportedDuplicate(
                    certificate_id=cert.id,
                    issuer_id=cert.issuer_id,
                    recipient_email=cert.recipient_email,
                    recipient_name=cert.recipient_name,
                    title=cert.title,
                    issued_at=cert.issued_at,
                    similarity_score=1.0,
                    match_type=kind,
                )
            )

        generated_at = self.clock()
        report = DuplicateReport(
            id=f"report_{int(generated_at.timestamp() * 1000)}",
            total_duplicates=len(entries),
            duplicates_by_issuer=dict(by_issuer),
            duplicates_by_type=dict(by_type),
            time_range=TimeRange(start=start, end=end),
            generated_at=generated_at,
            duplicates=tuple(entries),
        )

        logger.info(
            f"Generated duplicate report {report.id}: {report.total_duplicates} duplicates"
        )
        return report
