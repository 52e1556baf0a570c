"""In-memory store implementations."""

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..errors import OverrideRequestNotFoundError, StateConflictError
from ..models import (
    CertificateStatus,
    ExistingCertificateView,
    OverrideRequest,
    OverrideStatus,
    as_utc,
)
from .base import CertificateStore, OverrideRequestRepository


class InMemoryCertificateStore(CertificateStore):
    """Certificate corpus held in a dict keyed by certificate id."""

    def __init__(self, certificates: Optional[Iterable[ExistingCertificateView]] = None):
        self._certificates: Dict[str, ExistingCertificateView] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(self.__class__.__name__)
        for certificate in certificates or ():
            self.add(certificate)

    def add(self, certificate: ExistingCertificateView) -> ExistingCertificateView:
        with self._lock:
            self._certificates[certificate.id] = certificate
        return certificate

    def query(
        self, not_revoked: bool = True, issued_after: Optional[datetime] = None
    ) -> List[ExistingCertificateView]:
        cutoff = as_utc(issued_after) if issued_after else None
        with self._lock:
            certificates = list(self._certificates.values())

        return [
            cert
            for cert in certificates
            if not (not_revoked and cert.status == CertificateStatus.REVOKED)
            and (cutoff is None or cert.issued_at >= cutoff)
        ]

    def query_duplicates_in_range(
        self, start: datetime, end: datetime
    ) -> List[ExistingCertificateView]:
        start, end = as_utc(start), as_utc(end)
        with self._lock:
            certificates = list(self._certificates.values())

        return [
            cert
            for cert in certificates
            if cert.is_duplicate and start <= cert.issued_at <= end
        ]

    def __len__(self) -> int:
        return len(self._certificates)


class InMemoryOverrideRequestRepository(OverrideRequestRepository):
    """Override ledger guarded by a lock so transitions are compare-and-set."""

    def __init__(self):
        self._requests: Dict[str, OverrideRequest] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(self.__class__.__name__)

    def add(self, request: OverrideRequest) -> OverrideRequest:
        with self._lock:
            self._requests[request.id] = request
        return request

    def get(self, request_id: str) -> OverrideRequest:
        with self._lock:
            request = self._requests.get(request_id)
        if request is None:
            raise OverrideRequestNotFoundError(request_id)
        return request

    def transition(
        self,
        request_id: str,
        status: OverrideStatus,
        reviewed_by: str,
        reviewed_at: datetime,
    ) -> OverrideRequest:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise OverrideRequestNotFoundError(request_id)
            if current.status != OverrideStatus.PENDING:
                raise StateConflictError(
                    f"Override request {request_id} is already {current.status.value}",
                    request_id=request_id,
                    current_status=current.status.value,
                )

            update = {"status": status, "reviewed_at": as_utc(reviewed_at)}
            if status == OverrideStatus.APPROVED:
                update["approved_by"] = reviewed_by
            else:
                update["rejected_by"] = reviewed_by

            updated = current.model_copy(update=update)
            self._requests[request_id] = updated
            return updated

    def list(
        self,
        certificate_id: Optional[str] = None,
        status: Optional[OverrideStatus] = None,
    ) -> List[OverrideRequest]:
        with self._lock:
            requests = list(self._requests.values())

        return sorted(
            (
                r
                for r in requests
                if (certificate_id is None or r.certificate_id == certificate_id)
                and (status is None or r.status == status)
            ),
            key=lambda r: (r.created_at, r.id),
        )
