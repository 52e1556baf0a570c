"""Storage contracts consumed by the duplicate detection core."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..models import ExistingCertificateView, OverrideRequest, OverrideStatus


class CertificateStore(ABC):
    """Read-only access to the issued certificate corpus."""

    @abstractmethod
    def query(
        self, not_revoked: bool = True, issued_after: Optional[datetime] = None
    ) -> List[ExistingCertificateView]:
        """Query existing certificates.

        Args:
            not_revoked: Exclude certificates whose status is revoked
            issued_after: Only include certificates issued at or after this time

        Returns:
            Matching certificates, in no particular order

        Raises:
            StoreError: If the underlying storage fails
        """
        pass

    @abstractmethod
    def query_duplicates_in_range(
        self, start: datetime, end: datetime
    ) -> List[ExistingCertificateView]:
        """Certificates flagged ``is_duplicate`` issued within [start, end].

        Raises:
            StoreError: If the underlying storage fails
        """
        pass


class OverrideRequestRepository(ABC):
    """Persistence sink for override requests."""

    @abstractmethod
    def add(self, request: OverrideRequest) -> OverrideRequest:
        """Persist a new request.

        Raises:
            StoreError: If the write fails
        """
        pass

    @abstractmethod
    def get(self, request_id: str) -> OverrideRequest:
        """Get a request by id.

        Raises:
            OverrideRequestNotFoundError: If the id is unknown
            StoreError: If the read fails
        """
        pass

    @abstractmethod
    def transition(
        self,
        request_id: str,
        status: OverrideStatus,
        reviewed_by: str,
        reviewed_at: datetime,
    ) -> OverrideRequest:
        """Move a pending request to a terminal status.

        The update only applies while the stored status is still pending.

        Raises:
            OverrideRequestNotFoundError: If the id is unknown
            StateConflictError: If the request is no longer pending
            StoreError: If the write fails
        """
        pass

    @abstractmethod
    def list(
        self,
        certificate_id: Optional[str] = None,
        status: Optional[OverrideStatus] = None,
    ) -> List[OverrideRequest]:
        """List requests, oldest first, optionally filtered."""
        pass
