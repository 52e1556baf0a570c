"""SQLite-backed certificate store and override ledger."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from ..errors import OverrideRequestNotFoundError, StateConflictError, StoreError
from ..models import (
    CertificateStatus,
    ExistingCertificateView,
    OverrideRequest,
    OverrideStatus,
    as_utc,
)
from .base import CertificateStore, OverrideRequestRepository

logger = logging.getLogger(__name__)

# Fixed-width UTC timestamps so text comparison in SQL orders chronologically
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def _to_db(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).strftime(_TIMESTAMP_FORMAT)


def _from_db(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class _SQLiteBase:
    """Shared connection handling for the SQLite stores."""

    SCHEMA: str = ""

    def __init__(self, db_path: Union[str, Path] = "certdedupe.db"):
        self.db_path = str(db_path)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.init_database()

    @contextmanager
    def _connect(self):
        """Open a connection that commits on success and is always closed."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_database(self):
        """Create tables and indexes if missing."""
        try:
            with self._connect() as conn:
                conn.executescript(self.SCHEMA)
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to initialize database {self.db_path}: {e}",
                operation="init_database",
                cause=e,
            ) from e


class SQLiteCertificateStore(_SQLiteBase, CertificateStore):
    """Certificate corpus stored in a ``certificates`` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS certificates (
            id TEXT PRIMARY KEY,
            issuer_id TEXT,
            recipient_email TEXT,
            recipient_name TEXT,
            title TEXT,
            issued_at TEXT NOT NULL,
            status TEXT NOT NULL,
            is_duplicate INTEGER NOT NULL DEFAULT 0,
            duplicate_of_id TEXT,
            override_reason TEXT,
            overridden_by TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_certificates_issued_at ON certificates(issued_at);
        CREATE INDEX IF NOT EXISTS idx_certificates_status ON certificates(status);
    """

    def add(self, certificate: ExistingCertificateView) -> ExistingCertificateView:
        """Insert or replace a certificate."""
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO certificates
                    (id, issuer_id, recipient_email, recipient_name, title, issued_at,
                     status, is_duplicate, duplicate_of_id, override_reason, overridden_by)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        certificate.id,
                        certificate.issuer_id,
                        certificate.recipient_email,
                        certificate.recipient_name,
                        certificate.title,
                        _to_db(certificate.issued_at),
                        certificate.status.value,
                        int(certificate.is_duplicate),
                        certificate.duplicate_of_id,
                        certificate.override_reason,
                        certificate.overridden_by,
                    ),
                )
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to save certificate {certificate.id}: {e}",
                operation="add_certificate",
                cause=e,
            ) from e
        return certificate

    def query(
        self, not_revoked: bool = True, issued_after: Optional[datetime] = None
    ) -> List[ExistingCertificateView]:
        sql = "SELECT * FROM certificates WHERE 1 = 1"
        params: list = []
        if not_revoked:
            sql += " AND status != ?"
            params.append(CertificateStatus.REVOKED.value)
        if issued_after is not None:
            sql += " AND issued_at >= ?"
            params.append(_to_db(issued_after))
        return self._fetch(sql, params, "query_certificates")

    def query_duplicates_in_range(
        self, start: datetime, end: datetime
    ) -> List[ExistingCertificateView]:
        return self._fetch(
            "SELECT * FROM certificates WHERE is_duplicate = 1"
            " AND issued_at BETWEEN ? AND ?",
            [_to_db(start), _to_db(end)],
            "query_duplicates_in_range",
        )

    def _fetch(self, sql: str, params: list, operation: str) -> List[ExistingCertificateView]:
        try:
            with self._connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(
                f"Certificate query failed: {e}", operation=operation, cause=e
            ) from e
        return [self._row_to_certificate(row) for row in rows]

    @staticmethod
    def _row_to_certificate(row: sqlite3.Row) -> ExistingCertificateView:
        return ExistingCertificateView(
            id=row["id"],
            issuer_id=row["issuer_id"],
            recipient_email=row["recipient_email"],
            recipient_name=row["recipient_name"],
            title=row["title"],
            issued_at=_from_db(row["issued_at"]),
            status=CertificateStatus(row["status"]),
            is_duplicate=bool(row["is_duplicate"]),
            duplicate_of_id=row["duplicate_of_id"],
            override_reason=row["override_reason"],
            overridden_by=row["overridden_by"],
        )


class SQLiteOverrideRequestRepository(_SQLiteBase, OverrideRequestRepository):
    """Override ledger with compare-and-set transitions."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS override_requests (
            id TEXT PRIMARY KEY,
            certificate_id TEXT NOT NULL,
            reason TEXT NOT NULL,
            requested_by TEXT NOT NULL,
            approved_by TEXT,
            rejected_by TEXT,
            status TEXT NOT NULL,
            created_at TEXT NOT NULL,
            reviewed_at TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_override_status ON override_requests(status);
        CREATE INDEX IF NOT EXISTS idx_override_certificate ON override_requests(certificate_id);
    """

    def add(self, request: OverrideRequest) -> OverrideRequest:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO override_requests
                    (id, certificate_id, reason, requested_by, approved_by, rejected_by,
                     status, created_at, reviewed_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        request.id,
                        request.certificate_id,
                        request.reason,
                        request.requested_by,
                        request.approved_by,
                        request.rejected_by,
                        request.status.value,
                        _to_db(request.created_at),
                        _to_db(request.reviewed_at),
                    ),
                )
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to save override request {request.id}: {e}",
                operation="add_override_request",
                cause=e,
            ) from e
        return request

    def get(self, request_id: str) -> OverrideRequest:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM override_requests WHERE id = ?", (request_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to load override request {request_id}: {e}",
                operation="get_override_request",
                cause=e,
            ) from e

        if row is None:
            raise OverrideRequestNotFoundError(request_id)
        return self._row_to_request(row)

    def transition(
        self,
        request_id: str,
        status: OverrideStatus,
        reviewed_by: str,
        reviewed_at: datetime,
    ) -> OverrideRequest:
        reviewer_column = (
            "approved_by" if status == OverrideStatus.APPROVED else "rejected_by"
        )
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"""
                    UPDATE override_requests
                    SET status = ?, {reviewer_column} = ?, reviewed_at = ?
                    WHERE id = ? AND status = ?
                    """,
                    (
                        status.value,
                        reviewed_by,
                        _to_db(reviewed_at),
                        request_id,
                        OverrideStatus.PENDING.value,
                    ),
                )
                updated = cursor.rowcount
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to update override request {request_id}: {e}",
                operation="transition_override_request",
                cause=e,
            ) from e

        current = self.get(request_id)
        if updated == 0:
            raise StateConflictError(
                f"Override request {request_id} is already {current.status.value}",
                request_id=request_id,
                current_status=current.status.value,
            )

        self.logger.debug(f"Override request {request_id} moved to {status.value}")
        return current

    def list(
        self,
        certificate_id: Optional[str] = None,
        status: Optional[OverrideStatus] = None,
    ) -> List[OverrideRequest]:
        sql = "SELECT * FROM override_requests WHERE 1 = 1"
        params: list = []
        if certificate_id is not None:
            sql += " AND certificate_id = ?"
            params.append(certificate_id)
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at, id"

        try:
            with self._connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to list override requests: {e}",
                operation="list_override_requests",
                cause=e,
            ) from e
        return [self._row_to_request(row) for row in rows]

    @staticmethod
    def _row_to_request(row: sqlite3.Row) -> OverrideRequest:
        return OverrideRequest(
            id=row["id"],
            certificate_id=row["certificate_id"],
            reason=row["reason"],
            requested_by=row["requested_by"],
            approved_by=row["approved_by"],
            rejected_by=row["rejected_by"],
            status=OverrideStatus(row["status"]),
            created_at=_from_db(row["created_at"]),
            reviewed_at=_from_db(row["reviewed_at"]),
        )
