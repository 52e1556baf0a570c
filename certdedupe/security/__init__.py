"""Audit trail for duplicate detection."""

from .audit import AuditLogger

__all__ = ["AuditLogger"]
