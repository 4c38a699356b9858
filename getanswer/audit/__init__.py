"""Audit logging package."""

from getanswer.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
