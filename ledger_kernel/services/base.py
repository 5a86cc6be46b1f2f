"""
BaseService -- abstract base for all kernel services.

Every write service receives the caller's ``Session`` and persists through
``session.flush()``.  None of them commit or roll back: the caller
(``session_scope()``, an integrator transaction, or a test fixture) owns the
transaction, so several service calls compose into one atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide report queries; those live in
          ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
