"""Common base for services that read and write agreement tables."""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from agreement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Bound to the caller's session.

    Subclasses ``flush()`` so constraint violations surface inside the
    current transaction, and never commit or roll back: the workflow
    engine's ``session_scope`` decides whether a sign call lands as a whole.
    """

    def __init__(self, session: Session):
        self.session = session
