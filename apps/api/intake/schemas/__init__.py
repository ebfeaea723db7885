"""Pydantic schemas."""

from intake.schemas.client import (
    ClientCreate,
    ClientImport,
    ClientPage,
    ClientRead,
    ClientStats,
    ClientUpdate,
    ImportFailure,
    ImportSummary,
    OperationResult,
    Pagination,
)
from intake.schemas.sheet import SheetClientRecord

__all__ = [
    "ClientCreate",
    "ClientImport",
    "ClientPage",
    "ClientRead",
    "ClientStats",
    "ClientUpdate",
    "ImportFailure",
    "ImportSummary",
    "OperationResult",
    "Pagination",
    "SheetClientRecord",
]
