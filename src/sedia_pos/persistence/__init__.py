from .db import Base, create_db_engine, init_db, make_session_factory
from .repositories import (
    SqlCatalog,
    SqlHeldOrderRepository,
    SqlLoyaltyService,
    SqlShiftRepository,
    SqlTransactionCommitter,
)

__all__ = [
    "Base",
    "SqlCatalog",
    "SqlHeldOrderRepository",
    "SqlLoyaltyService",
    "SqlShiftRepository",
    "SqlTransactionCommitter",
    "create_db_engine",
    "init_db",
    "make_session_factory",
]
