"""
core/transaction.py -- Run a chain of dependent writes as one transaction.

Provisioning an account touches three or four tables, and each insert needs
the primary key generated by the one before it. TransactionCoordinator runs
those inserts as an ordered list of steps on a single connection:

    coordinator.run_atomically(
        [
            lambda conn, _: store.create_organization(conn, org),
            lambda conn, org_id: store.create_dogrun_manager(conn, org_id, ...),
            lambda conn, manager_id: store.create_auth_dogrun_manager(conn, manager_id, ...),
        ],
        service=Service.ORG,
    )

Each step is called as step(conn, previous_result); the first step receives
None. The results of all steps are returned in order.

Rollback is plain exception propagation out of engine.begin(): whatever a
step raises undoes every write made so far. The error reaching the caller is
always a ServiceError -- step errors pass through untouched, SQLAlchemy
errors become StoreFailure, anything else becomes UnexpectedError.

Layer rule: core/ is the kernel. No imports from api/, auth/, or accounts/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import Service, ServiceError, StoreFailure, UnexpectedError

Step = Callable[[Connection, Any], Any]

_logger = logging.getLogger("dogrun.transaction")


class TransactionCoordinator:
    def __init__(self, engine: Engine, logger: logging.Logger | None = None) -> None:
        self.engine = engine
        self.logger = logger or _logger

    def run_atomically(self, steps: Sequence[Step], service: Service = Service.OTHER) -> list[Any]:
        """Execute steps in order inside one transaction and commit once."""
        results: list[Any] = []
        try:
            with self.engine.begin() as conn:
                previous: Any = None
                for step in steps:
                    previous = step(conn, previous)
                    results.append(previous)
        except ServiceError as exc:
            self.logger.error("Transaction rolled back after %d of %d steps: %r", len(results), len(steps), exc)
            raise
        except SQLAlchemyError as exc:
            self.logger.error("Transaction rolled back after %d of %d steps: %s", len(results), len(steps), exc)
            raise StoreFailure("Failed to write to the database.", service=service) from exc
        except Exception as exc:
            self.logger.exception("Transaction rolled back on unexpected error")
            raise UnexpectedError(service=service) from exc
        return results
