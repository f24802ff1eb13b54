"""Transactional entry point to the asset database."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..context import OperationContext
from ..db import models
from ..errors import StoreError
from .queries import SqlAlchemyAssetQueries

__all__ = ["AssetStore"]

logger = logging.getLogger(__name__)


class AssetStore:
    """Own the engine and hand out queries bound to one atomic transaction."""

    def __init__(
        self,
        engine: Engine | None = None,
        *,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self._engine = engine or models.get_engine()
        self._session_factory = session_factory or models.create_session_factory(
            self._engine
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def engine(self) -> Engine:
        """Return the underlying SQLAlchemy engine."""

        return self._engine

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create_schema(self) -> None:
        """Create every table that is missing from the target database."""

        try:
            models.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"unable to create schema: {exc}") from exc

    @contextmanager
    def transaction(self, ctx: OperationContext) -> Iterator[SqlAlchemyAssetQueries]:
        """Run the enclosed statements under one atomic transaction.

        The transaction commits when the block exits normally and the context
        is still live; any exception, cancellation or expired deadline rolls
        back every statement issued through the yielded queries.
        """

        ctx.check("begin transaction")
        session = self._session_factory()
        try:
            session.begin()
            yield SqlAlchemyAssetQueries(session)
            ctx.check("commit transaction")
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"unable to complete transaction: {exc}") from exc
        except BaseException:
            logger.debug("Rolling back asset store transaction", exc_info=True)
            session.rollback()
            raise
        finally:
            session.close()

    def table_counts(self) -> dict[str, int]:
        """Return the number of rows stored in each asset store table."""

        counts: dict[str, int] = {}
        try:
            with self._engine.connect() as connection:
                for table in models.metadata.sorted_tables:
                    counts[table.name] = connection.execute(
                        select(func.count()).select_from(table)
                    ).scalar_one()
        except SQLAlchemyError as exc:
            raise StoreError(f"unable to count rows: {exc}") from exc
        return counts
