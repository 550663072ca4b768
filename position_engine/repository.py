"""
Position Engine - Repository.

============================================================
PURPOSE
============================================================
SQLAlchemy implementation of PositionStore.

RESPONSIBILITIES:
- Insert new position records (id assigned by the database)
- Update existing records, trade ids included
- Load a record by id

Each call runs in its own session and transaction. Database
errors are logged and re-raised as PositionRepositoryError.

============================================================
"""

import logging
from typing import List, NoReturn, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from .adapters.base import PositionStore
from .exceptions import PositionRepositoryError
from .models import PositionModel, PositionTradeModel
from .money import CurrencyPair
from .types import PositionRecord, PositionStatus


logger = logging.getLogger(__name__)


# ============================================================
# POSITION REPOSITORY
# ============================================================

class PositionRepository(PositionStore):
    """
    Repository for position persistence.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize repository.

        Args:
            session_factory: SQLAlchemy async session factory
        """
        self._session_factory = session_factory

    # --------------------------------------------------------
    # STORE OPERATIONS
    # --------------------------------------------------------

    async def save(self, record: PositionRecord) -> PositionRecord:
        """
        Save or update a position record.

        Args:
            record: Record to save; inserted when id is None

        Returns:
            Saved record, with its id
        """
        try:
            async with self._session_factory() as session:
                model = None
                if record.id is not None:
                    model = await self._get_model(session, record.id)

                if model is None:
                    model = PositionModel(status=record.status.value, trades=[])
                    if record.id is not None:
                        model.id = record.id
                    session.add(model)

                self._apply(record, model)
                await session.commit()
                await session.refresh(model, attribute_names=["trades"])

                saved = self._model_to_record(model)
                logger.debug(f"Position {saved.id} saved ({saved.status})")
                return saved
        except SQLAlchemyError as e:
            self._handle_db_error(e, "save", record.id)

    async def find_by_id(self, position_id: int) -> Optional[PositionRecord]:
        """
        Load a position record.

        Returns:
            Record or None if not found
        """
        try:
            async with self._session_factory() as session:
                model = await self._get_model(session, position_id)
                return self._model_to_record(model) if model else None
        except SQLAlchemyError as e:
            self._handle_db_error(e, "find_by_id", position_id)

    async def find_by_status(self, status: PositionStatus) -> List[PositionRecord]:
        """Load all records with the given status, ordered by id."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PositionModel)
                    .options(selectinload(PositionModel.trades))
                    .where(PositionModel.status == status.value)
                    .order_by(PositionModel.id)
                )
                return [self._model_to_record(m) for m in result.scalars().all()]
        except SQLAlchemyError as e:
            self._handle_db_error(e, "find_by_status")

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    async def _get_model(
        self,
        session: AsyncSession,
        position_id: int,
    ) -> Optional[PositionModel]:
        return await session.get(
            PositionModel,
            position_id,
            options=[selectinload(PositionModel.trades)],
        )

    def _apply(self, record: PositionRecord, model: PositionModel) -> None:
        """Copy record fields onto the model; trade ids are replaced."""
        model.currency_pair = str(record.currency_pair) if record.currency_pair else None
        model.amount = record.amount
        model.status = record.status.value
        model.stop_gain_percentage = record.stop_gain_percentage
        model.stop_loss_percentage = record.stop_loss_percentage
        model.open_order_id = record.open_order_id
        model.close_order_id = record.close_order_id
        model.lowest_price = record.lowest_price
        model.highest_price = record.highest_price

        current = [t.trade_id for t in model.trades]
        if current != list(record.trade_ids):
            model.trades = [PositionTradeModel(trade_id=t) for t in record.trade_ids]

    def _model_to_record(self, model: PositionModel) -> PositionRecord:
        return PositionRecord(
            id=model.id,
            currency_pair=CurrencyPair.parse(model.currency_pair) if model.currency_pair else None,
            amount=model.amount,
            status=PositionStatus(model.status),
            stop_gain_percentage=model.stop_gain_percentage,
            stop_loss_percentage=model.stop_loss_percentage,
            open_order_id=model.open_order_id,
            close_order_id=model.close_order_id,
            trade_ids=[t.trade_id for t in model.trades],
            lowest_price=model.lowest_price,
            highest_price=model.highest_price,
        )

    def _handle_db_error(
        self,
        error: SQLAlchemyError,
        operation: str,
        position_id: Optional[int] = None,
    ) -> NoReturn:
        logger.error(
            f"Database error in {operation} (position {position_id}): {error}",
            exc_info=True,
        )
        raise PositionRepositoryError(operation, position_id, cause=error) from error
