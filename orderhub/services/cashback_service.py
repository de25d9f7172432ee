"""
Cashback Ledger Service.

Owns the wallet invariant:

    available_balance == total_earned - total_used >= 0

Every movement is an append-only CashbackTransaction plus an update of the
wallet aggregates, both inside one transaction. Debits are a single
conditional UPDATE (`WHERE available_balance >= :amount`) so two concurrent
debits can never both pass a stale balance check.

Public earn()/use() commit their own unit of work. post_earned()/post_used()
only flush, for callers (OrderService) that need ledger effects inside a
larger transaction.
"""
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select, update, func, and_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from orderhub.core.clock import utcnow
from orderhub.core.enum_utils import get_enum_value
from orderhub.core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    NotFoundError,
    OrderHubError,
    StorageError,
)
from orderhub.models.cashback import (
    CashbackReferenceType,
    CashbackTransaction,
    CashbackTransactionType,
    CashbackWallet,
)
from orderhub.models.order import Order
from orderhub.db_types import ZERO
from orderhub.schemas.base import round_money
from orderhub.schemas.cashback import CashbackHistoryFilters

logger = logging.getLogger(__name__)


class CashbackService:
    """Service for cashback wallets and their ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== VALIDATION ====================

    @staticmethod
    def normalize_amount(amount) -> Decimal:
        """Round to cents; anything not strictly positive is rejected."""
        try:
            value = round_money(amount)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountError("Cashback amount must be a number", {"amount": str(amount)})

        if not value.is_finite() or value <= ZERO:
            raise InvalidAmountError(
                "Cashback amount must be greater than zero",
                {"amount": str(amount)},
            )
        return value

    # ==================== WALLETS ====================

    async def get_wallet(self, organization_id: uuid.UUID) -> Optional[CashbackWallet]:
        stmt = select(CashbackWallet).where(CashbackWallet.organization_id == organization_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _insert_wallet_if_missing(self, organization_id: uuid.UUID) -> None:
        """Race-free wallet creation keyed on the unique organization_id."""
        dialect = self.db.get_bind().dialect.name
        values = {
            "id": uuid.uuid4(),
            "organization_id": organization_id,
            "available_balance": ZERO,
            "total_earned": ZERO,
            "total_used": ZERO,
            "created_at": utcnow(),
            "updated_at": utcnow(),
        }

        if dialect == "postgresql":
            stmt = pg_insert(CashbackWallet).values(**values).on_conflict_do_nothing(
                index_elements=["organization_id"]
            )
        elif dialect == "sqlite":
            stmt = sqlite_insert(CashbackWallet).values(**values).on_conflict_do_nothing(
                index_elements=["organization_id"]
            )
        else:
            if await self.get_wallet(organization_id) is not None:
                return
            self.db.add(CashbackWallet(**values))
            await self.db.flush()
            return

        await self.db.execute(stmt)

    async def _ensure_wallet(self, organization_id: uuid.UUID) -> CashbackWallet:
        wallet = await self.get_wallet(organization_id)
        if wallet is None:
            await self._insert_wallet_if_missing(organization_id)
            wallet = await self.get_wallet(organization_id)
            logger.info(f"Created cashback wallet for organization {organization_id}")
        return wallet

    async def get_or_create_wallet(self, organization_id: uuid.UUID) -> CashbackWallet:
        """
        Get the organization's wallet, creating an empty one on first access.

        Two concurrent first accesses resolve to the same row: the insert
        does nothing when the unique organization_id already exists.
        """
        existing = await self.get_wallet(organization_id)
        if existing is not None:
            return existing

        try:
            wallet = await self._ensure_wallet(organization_id)
            await self.db.commit()
            return wallet
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating cashback wallet for {organization_id}: {e}")
            raise StorageError("Cashback wallet could not be created")

    async def list_wallets(self, skip: int = 0, limit: int = 50) -> Tuple[List[CashbackWallet], int]:
        """Wallets with the largest available balance first."""
        total = (await self.db.execute(select(func.count(CashbackWallet.id)))).scalar()

        stmt = (
            select(CashbackWallet)
            .order_by(CashbackWallet.available_balance.desc(), CashbackWallet.created_at.asc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_balance(self, organization_id: uuid.UUID) -> Decimal:
        """Available balance; an organization without a wallet has 0.00."""
        stmt = select(CashbackWallet.available_balance).where(
            CashbackWallet.organization_id == organization_id
        )
        balance = (await self.db.execute(stmt)).scalar_one_or_none()
        return round_money(balance) if balance is not None else ZERO

    async def has_enough_balance(self, organization_id: uuid.UUID, amount) -> bool:
        """Advisory check for UIs. use() performs its own atomic check."""
        return await self.get_balance(organization_id) >= round_money(amount)

    async def _require_order(self, order_id: uuid.UUID) -> None:
        stmt = select(Order.id).where(Order.id == order_id)
        if (await self.db.execute(stmt)).scalar_one_or_none() is None:
            raise NotFoundError(f"Order {order_id} not found", {"order_id": str(order_id)})

    # ==================== LEDGER POSTINGS ====================

    async def post_earned(
        self,
        organization_id: uuid.UUID,
        order_id: uuid.UUID,
        amount,
        reference_id: Optional[uuid.UUID] = None,
        reference_type: Optional[CashbackReferenceType] = None,
        description: Optional[str] = None,
    ) -> CashbackTransaction:
        """Credit inside the caller's transaction (flush, no commit)."""
        value = self.normalize_amount(amount)
        wallet = await self._ensure_wallet(organization_id)

        stmt = (
            update(CashbackWallet)
            .where(CashbackWallet.id == wallet.id)
            .values(
                available_balance=CashbackWallet.available_balance + value,
                total_earned=CashbackWallet.total_earned + value,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

        transaction = CashbackTransaction(
            cashback_wallet_id=wallet.id,
            order_id=order_id,
            type=CashbackTransactionType.EARNED.value,
            amount=value,
            reference_id=reference_id,
            reference_type=get_enum_value(reference_type),
            description=description,
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction

    async def post_used(
        self,
        organization_id: uuid.UUID,
        order_id: uuid.UUID,
        amount,
        description: Optional[str] = None,
    ) -> CashbackTransaction:
        """
        Debit inside the caller's transaction (flush, no commit).

        The balance check and the decrement are one statement. If no row
        matches, nothing was written by this call and InsufficientBalanceError
        is raised; the caller must roll back its unit.
        """
        value = self.normalize_amount(amount)

        stmt = (
            update(CashbackWallet)
            .where(
                and_(
                    CashbackWallet.organization_id == organization_id,
                    CashbackWallet.available_balance >= value,
                )
            )
            .values(
                available_balance=CashbackWallet.available_balance - value,
                total_used=CashbackWallet.total_used + value,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount == 0:
            available = await self.get_balance(organization_id)
            raise InsufficientBalanceError(
                f"Insufficient cashback balance: available {available}, requested {value}",
                {"available_balance": str(available), "requested": str(value)},
            )

        wallet = await self.get_wallet(organization_id)
        transaction = CashbackTransaction(
            cashback_wallet_id=wallet.id,
            order_id=order_id,
            type=CashbackTransactionType.USED.value,
            amount=value,
            reference_id=order_id,
            reference_type=CashbackReferenceType.ORDER.value,
            description=description,
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction

    async def _commit_posting(self, transaction: CashbackTransaction, organization_id: uuid.UUID):
        await self.db.commit()
        # Aggregates were changed by UPDATE statements; reload them
        stmt = (
            select(CashbackWallet)
            .where(CashbackWallet.organization_id == organization_id)
            .execution_options(populate_existing=True)
        )
        wallet = (await self.db.execute(stmt)).scalar_one()
        return transaction, wallet

    async def earn(
        self,
        organization_id: uuid.UUID,
        order_id: uuid.UUID,
        amount,
        reference_id: Optional[uuid.UUID] = None,
        reference_type: Optional[CashbackReferenceType] = None,
        description: Optional[str] = None,
    ) -> Tuple[CashbackTransaction, CashbackWallet]:
        """
        Credit cashback to an organization.

        Returns:
            The EARNED transaction and the wallet after the credit

        Raises:
            InvalidAmountError: amount <= 0
            NotFoundError: order_id does not reference an order
            StorageError: the unit was rolled back
        """
        try:
            self.normalize_amount(amount)
            await self._require_order(order_id)
            transaction = await self.post_earned(
                organization_id, order_id, amount,
                reference_id=reference_id,
                reference_type=reference_type,
                description=description,
            )
            result = await self._commit_posting(transaction, organization_id)
        except OrderHubError:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Database integrity error earning cashback for {organization_id}: {e}")
            raise StorageError("Cashback credit failed: invalid data reference")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error earning cashback for {organization_id}: {e}")
            raise StorageError("Cashback credit failed: database error")

        logger.info(f"Cashback EARNED {transaction.amount} for organization {organization_id} (order {order_id})")
        return result

    async def use(
        self,
        organization_id: uuid.UUID,
        order_id: uuid.UUID,
        amount,
        description: Optional[str] = None,
    ) -> Tuple[CashbackTransaction, CashbackWallet]:
        """
        Debit cashback from an organization.

        Returns:
            The USED transaction and the wallet after the debit

        Raises:
            InvalidAmountError: amount <= 0
            InsufficientBalanceError: available_balance < amount
            NotFoundError: order_id does not reference an order
            StorageError: the unit was rolled back
        """
        try:
            self.normalize_amount(amount)
            await self._require_order(order_id)
            transaction = await self.post_used(organization_id, order_id, amount, description=description)
            result = await self._commit_posting(transaction, organization_id)
        except OrderHubError:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Database integrity error using cashback for {organization_id}: {e}")
            raise StorageError("Cashback debit failed: invalid data reference")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error using cashback for {organization_id}: {e}")
            raise StorageError("Cashback debit failed: database error")

        logger.info(f"Cashback USED {transaction.amount} for organization {organization_id} (order {order_id})")
        return result

    # ==================== HISTORY ====================

    async def get_history(
        self,
        organization_id: uuid.UUID,
        filters: Optional[CashbackHistoryFilters] = None,
    ) -> Tuple[List[CashbackTransaction], int]:
        """Ledger entries of an organization, oldest first."""
        filters = filters or CashbackHistoryFilters()

        conditions = [CashbackWallet.organization_id == organization_id]

        if filters.order_id:
            conditions.append(CashbackTransaction.order_id == filters.order_id)

        if filters.type:
            conditions.append(CashbackTransaction.type == get_enum_value(filters.type))

        if filters.created_from:
            conditions.append(CashbackTransaction.created_at >= filters.created_from)

        if filters.created_to:
            conditions.append(CashbackTransaction.created_at <= filters.created_to)

        count_stmt = (
            select(func.count(CashbackTransaction.id))
            .join(CashbackWallet, CashbackTransaction.cashback_wallet_id == CashbackWallet.id)
            .where(and_(*conditions))
        )
        total = (await self.db.execute(count_stmt)).scalar()

        stmt = (
            select(CashbackTransaction)
            .join(CashbackWallet, CashbackTransaction.cashback_wallet_id == CashbackWallet.id)
            .where(and_(*conditions))
            .order_by(CashbackTransaction.created_at.asc(), CashbackTransaction.id.asc())
            .offset(filters.skip)
            .limit(filters.limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_history_by_order(self, order_id: uuid.UUID) -> List[CashbackTransaction]:
        """All ledger entries tied to one order, oldest first."""
        stmt = (
            select(CashbackTransaction)
            .where(CashbackTransaction.order_id == order_id)
            .order_by(CashbackTransaction.created_at.asc(), CashbackTransaction.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
