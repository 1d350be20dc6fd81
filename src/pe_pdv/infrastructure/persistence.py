"""PdvRepository — PostgreSQL implementation of PdvRepositoryProtocol.

Stock is tracked as (stock, reserved). Creating a checkout reserves, paying
consumes (stock and reserved both drop), expiry/cancel releases. A CHECK
constraint keeps 0 <= reserved <= stock.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pe_common.errors import InternalError
from src.pe_pdv.domain.models import CheckoutItem, Order, Pdv, PdvCheckout, PdvProduct

_CHECKOUT_COLUMNS = """code, pdv_id, items, total_points, total_money_cents, status,
              expires_at, created_at, user_id, payment_method, points_used,
              money_paid_cents, cashback_earned, external_payment_id, order_id,
              balance_after, paid_at"""

_GET_PDV_SQL = text("""
    SELECT id, name, location, status, cashback_bps FROM pdvs WHERE id = :pdv_id
""")

_GET_PRODUCTS_SQL = text("""
    SELECT id, pdv_id, name, price_points, price_money_cents, stock, reserved, is_active
    FROM pdv_products
    WHERE id = ANY(:product_ids)
""")

_RESERVE_STOCK_SQL = text("""
    UPDATE pdv_products
    SET reserved = reserved + :quantity, updated_at = NOW()
    WHERE id = :product_id AND is_active AND stock - reserved >= :quantity
    RETURNING id
""")

_RELEASE_STOCK_SQL = text("""
    UPDATE pdv_products
    SET reserved = GREATEST(reserved - :quantity, 0), updated_at = NOW()
    WHERE id = :product_id
""")

_CONSUME_STOCK_SQL = text("""
    UPDATE pdv_products
    SET stock = stock - :quantity,
        reserved = reserved - :quantity,
        updated_at = NOW()
    WHERE id = :product_id AND reserved >= :quantity
    RETURNING id
""")

_CODE_EXISTS_SQL = text("SELECT 1 FROM pdv_checkouts WHERE code = :code")

_INSERT_CHECKOUT_SQL = text(f"""
    INSERT INTO pdv_checkouts
        (code, pdv_id, items, total_points, total_money_cents, status, expires_at)
    VALUES
        (:code, :pdv_id, CAST(:items AS JSONB), :total_points, :total_money_cents,
         :status, :expires_at)
    RETURNING {_CHECKOUT_COLUMNS}
""")

_GET_CHECKOUT_SQL = text(f"SELECT {_CHECKOUT_COLUMNS} FROM pdv_checkouts WHERE code = :code")

_GET_CHECKOUT_FOR_UPDATE_SQL = text(f"""
    SELECT {_CHECKOUT_COLUMNS} FROM pdv_checkouts WHERE code = :code FOR UPDATE
""")

_UPDATE_STATUS_SQL = text(f"""
    UPDATE pdv_checkouts
    SET status = :to_status,
        user_id = COALESCE(CAST(:user_id AS TEXT), user_id),
        updated_at = NOW()
    WHERE code = :code
      AND status = ANY(:from_statuses)
      AND (CAST(:not_expired_at AS TIMESTAMPTZ) IS NULL
           OR expires_at > CAST(:not_expired_at AS TIMESTAMPTZ))
    RETURNING {_CHECKOUT_COLUMNS}
""")

_MARK_PAID_SQL = text(f"""
    UPDATE pdv_checkouts
    SET status = 'PAID',
        payment_method = :payment_method,
        points_used = :points_used,
        money_paid_cents = :money_paid_cents,
        cashback_earned = :cashback_earned,
        external_payment_id = :external_payment_id,
        order_id = :order_id,
        balance_after = :balance_after,
        paid_at = :paid_at,
        updated_at = NOW()
    WHERE code = :code AND status = 'RESERVED' AND user_id = :user_id
    RETURNING {_CHECKOUT_COLUMNS}
""")

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders
        (id, user_id, pdv_id, checkout_code, items, payment_method, points_used,
         money_paid_cents, cashback_earned, external_payment_id)
    VALUES
        (:id, :user_id, :pdv_id, :checkout_code, CAST(:items AS JSONB), :payment_method,
         :points_used, :money_paid_cents, :cashback_earned, :external_payment_id)
    RETURNING created_at
""")

_LIST_STALE_SQL = text(f"""
    SELECT {_CHECKOUT_COLUMNS}
    FROM pdv_checkouts
    WHERE status IN ('OPEN', 'RESERVED') AND expires_at <= :now
    ORDER BY expires_at
    LIMIT :limit
""")


def _dump_items(items: list[CheckoutItem]) -> str:
    return json.dumps([i.to_dict() for i in items])


def _load_items(value: Any) -> list[CheckoutItem]:
    if value is None:
        return []
    raw = json.loads(value) if isinstance(value, str) else value
    return [CheckoutItem.from_dict(i) for i in raw]


def _row_to_product(row: object) -> PdvProduct:
    return PdvProduct(
        id=str(row.id),  # type: ignore[attr-defined]
        pdv_id=str(row.pdv_id),  # type: ignore[attr-defined]
        name=row.name,  # type: ignore[attr-defined]
        price_points=row.price_points,  # type: ignore[attr-defined]
        price_money_cents=row.price_money_cents,  # type: ignore[attr-defined]
        stock=row.stock,  # type: ignore[attr-defined]
        reserved=row.reserved,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
    )


def _row_to_checkout(row: object) -> PdvCheckout:
    return PdvCheckout(
        code=row.code,  # type: ignore[attr-defined]
        pdv_id=str(row.pdv_id),  # type: ignore[attr-defined]
        items=_load_items(row.items),  # type: ignore[attr-defined]
        total_points=row.total_points,  # type: ignore[attr-defined]
        total_money_cents=row.total_money_cents,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        expires_at=row.expires_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        payment_method=row.payment_method,  # type: ignore[attr-defined]
        points_used=row.points_used,  # type: ignore[attr-defined]
        money_paid_cents=row.money_paid_cents,  # type: ignore[attr-defined]
        cashback_earned=row.cashback_earned,  # type: ignore[attr-defined]
        external_payment_id=row.external_payment_id,  # type: ignore[attr-defined]
        order_id=row.order_id,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        paid_at=row.paid_at,  # type: ignore[attr-defined]
    )


class PdvRepository:
    async def get_pdv(self, db: AsyncSession, pdv_id: str) -> Pdv | None:
        result = await db.execute(_GET_PDV_SQL, {"pdv_id": pdv_id})
        row = result.fetchone()
        if row is None:
            return None
        return Pdv(
            id=str(row.id),
            name=row.name,
            location=row.location,
            status=row.status,
            cashback_bps=row.cashback_bps,
        )

    async def get_products(
        self, db: AsyncSession, product_ids: list[str]
    ) -> list[PdvProduct]:
        result = await db.execute(_GET_PRODUCTS_SQL, {"product_ids": product_ids})
        return [_row_to_product(r) for r in result.fetchall()]

    async def reserve_stock(self, db: AsyncSession, product_id: str, quantity: int) -> bool:
        result = await db.execute(
            _RESERVE_STOCK_SQL, {"product_id": product_id, "quantity": quantity}
        )
        return result.fetchone() is not None

    async def release_stock(self, db: AsyncSession, product_id: str, quantity: int) -> None:
        await db.execute(_RELEASE_STOCK_SQL, {"product_id": product_id, "quantity": quantity})

    async def consume_stock(self, db: AsyncSession, product_id: str, quantity: int) -> None:
        result = await db.execute(
            _CONSUME_STOCK_SQL, {"product_id": product_id, "quantity": quantity}
        )
        if result.fetchone() is None:
            raise InternalError(f"Reserved stock of {product_id} below {quantity}")

    async def code_exists(self, db: AsyncSession, code: str) -> bool:
        result = await db.execute(_CODE_EXISTS_SQL, {"code": code})
        return result.fetchone() is not None

    async def insert_checkout(self, db: AsyncSession, checkout: PdvCheckout) -> PdvCheckout:
        result = await db.execute(
            _INSERT_CHECKOUT_SQL,
            {
                "code": checkout.code,
                "pdv_id": checkout.pdv_id,
                "items": _dump_items(checkout.items),
                "total_points": checkout.total_points,
                "total_money_cents": checkout.total_money_cents,
                "status": checkout.status,
                "expires_at": checkout.expires_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Checkout insert returned no rows — this should never happen")
        return _row_to_checkout(row)

    async def get_checkout(
        self, db: AsyncSession, code: str, for_update: bool = False
    ) -> PdvCheckout | None:
        sql = _GET_CHECKOUT_FOR_UPDATE_SQL if for_update else _GET_CHECKOUT_SQL
        result = await db.execute(sql, {"code": code})
        row = result.fetchone()
        return _row_to_checkout(row) if row else None

    async def update_status(
        self,
        db: AsyncSession,
        code: str,
        from_statuses: tuple[str, ...],
        to_status: str,
        user_id: str | None = None,
        not_expired_at: datetime | None = None,
    ) -> PdvCheckout | None:
        result = await db.execute(
            _UPDATE_STATUS_SQL,
            {
                "code": code,
                "from_statuses": list(from_statuses),
                "to_status": to_status,
                "user_id": user_id,
                "not_expired_at": not_expired_at,
            },
        )
        row = result.fetchone()
        return _row_to_checkout(row) if row else None

    async def mark_paid(
        self,
        db: AsyncSession,
        code: str,
        user_id: str,
        payment_method: str,
        points_used: int,
        money_paid_cents: int,
        cashback_earned: int,
        external_payment_id: str | None,
        order_id: str,
        balance_after: int | None,
        paid_at: datetime,
    ) -> PdvCheckout | None:
        result = await db.execute(
            _MARK_PAID_SQL,
            {
                "code": code,
                "user_id": user_id,
                "payment_method": payment_method,
                "points_used": points_used,
                "money_paid_cents": money_paid_cents,
                "cashback_earned": cashback_earned,
                "external_payment_id": external_payment_id,
                "order_id": order_id,
                "balance_after": balance_after,
                "paid_at": paid_at,
            },
        )
        row = result.fetchone()
        return _row_to_checkout(row) if row else None

    async def insert_order(self, db: AsyncSession, order: Order) -> Order:
        result = await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "user_id": order.user_id,
                "pdv_id": order.pdv_id,
                "checkout_code": order.checkout_code,
                "items": _dump_items(order.items),
                "payment_method": order.payment_method,
                "points_used": order.points_used,
                "money_paid_cents": order.money_paid_cents,
                "cashback_earned": order.cashback_earned,
                "external_payment_id": order.external_payment_id,
            },
        )
        row = result.fetchone()
        if row is not None:
            order.created_at = row.created_at
        return order

    async def list_stale(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[PdvCheckout]:
        result = await db.execute(_LIST_STALE_SQL, {"now": now, "limit": limit})
        return [_row_to_checkout(r) for r in result.fetchall()]
