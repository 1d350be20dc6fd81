"""The ORM mirrors must carry a column for every field the domain models read back."""

from dataclasses import fields

import pytest

from src.pe_checkin.domain.models import CheckinRecord, Event
from src.pe_checkin.infrastructure.db_models import EventCheckinORM, EventORM
from src.pe_common.database import Base
from src.pe_gateway.user.db_models import MemberModel
from src.pe_pdv.domain.models import Order, Pdv, PdvCheckout, PdvProduct
from src.pe_pdv.infrastructure.db_models import (
    OrderORM,
    PdvCheckoutORM,
    PdvORM,
    PdvProductORM,
)
from src.pe_points.domain.models import LedgerEntry, Member, PointsBalance
from src.pe_points.infrastructure.db_models import LedgerEntryORM, PointsBalanceORM


@pytest.mark.parametrize(
    ("domain", "orm"),
    [
        (PointsBalance, PointsBalanceORM),
        (LedgerEntry, LedgerEntryORM),
        (Member, MemberModel),
        (Event, EventORM),
        (CheckinRecord, EventCheckinORM),
        (Pdv, PdvORM),
        (PdvProduct, PdvProductORM),
        (PdvCheckout, PdvCheckoutORM),
        (Order, OrderORM),
    ],
)
def test_domain_fields_have_columns(domain: type, orm: type) -> None:
    columns = {c.name for c in orm.__table__.columns}
    missing = {f.name for f in fields(domain)} - columns
    assert not missing


def test_every_migrated_table_is_mirrored() -> None:
    assert set(Base.metadata.tables) == {
        "users",
        "points_balances",
        "ledger_entries",
        "transfer_recipients",
        "events",
        "event_checkins",
        "pdvs",
        "pdv_products",
        "pdv_checkouts",
        "orders",
    }


def test_refund_target_is_unique() -> None:
    assert LedgerEntryORM.__table__.c.refunded_entry_id.unique
