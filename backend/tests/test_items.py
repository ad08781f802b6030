"""Tests for the item state machine."""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from app.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models import ItemStatus, ProductionItem, Quad, QuadStatus
from app.services import batches as batch_service
from app.services import items as item_service
from app.services import quads as quad_service


@pytest.mark.asyncio
class TestCreateItem:

    async def test_created_with_derived_barcode(self, db_session, make_item):
        item = await make_item(serial_number=101, weight=50.5)
        assert item.status == ItemStatus.CREATED.value
        assert item.barcode == "24.12.2025-LF-101-50.5"
        assert item.sort is None
        assert item.version == 1

    async def test_duplicate_serial_same_product_and_date(self, db_session, make_item):
        await make_item(serial_number=5)
        with pytest.raises(ConflictError) as exc:
            await make_item(serial_number=5)
        assert exc.value.error_code == "DUPLICATE_ITEM"

    async def test_serial_reuse_across_products_and_dates(self, db_session, make_item):
        await make_item(serial_number=5)
        await make_item(serial_number=5, product_name="Hemp hurd", sku="HH")
        await make_item(serial_number=5, production_date=date(2025, 12, 25))

    async def test_shared_sku_cannot_repeat_a_label(self, db_session, make_item):
        await make_item(serial_number=7, product_name="Long fiber")
        with pytest.raises(ConflictError) as exc:
            await make_item(serial_number=7, product_name="Long fiber premium")
        assert exc.value.error_code == "DUPLICATE_ITEM"
        assert "Long fiber" in exc.value.message

    async def test_label_identity_is_a_table_constraint(self, db_session, make_item):
        first = await make_item(serial_number=7, product_name="Long fiber")
        db_session.add(ProductionItem(
            product_name="Long fiber premium",
            sku=first.sku,
            serial_number=7,
            production_date=first.production_date,
            weight=40.0,
            barcode="24.12.2025-LF-7-40",
            status=ItemStatus.CREATED.value,
        ))
        with pytest.raises(IntegrityError):
            await db_session.flush()

    async def test_sku_with_separator_rejected(self, db_session, make_item):
        with pytest.raises(ValidationError):
            await make_item(sku="L-F")

    async def test_get_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            await item_service.get_item(db_session, "missing")


@pytest.mark.asyncio
class TestResolveBarcode:

    async def test_exact_match(self, db_session, make_item):
        item = await make_item(serial_number=101)
        assert (await item_service.resolve_barcode(db_session, item.barcode)).id == item.id

    async def test_falls_back_to_identity_fields(self, db_session, make_item):
        item = await make_item(serial_number=101, weight=50.5)
        # Reprinted label with a rounded weight
        found = await item_service.resolve_barcode(db_session, "24.12.2025-LF-101-50")
        assert found.id == item.id

    async def test_identity_fallback_picks_the_labelled_product(self, db_session, make_item):
        await make_item(serial_number=101)
        hurd = await make_item(serial_number=101, product_name="Hemp hurd", sku="HH", weight=30)
        found = await item_service.resolve_barcode(db_session, "24.12.2025-HH-101-30.0")
        assert found.id == hurd.id

    async def test_unknown_or_malformed(self, db_session, make_item):
        await make_item(serial_number=101)
        assert await item_service.resolve_barcode(db_session, "24.12.2025-LF-999-50") is None
        assert await item_service.resolve_barcode(db_session, "INVALID-CODE") is None


@pytest.mark.asyncio
class TestGrading:

    async def test_grade_created_item(self, db_session, make_item, sink):
        item = await make_item()
        graded = await item_service.grade_item(db_session, item.id, "1", "lab-1")
        assert graded.status == ItemStatus.GRADED.value
        assert graded.sort == "1"
        assert graded.graded_at is not None
        assert graded.lab_user_id == "lab-1"

    async def test_regrade_is_a_correction(self, db_session, make_item):
        item = await make_item(sort="1")
        regraded = await item_service.grade_item(db_session, item.id, "2", "lab-2")
        assert regraded.status == ItemStatus.GRADED.value
        assert regraded.sort == "2"

    async def test_blank_sort_rejected(self, db_session, make_item):
        item = await make_item()
        with pytest.raises(ValidationError):
            await item_service.grade_item(db_session, item.id, "  ", "lab-1")

    async def test_unknown_item(self, db_session):
        with pytest.raises(NotFoundError):
            await item_service.grade_item(db_session, "missing", "1", "lab-1")

    async def test_palletized_item_cannot_be_regraded(self, db_session, make_item):
        item = await make_item(sort="1")
        batch = await batch_service.create_batch(db_session, "1", "operator-1")
        await batch_service.add_item(db_session, batch.id, item.id)

        with pytest.raises(InvalidStateError) as exc:
            await item_service.grade_item(db_session, item.id, "2", "lab-1")
        assert exc.value.error_code == "ITEM_LOCKED_BY_BATCH"
        assert item.sort == "1"

    async def test_grade_by_barcode(self, db_session, make_item):
        item = await make_item(serial_number=33)
        graded = await item_service.grade_by_barcode(db_session, item.barcode, "1", "lab-1")
        assert graded.id == item.id
        assert graded.status == ItemStatus.GRADED.value

    async def test_grade_by_barcode_malformed_and_unknown(self, db_session):
        with pytest.raises(ValidationError):
            await item_service.grade_by_barcode(db_session, "INVALID-CODE", "1")
        with pytest.raises(NotFoundError):
            await item_service.grade_by_barcode(db_session, "24.12.2025-LF-9-50", "1")

    async def test_revert_grade(self, db_session, make_item):
        item = await make_item(sort="1")
        reverted = await item_service.revert_grade(db_session, item.id, "lab-1")
        assert reverted.status == ItemStatus.CREATED.value
        assert reverted.sort is None
        assert reverted.graded_at is None
        assert reverted.lab_user_id is None

    async def test_revert_requires_graded(self, db_session, make_item):
        item = await make_item()
        with pytest.raises(InvalidStateError):
            await item_service.revert_grade(db_session, item.id)

    async def test_revert_packed_names_the_quad(self, db_session, make_item):
        items = [await make_item(sort="1") for _ in range(4)]
        quad = await quad_service.create_quad(db_session, [i.id for i in items])
        with pytest.raises(InvalidStateError) as exc:
            await item_service.revert_grade(db_session, items[0].id)
        assert quad.id in exc.value.message


@pytest.mark.asyncio
class TestOptimisticLocking:

    async def test_concurrent_grades_one_loses(self, session_factory, db_session, make_item):
        item = await make_item()
        await db_session.commit()

        async with session_factory() as lab_a, session_factory() as lab_b:
            # Both terminals load the bale before either writes.  Hold the
            # references: the identity map would otherwise drop them.
            fresh = await item_service.get_item(lab_a, item.id)
            stale = await item_service.get_item(lab_b, item.id)
            assert fresh.version == stale.version == 1

            await item_service.grade_item(lab_a, item.id, "1", "lab-a")
            await lab_a.commit()

            with pytest.raises(ConflictError) as exc:
                await item_service.grade_item(lab_b, item.id, "2", "lab-b")
            assert exc.value.error_code == "CONCURRENT_MODIFICATION"
            await lab_b.rollback()

        async with session_factory() as check:
            stored = await item_service.get_item(check, item.id)
            assert stored.sort == "1"
            assert stored.version == 2


@pytest.mark.asyncio
class TestShipping:

    async def test_ship_palletized_items(self, db_session, make_item):
        a = await make_item(sort="1", weight=50)
        b = await make_item(sort="1", weight=48)
        batch = await batch_service.create_batch(db_session, "1")
        await batch_service.add_item(db_session, batch.id, a.id)
        await batch_service.add_item(db_session, batch.id, b.id)

        shipped = await item_service.ship_items(db_session, [a.id, b.id], "driver-1")

        assert {i.status for i in shipped} == {ItemStatus.SHIPPED.value}
        assert all(i.batch_id is None and i.shipped_from == batch.id for i in shipped)
        batch = await batch_service.get_batch(db_session, batch.id)
        assert batch.shipped_at is not None
        assert batch.total_weight == 0

    async def test_partial_pallet_shipment_keeps_total_in_sync(self, db_session, make_item):
        a = await make_item(sort="1", weight=50)
        b = await make_item(sort="1", weight=48)
        batch = await batch_service.create_batch(db_session, "1")
        await batch_service.add_item(db_session, batch.id, a.id)
        await batch_service.add_item(db_session, batch.id, b.id)

        await item_service.ship_items(db_session, [a.id])

        batch = await batch_service.get_batch(db_session, batch.id)
        assert batch.shipped_at is None
        assert batch.total_weight == pytest.approx(48)

    async def test_whole_quad_ships(self, db_session, make_item):
        items = [await make_item(sort="1") for _ in range(4)]
        quad = await quad_service.create_quad(db_session, [i.id for i in items])

        await item_service.ship_items(db_session, [i.id for i in items])

        quad = await db_session.get(Quad, quad.id)
        assert quad.status == QuadStatus.SHIPPED.value
        assert all(i.quad_id is None and i.shipped_from == quad.id for i in items)

    async def test_partial_quad_rejected(self, db_session, make_item):
        items = [await make_item(sort="1") for _ in range(4)]
        await quad_service.create_quad(db_session, [i.id for i in items])

        with pytest.raises(InvalidStateError) as exc:
            await item_service.ship_items(db_session, [items[0].id])
        assert exc.value.error_code == "QUAD_PARTIAL_SHIPMENT"
        assert items[0].status == ItemStatus.PACKED.value

    async def test_all_or_nothing(self, db_session, make_item):
        palletized = await make_item(sort="1")
        graded = await make_item(sort="1")
        batch = await batch_service.create_batch(db_session, "1")
        await batch_service.add_item(db_session, batch.id, palletized.id)

        with pytest.raises(InvalidStateError):
            await item_service.ship_items(db_session, [palletized.id, graded.id])
        assert palletized.status == ItemStatus.PALLETIZED.value

    async def test_unknown_item(self, db_session):
        with pytest.raises(NotFoundError):
            await item_service.ship_items(db_session, ["missing"])

    async def test_shipped_is_terminal(self, db_session, make_item):
        item = await make_item(sort="1")
        batch = await batch_service.create_batch(db_session, "1")
        await batch_service.add_item(db_session, batch.id, item.id)
        await item_service.ship_items(db_session, [item.id])

        with pytest.raises(InvalidStateError):
            await item_service.grade_item(db_session, item.id, "2", "lab-1")
        with pytest.raises(InvalidStateError):
            await item_service.ship_items(db_session, [item.id])
