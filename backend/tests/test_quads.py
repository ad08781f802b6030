"""Tests for the quad aggregator."""

from datetime import date

import pytest
from sqlalchemy import select

from app.middleware.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models import ItemStatus, ProductionItem, Quad, QuadStatus
from app.services import items as item_service
from app.services import quads as quad_service


async def _graded(make_item, count, **kwargs):
    return [await make_item(**kwargs) for _ in range(count)]


@pytest.mark.asyncio
class TestCreateQuad:

    @pytest.mark.parametrize("count", [0, 1, 3, 5])
    async def test_wrong_count(self, db_session, make_item, count):
        items = await _graded(make_item, count, sort="1")
        with pytest.raises(ValidationError) as exc:
            await quad_service.create_quad(db_session, [i.id for i in items])
        assert exc.value.error_code == "QUAD_WRONG_COUNT"

    async def test_duplicate_ids_do_not_count_twice(self, db_session, make_item):
        items = await _graded(make_item, 3, sort="1")
        with pytest.raises(ValidationError) as exc:
            await quad_service.create_quad(db_session, [i.id for i in items] + [items[0].id])
        assert exc.value.error_code == "QUAD_WRONG_COUNT"

    async def test_mixed_sort(self, db_session, make_item):
        items = await _graded(make_item, 3, sort="1")
        items.append(await make_item(sort="2"))
        with pytest.raises(ValidationError) as exc:
            await quad_service.create_quad(db_session, [i.id for i in items])
        assert exc.value.error_code == "QUAD_MIXED_SORT"
        assert all(i.status == ItemStatus.GRADED.value for i in items)

    async def test_mixed_product(self, db_session, make_item):
        items = await _graded(make_item, 3, sort="1")
        items.append(await make_item(sort="1", product_name="Hemp hurd", sku="HH"))
        with pytest.raises(ValidationError) as exc:
            await quad_service.create_quad(db_session, [i.id for i in items])
        assert exc.value.error_code == "QUAD_MIXED_PRODUCT"

    async def test_ungraded_item(self, db_session, make_item):
        items = await _graded(make_item, 3, sort="1")
        items.append(await make_item())
        with pytest.raises(InvalidStateError):
            await quad_service.create_quad(db_session, [i.id for i in items])

    async def test_unknown_item(self, db_session, make_item):
        items = await _graded(make_item, 3, sort="1")
        with pytest.raises(NotFoundError):
            await quad_service.create_quad(db_session, [i.id for i in items] + ["missing"])

    async def test_packs_all_four(self, db_session, make_item):
        items = await _graded(make_item, 4, sort="1", weight=50)
        quad = await quad_service.create_quad(
            db_session, [i.id for i in items], "operator-1", today=date(2026, 1, 13)
        )

        assert quad.id == "Q-20260113-001"
        assert quad.date == "13.01.2026"
        assert quad.status == QuadStatus.CREATED.value
        assert quad.total_weight == pytest.approx(200)
        assert (quad.product_name, quad.sort) == ("Hemp fiber", "1")
        assert len(quad.items) == 4
        for item in items:
            assert item.status == ItemStatus.PACKED.value
            assert item.quad_id == quad.id

    async def test_numbering_spans_products(self, db_session, make_item):
        day = date(2026, 1, 13)
        fiber = await _graded(make_item, 4, sort="1")
        hurd = await _graded(make_item, 4, sort="1", product_name="Hemp hurd", sku="HH")
        first = await quad_service.create_quad(db_session, [i.id for i in fiber], today=day)
        second = await quad_service.create_quad(db_session, [i.id for i in hurd], today=day)
        assert (first.id, second.id) == ("Q-20260113-001", "Q-20260113-002")

    async def test_concurrent_reader_never_sees_partial_quad(self, session_factory, db_session, make_item):
        items = await _graded(make_item, 4, sort="1")
        await db_session.commit()
        ids = [i.id for i in items]

        async with session_factory() as writer, session_factory() as reader:
            quad = await quad_service.create_quad(writer, ids)

            statuses = (await reader.execute(
                select(ProductionItem.status).where(ProductionItem.id.in_(ids))
            )).scalars().all()
            assert set(statuses) == {ItemStatus.GRADED.value}
            assert await reader.get(Quad, quad.id) is None

            await writer.commit()

            statuses = (await reader.execute(
                select(ProductionItem.status).where(ProductionItem.id.in_(ids))
            )).scalars().all()
            assert statuses == [ItemStatus.PACKED.value] * 4


@pytest.mark.asyncio
class TestQuadLifecycle:

    async def test_send_to_warehouse(self, db_session, make_item):
        items = await _graded(make_item, 4, sort="1")
        quad = await quad_service.create_quad(db_session, [i.id for i in items])

        quad = await quad_service.send_to_warehouse(db_session, quad.id, "operator-1")

        assert quad.status == QuadStatus.WAREHOUSE.value
        assert quad.warehouse_at is not None
        for item in items:
            assert item.status == ItemStatus.WAREHOUSE.value
            assert item.quad_id == quad.id

        with pytest.raises(InvalidStateError):
            await quad_service.send_to_warehouse(db_session, quad.id)

    async def test_disband_restores_members(self, db_session, make_item):
        items = await _graded(make_item, 4, sort="1")
        quad = await quad_service.create_quad(db_session, [i.id for i in items])

        freed = await quad_service.disband_quad(db_session, quad.id, "operator-1")

        assert {i.id for i in freed} == {i.id for i in items}
        for item in items:
            assert item.status == ItemStatus.GRADED.value
            assert item.sort == "1"
            assert item.quad_id is None
        assert await db_session.get(Quad, quad.id) is None

    async def test_warehouse_quad_cannot_be_disbanded(self, db_session, make_item):
        items = await _graded(make_item, 4, sort="1")
        quad = await quad_service.create_quad(db_session, [i.id for i in items])
        await quad_service.send_to_warehouse(db_session, quad.id)

        with pytest.raises(InvalidStateError):
            await quad_service.disband_quad(db_session, quad.id)
        assert all(i.status == ItemStatus.WAREHOUSE.value for i in items)

    async def test_list_available(self, db_session, make_item):
        sort_one = await _graded(make_item, 2, sort="1")
        sort_two = await make_item(sort="2")
        await make_item()  # not graded
        await make_item(sort="1", product_name="Hemp hurd", sku="HH")
        packed = await _graded(make_item, 4, sort="1")
        await quad_service.create_quad(db_session, [i.id for i in packed])

        available = await quad_service.list_available(db_session, "Hemp fiber")
        assert [i.id for i in available] == [i.id for i in sort_one] + [sort_two.id]

        only_two = await quad_service.list_available(db_session, "Hemp fiber", "2")
        assert [i.id for i in only_two] == [sort_two.id]

    async def test_list_quads_by_status(self, db_session, make_item):
        first = await quad_service.create_quad(
            db_session, [i.id for i in await _graded(make_item, 4, sort="1")]
        )
        await quad_service.create_quad(
            db_session, [i.id for i in await _graded(make_item, 4, sort="1")]
        )
        await quad_service.send_to_warehouse(db_session, first.id)

        in_warehouse = await quad_service.list_quads(db_session, QuadStatus.WAREHOUSE.value)
        assert [q.id for q in in_warehouse] == [first.id]
        assert len(await quad_service.list_quads(db_session)) == 2

    async def test_graded_item_can_be_regraded_after_disband(self, db_session, make_item):
        items = await _graded(make_item, 4, sort="1")
        quad = await quad_service.create_quad(db_session, [i.id for i in items])
        await quad_service.disband_quad(db_session, quad.id)
        regraded = await item_service.grade_item(db_session, items[0].id, "2", "lab-1")
        assert regraded.sort == "2"
