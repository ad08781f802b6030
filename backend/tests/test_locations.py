"""Tests for warehouse locations and item placement."""

import pytest

from app.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models import Location
from app.services import batches as batch_service
from app.services import items as item_service
from app.services import locations as location_service
from app.utils.activity import discard_changes, pending_changes


@pytest.mark.asyncio
class TestLocations:

    async def test_create_builds_code(self, db_session):
        loc = await location_service.create_location(
            db_session, zone="A", rack="01", level="2", position="L", description="North wall"
        )
        assert loc.code == "A-01-2-L"
        assert loc.is_occupied is False

        short = await location_service.create_location(db_session, zone="B", rack="03", level="1")
        assert short.code == "B-03-1"

    async def test_duplicate_code(self, db_session):
        await location_service.create_location(db_session, zone="A", rack="01", level="2")
        with pytest.raises(ConflictError):
            await location_service.create_location(db_session, zone="A", rack="01", level="2")

    async def test_segment_with_separator_rejected(self, db_session):
        with pytest.raises(ValidationError):
            await location_service.create_location(db_session, zone="A-1", rack="01", level="2")

    async def test_position_with_separator_rejected(self, db_session):
        with pytest.raises(ValidationError) as exc:
            await location_service.create_location(
                db_session, zone="A", rack="01", level="2", position="L-1"
            )
        assert exc.value.error_code == "INVALID_LOCATION"
        assert await location_service.list_locations(db_session) == []

    async def test_list_and_lookup(self, db_session):
        await location_service.create_location(db_session, zone="B", rack="01", level="1")
        await location_service.create_location(db_session, zone="A", rack="01", level="1")

        codes = [loc.code for loc in await location_service.list_locations(db_session)]
        assert codes == ["A-01-1", "B-01-1"]
        assert (await location_service.get_location_by_code(db_session, "B-01-1")).zone == "B"
        with pytest.raises(NotFoundError):
            await location_service.get_location_by_code(db_session, "Z-99-9")


@pytest.mark.asyncio
class TestAssignItem:

    async def test_assign_marks_slot_occupied(self, db_session, make_item):
        loc = await location_service.create_location(db_session, zone="A", rack="01", level="1")
        item = await make_item(sort="1")

        placed = await location_service.assign_item(db_session, item.id, "A-01-1", "clerk-1")

        assert placed.location_id == loc.id
        assert placed.location_code == "A-01-1"
        assert loc.is_occupied is True

    async def test_moving_frees_previous_slot(self, db_session, make_item):
        old = await location_service.create_location(db_session, zone="A", rack="01", level="1")
        new = await location_service.create_location(db_session, zone="A", rack="01", level="2")
        item = await make_item(sort="1")
        await location_service.assign_item(db_session, item.id, old.code)

        await location_service.assign_item(db_session, item.id, new.code)

        assert (await db_session.get(Location, old.id)).is_occupied is False
        assert new.is_occupied is True

    async def test_previous_slot_stays_occupied_while_shared(self, db_session, make_item):
        old = await location_service.create_location(db_session, zone="A", rack="01", level="1")
        new = await location_service.create_location(db_session, zone="A", rack="01", level="2")
        first = await make_item(sort="1")
        second = await make_item(sort="1")
        await location_service.assign_item(db_session, first.id, old.code)
        await location_service.assign_item(db_session, second.id, old.code)

        await location_service.assign_item(db_session, first.id, new.code)

        assert old.is_occupied is True

    async def test_shipped_item_cannot_move(self, db_session, make_item):
        await location_service.create_location(db_session, zone="A", rack="01", level="1")
        item = await make_item(sort="1")
        batch = await batch_service.create_batch(db_session, "1")
        await batch_service.add_item(db_session, batch.id, item.id)
        await item_service.ship_items(db_session, [item.id])

        with pytest.raises(InvalidStateError):
            await location_service.assign_item(db_session, item.id, "A-01-1")

    async def test_unknown_item_or_location(self, db_session, make_item):
        await location_service.create_location(db_session, zone="A", rack="01", level="1")
        item = await make_item()
        with pytest.raises(NotFoundError):
            await location_service.assign_item(db_session, "missing", "A-01-1")
        with pytest.raises(NotFoundError):
            await location_service.assign_item(db_session, item.id, "Z-99-9")


@pytest.mark.asyncio
class TestPalletPlacement:

    async def _pallet(self, db_session, make_item):
        batch = await batch_service.create_batch(db_session, "1")
        item = await make_item(sort="1")
        await batch_service.add_item(db_session, batch.id, item.id)
        return batch

    async def test_assign_pallet(self, db_session, make_item):
        loc = await location_service.create_location(db_session, zone="D", rack="01", level="1")
        batch = await self._pallet(db_session, make_item)

        placed = await location_service.assign_batch(db_session, batch.id, loc.code, "clerk-1")

        assert placed.location_id == loc.id
        assert loc.is_occupied is True

    async def test_moving_pallet_frees_previous_slot(self, db_session, make_item):
        old = await location_service.create_location(db_session, zone="D", rack="01", level="1")
        new = await location_service.create_location(db_session, zone="D", rack="01", level="2")
        batch = await self._pallet(db_session, make_item)
        await location_service.assign_batch(db_session, batch.id, old.code)

        await location_service.assign_batch(db_session, batch.id, new.code)

        assert old.is_occupied is False
        assert new.is_occupied is True

    async def test_slot_shared_with_bale_stays_occupied(self, db_session, make_item):
        old = await location_service.create_location(db_session, zone="D", rack="01", level="1")
        new = await location_service.create_location(db_session, zone="D", rack="01", level="2")
        batch = await self._pallet(db_session, make_item)
        loose = await make_item(sort="1")
        await location_service.assign_batch(db_session, batch.id, old.code)
        await location_service.assign_item(db_session, loose.id, old.code)

        await location_service.assign_batch(db_session, batch.id, new.code)

        assert old.is_occupied is True

    async def test_shipped_pallet_cannot_move(self, db_session, make_item):
        await location_service.create_location(db_session, zone="D", rack="01", level="1")
        batch = await self._pallet(db_session, make_item)
        await item_service.ship_items(db_session, [i.id for i in batch.items])

        with pytest.raises(InvalidStateError) as exc:
            await location_service.assign_batch(db_session, batch.id, "D-01-1")
        assert exc.value.error_code == "BATCH_SHIPPED"

    async def test_unknown_pallet(self, db_session):
        await location_service.create_location(db_session, zone="D", rack="01", level="1")
        with pytest.raises(NotFoundError):
            await location_service.assign_batch(db_session, "P-20260301-999", "D-01-1")


@pytest.mark.asyncio
class TestLocationContents:

    async def test_search_lists_bales_and_pallets(self, db_session, make_item):
        loc = await location_service.create_location(db_session, zone="A", rack="01", level="1")
        await location_service.create_location(db_session, zone="A", rack="01", level="2")
        second = await make_item(sort="1", serial_number=202)
        first = await make_item(sort="1", serial_number=201)
        elsewhere = await make_item(sort="1", serial_number=203)
        batch = await batch_service.create_batch(db_session, "1")
        for item in (first, second):
            await location_service.assign_item(db_session, item.id, loc.code)
        await location_service.assign_item(db_session, elsewhere.id, "A-01-2")
        await location_service.assign_batch(db_session, batch.id, loc.code)

        location, items, pallets = await location_service.search_location(db_session, loc.code)

        assert location.id == loc.id
        assert [i.serial_number for i in items] == [201, 202]
        assert [b.id for b in pallets] == [batch.id]

    async def test_shipped_bales_are_not_listed(self, db_session, make_item):
        loc = await location_service.create_location(db_session, zone="A", rack="01", level="1")
        item = await make_item(sort="1")
        await location_service.assign_item(db_session, item.id, loc.code)
        batch = await batch_service.create_batch(db_session, "1")
        await batch_service.add_item(db_session, batch.id, item.id)
        await item_service.ship_items(db_session, [item.id])

        _, items, pallets = await location_service.search_location(db_session, loc.code)

        assert items == []
        assert pallets == []

    async def test_clear_detaches_everything(self, db_session, make_item):
        loc = await location_service.create_location(db_session, zone="A", rack="01", level="1")
        item = await make_item(sort="1")
        batch = await batch_service.create_batch(db_session, "1")
        await location_service.assign_item(db_session, item.id, loc.code)
        await location_service.assign_batch(db_session, batch.id, loc.code)
        discard_changes(db_session)

        cleared = await location_service.clear_location(db_session, loc.code, "clerk-1")

        assert cleared.is_occupied is False
        assert item.location_id is None
        assert item.location_code is None
        assert batch.location_id is None
        _, items, pallets = await location_service.search_location(db_session, loc.code)
        assert (items, pallets) == ([], [])

        event = pending_changes(db_session)[-1]
        assert event.name == "location.cleared"
        assert event.old_value["item_ids"] == [item.id]
        assert event.old_value["batch_ids"] == [batch.id]

    async def test_clear_unknown_location(self, db_session):
        with pytest.raises(NotFoundError):
            await location_service.clear_location(db_session, "Z-99-9")
