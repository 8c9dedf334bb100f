import asyncio
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.exceptions import ValidationError
from app.models.product import (
    BatchFinishedEvent,
    BatchResult,
    CategoryChoice,
    ItemStatus,
    ItemStatusEvent,
    ServiceResponse,
    UploadQueueItem,
    UploadResponse,
)
from app.services.bulk_upload_service import (
    BulkUploadPipeline,
    CancellationToken,
    build_queue,
    resolve_category,
)

EXISTING = CategoryChoice(selected="Valves")


def _pipeline(catalog, image_host, **kwargs) -> BulkUploadPipeline:
    return BulkUploadPipeline(catalog, image_host, delay_seconds=0, **kwargs)


def _queue(png: bytes, *names: str) -> List[UploadQueueItem]:
    return build_queue([(f"{n}.png", png) for n in names])


def _run(pipeline, items, choice=EXISTING, token=None, on_event=None) -> list:
    async def consume():
        events = []
        async for event in pipeline.run(items, choice, token):
            events.append(event)
            if on_event:
                on_event(event)
        return events

    return asyncio.run(consume())


def _checked_names(catalog: MagicMock) -> List[str]:
    return [c.args[0] for c in catalog.check_name_uniqueness.call_args_list]


class TestResolveCategory:
    def test_existing(self) -> None:
        assert resolve_category(CategoryChoice(selected="Pipes")) == "Pipes"

    def test_new_is_trimmed(self) -> None:
        choice = CategoryChoice(selected="Pipes", is_new=True, new_name="  Gate Valves ")
        assert resolve_category(choice) == "Gate Valves"

    def test_nothing_selected(self) -> None:
        with pytest.raises(ValidationError):
            resolve_category(CategoryChoice())

    def test_blank_new_name(self) -> None:
        with pytest.raises(ValidationError):
            resolve_category(CategoryChoice(is_new=True, new_name="   "))


class TestBuildQueue:
    def test_derives_names(self, png_bytes: bytes) -> None:
        items = build_queue([("ball valve.jpg", png_bytes), ("elbow.png", png_bytes)])

        assert [i.derived_name for i in items] == ["BALL VALVE", "ELBOW"]
        assert all(i.status is ItemStatus.PENDING for i in items)
        assert len({i.id for i in items}) == 2


class TestSuccessfulBatch:
    def test_duplicate_is_skipped_and_batch_continues(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "alpha", "dup beta", "gamma")

        events = _run(_pipeline(catalog, image_host), items)

        assert events[-1] == BatchFinishedEvent(result=BatchResult(added=2, skipped=1, errors=0))
        assert [i.status for i in items] == [ItemStatus.SUCCESS, ItemStatus.SKIPPED, ItemStatus.SUCCESS]
        assert items[1].message == "Duplicate name"
        assert image_host.upload.await_count == 2
        registered = [c.kwargs["name"] for c in catalog.add_product.call_args_list]
        assert registered == ["ALPHA", "GAMMA"]

    def test_upload_and_registration_arguments(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "ball valve")

        _run(_pipeline(catalog, image_host), items)

        jpeg, filename = image_host.upload.call_args.args
        assert filename == "ball valve.jpg"
        assert jpeg[:2] == b"\xff\xd8"
        catalog.add_product.assert_awaited_once_with(
            name="BALL VALVE", category="Valves", image_url="https://i.ibb.co/abc/item.jpg"
        )

    def test_new_category_used_verbatim(self, catalog, image_host, png_bytes) -> None:
        choice = CategoryChoice(is_new=True, new_name="  Gate Valves ")

        _run(_pipeline(catalog, image_host), _queue(png_bytes, "a"), choice)

        assert catalog.add_product.call_args.kwargs["category"] == "Gate Valves"

    def test_events_follow_status_order(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "a", "dup b")

        events = _run(_pipeline(catalog, image_host), items)

        item_events = [(e.item_id, e.status) for e in events if isinstance(e, ItemStatusEvent)]
        assert item_events == [
            (items[0].id, ItemStatus.PROCESSING),
            (items[0].id, ItemStatus.SUCCESS),
            (items[1].id, ItemStatus.PROCESSING),
            (items[1].id, ItemStatus.SKIPPED),
        ]
        assert isinstance(events[-1], BatchFinishedEvent)

    def test_refresh_called_when_products_added(self, catalog, image_host, png_bytes) -> None:
        refresh = MagicMock()

        _run(_pipeline(catalog, image_host, on_products_added=refresh), _queue(png_bytes, "a"))

        refresh.assert_called_once_with()

    def test_async_refresh_is_awaited(self, catalog, image_host, png_bytes) -> None:
        refresh = AsyncMock()

        _run(_pipeline(catalog, image_host, on_products_added=refresh), _queue(png_bytes, "a"))

        refresh.assert_awaited_once()

    def test_no_refresh_when_nothing_added(self, catalog, image_host, png_bytes) -> None:
        refresh = MagicMock()

        _run(_pipeline(catalog, image_host, on_products_added=refresh), _queue(png_bytes, "dup"))

        refresh.assert_not_called()

    def test_delay_between_items(self, catalog, image_host, png_bytes) -> None:
        pipeline = BulkUploadPipeline(catalog, image_host, delay_seconds=1.5)

        with patch("app.services.bulk_upload_service.asyncio.sleep", new=AsyncMock()) as sleep:
            _run(pipeline, _queue(png_bytes, "a", "dup b", "c"))

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.5)


class TestItemFailures:
    def test_numeric_name_rejected_without_network(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "12345", "valve")

        events = _run(_pipeline(catalog, image_host), items)

        assert items[0].status is ItemStatus.ERROR
        assert "numbers" in items[0].message
        assert _checked_names(catalog) == ["VALVE"]
        assert events[-1].result == BatchResult(added=1, skipped=0, errors=1)

    def test_overlong_name_rejected_without_network(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "x" * 36)

        _run(_pipeline(catalog, image_host), items)

        assert items[0].status is ItemStatus.ERROR
        catalog.check_name_uniqueness.assert_not_called()

    def test_uniqueness_check_failure(self, catalog, image_host, png_bytes) -> None:
        catalog.check_name_uniqueness = AsyncMock(
            side_effect=[ServiceResponse(success=False, error="timeout"), ServiceResponse(success=True, data={"isUnique": True})]
        )
        items = _queue(png_bytes, "a", "b")

        events = _run(_pipeline(catalog, image_host), items)

        assert items[0].status is ItemStatus.ERROR
        assert "Validation check failed" in items[0].message
        assert items[1].status is ItemStatus.SUCCESS
        assert events[-1].result == BatchResult(added=1, skipped=0, errors=1)

    def test_upload_failure(self, catalog, image_host, png_bytes) -> None:
        image_host.upload = AsyncMock(return_value=UploadResponse(success=False, error="ImgBB upload failed"))
        items = _queue(png_bytes, "a")

        _run(_pipeline(catalog, image_host), items)

        assert items[0].status is ItemStatus.ERROR
        assert items[0].message == "ImgBB upload failed"
        catalog.add_product.assert_not_called()

    def test_registration_failure(self, catalog, image_host, png_bytes) -> None:
        catalog.add_product = AsyncMock(return_value=ServiceResponse(success=False, error="Sheet locked"))
        items = _queue(png_bytes, "a")

        events = _run(_pipeline(catalog, image_host), items)

        assert items[0].status is ItemStatus.ERROR
        assert items[0].message == "Sheet locked"
        assert events[-1].result == BatchResult(added=0, skipped=0, errors=1)

    def test_unreadable_image(self, catalog, image_host, png_bytes) -> None:
        items = build_queue([("broken.png", b"garbage"), ("fine.png", png_bytes)])

        _run(_pipeline(catalog, image_host), items)

        assert items[0].status is ItemStatus.ERROR
        assert items[1].status is ItemStatus.SUCCESS
        assert image_host.upload.await_count == 1

    def test_collaborator_exception_is_isolated(self, catalog, image_host, png_bytes) -> None:
        image_host.upload = AsyncMock(side_effect=[RuntimeError("socket closed"), UploadResponse(success=True, url="u")])
        items = _queue(png_bytes, "a", "b")

        _run(_pipeline(catalog, image_host), items)

        assert items[0].status is ItemStatus.ERROR
        assert items[1].status is ItemStatus.SUCCESS


class TestCancellation:
    def test_stop_after_item_started(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "a", "b", "c", "d")
        token = CancellationToken()

        def stop_on_second(event):
            if isinstance(event, ItemStatusEvent) and event.item_id == items[1].id and event.status is ItemStatus.PROCESSING:
                token.cancel()

        events = _run(_pipeline(catalog, image_host), items, token=token, on_event=stop_on_second)

        assert [i.status for i in items] == [
            ItemStatus.SUCCESS,
            ItemStatus.SUCCESS,
            ItemStatus.PENDING,
            ItemStatus.PENDING,
        ]
        assert events[-1] == BatchFinishedEvent(result=BatchResult(added=2), stopped=True)

    def test_cancelled_before_start(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "a", "b")
        token = CancellationToken()
        token.cancel()

        events = _run(_pipeline(catalog, image_host), items, token=token)

        assert all(i.status is ItemStatus.PENDING for i in items)
        assert events == [BatchFinishedEvent(result=BatchResult(), stopped=True)]
        catalog.check_name_uniqueness.assert_not_called()


class TestRunValidation:
    def test_no_category_rejected_before_any_item(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "a")

        with pytest.raises(ValidationError):
            _pipeline(catalog, image_host).run(items, CategoryChoice())

        assert items[0].status is ItemStatus.PENDING
        catalog.check_name_uniqueness.assert_not_called()

    def test_empty_queue_rejected(self, catalog, image_host) -> None:
        with pytest.raises(ValidationError):
            _pipeline(catalog, image_host).run([], EXISTING)

    def test_finished_items_are_not_reprocessed(self, catalog, image_host, png_bytes) -> None:
        items = _queue(png_bytes, "a", "b")
        _run(_pipeline(catalog, image_host), items)
        items.extend(_queue(png_bytes, "c"))
        catalog.check_name_uniqueness.reset_mock()

        events = _run(_pipeline(catalog, image_host), items)

        assert _checked_names(catalog) == ["C"]
        assert events[-1].result == BatchResult(added=1)
