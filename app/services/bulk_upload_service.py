import asyncio
import inspect
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from loguru import logger

from app.core.config import settings
from app.core.exceptions import ServiceError, ValidationError
from app.models.product import (
    BatchFinishedEvent,
    BatchResult,
    CategoryChoice,
    ItemStatus,
    ItemStatusEvent,
    UploadQueueItem,
)
from app.services.catalog_service import CatalogService
from app.services.image_host_service import ImageHostService
from app.utils.image_processor import ImageProcessor
from app.utils.naming import derive_product_name, upload_filename, validate_product_name

PipelineEvent = Union[ItemStatusEvent, BatchFinishedEvent]
RefreshCallback = Callable[[], Union[Awaitable[None], None]]


class CancellationToken:
    """Stop signal for a bulk run, checked only between items."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def resolve_category(choice: CategoryChoice) -> str:
    if choice.is_new:
        category = (choice.new_name or "").strip()
    else:
        category = choice.selected or ""
    if not category:
        raise ValidationError("Please select or create a category first.")
    return category


def build_queue(files: Iterable[Tuple[str, bytes]]) -> List[UploadQueueItem]:
    return [
        UploadQueueItem(filename=filename, content=content, derived_name=derive_product_name(filename))
        for filename, content in files
    ]


class BulkUploadPipeline:
    """Sequential ingestion of queued image files into the catalog.

    Per item: validate name -> uniqueness check -> JPEG normalize -> upload to
    image host -> register in catalog. Failures stay with their item; the
    batch always runs to the end of the queue or to the cancellation point.
    """

    def __init__(
        self,
        catalog: CatalogService,
        image_host: ImageHostService,
        delay_seconds: Optional[float] = None,
        jpeg_quality: Optional[int] = None,
        on_products_added: Optional[RefreshCallback] = None,
    ):
        self.catalog = catalog
        self.image_host = image_host
        self.delay_seconds = settings.BULK_UPLOAD_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self.jpeg_quality = settings.JPEG_QUALITY if jpeg_quality is None else jpeg_quality
        self.on_products_added = on_products_added

    def run(
        self,
        items: List[UploadQueueItem],
        category_choice: CategoryChoice,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[PipelineEvent]:
        """Validate the batch, then return the stream of status events.

        Raises:
            ValidationError: no category is resolvable or the queue is empty.
                Raised here, before any item is touched.
        """
        category = resolve_category(category_choice)
        if not items:
            raise ValidationError("No files queued for upload.")
        return self._process(items, category, cancel_token or CancellationToken())

    async def _process(
        self,
        items: List[UploadQueueItem],
        category: str,
        cancel_token: CancellationToken,
    ) -> AsyncIterator[PipelineEvent]:
        logger.info(f"🚀 Bulk upload started | {len(items)} files -> category '{category}'")
        added = skipped = errors = 0
        stopped = False

        pending = [item for item in items if item.status is ItemStatus.PENDING]
        for index, item in enumerate(pending):
            if cancel_token.cancelled:
                stopped = True
                logger.warning(f"🛑 Bulk upload stopped | {len(pending) - index} files left pending")
                break

            item.transition(ItemStatus.PROCESSING)
            yield self._event(item)
            logger.info(f"🔄 Processing {item.derived_name} ({index + 1}/{len(pending)})")

            try:
                if await self._ingest(item, category):
                    item.transition(ItemStatus.SUCCESS)
                    added += 1
                    logger.success(f"Added {item.derived_name}")
                else:
                    item.transition(ItemStatus.SKIPPED, "Duplicate name")
                    skipped += 1
                    logger.warning(f"Skipped {item.derived_name}: duplicate name")
            except Exception as e:
                item.transition(ItemStatus.ERROR, str(e))
                errors += 1
                logger.error(f"❌ Failed {item.derived_name}: {e}")

            yield self._event(item)

            if index < len(pending) - 1:
                await asyncio.sleep(self.delay_seconds)

        result = BatchResult(added=added, skipped=skipped, errors=errors)
        logger.info(f"🏁 Bulk upload finished | added={added} skipped={skipped} errors={errors}")

        if result.added > 0 and self.on_products_added is not None:
            outcome = self.on_products_added()
            if inspect.isawaitable(outcome):
                await outcome

        yield BatchFinishedEvent(result=result, stopped=stopped)

    async def _ingest(self, item: UploadQueueItem, category: str) -> bool:
        """Run one item through the remote services. False means duplicate."""
        name = validate_product_name(item.derived_name)

        check = await self.catalog.check_name_uniqueness(name)
        if not check.success:
            raise ServiceError(f"Validation check failed: {check.error or 'unknown error'}")
        if not (check.data or {}).get("isUnique"):
            return False

        jpeg = await asyncio.to_thread(ImageProcessor.flatten_to_jpeg, item.content, self.jpeg_quality)

        upload = await self.image_host.upload(jpeg, upload_filename(name))
        if not upload.success:
            raise ServiceError(upload.error or "Image upload failed")

        registered = await self.catalog.add_product(name=name, category=category, image_url=upload.url)
        if not registered.success:
            raise ServiceError(registered.error or "Sheet update failed")
        return True

    @staticmethod
    def _event(item: UploadQueueItem) -> ItemStatusEvent:
        return ItemStatusEvent(
            item_id=item.id,
            derived_name=item.derived_name,
            status=item.status,
            message=item.message,
        )
