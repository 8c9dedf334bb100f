import pytest

from app.models.product import (
    CardSpec,
    ItemStatus,
    Product,
    QuotationRequest,
    UploadQueueItem,
)


class TestProduct:
    def test_accepts_short_field_names(self) -> None:
        p = Product.model_validate({"id": 7, "name": "GATE VALVE", "price": 120})

        assert p.product_id == "7"
        assert p.product_name == "GATE VALVE"
        assert p.price == "120"

    def test_accepts_sheet_field_names(self) -> None:
        p = Product.model_validate({"product_id": "A1", "product_name": "FLANGE", "category": "Pipes"})

        assert p.product_name == "FLANGE"
        assert p.category == "Pipes"
        assert p.image_url is None


class TestCardSpec:
    def test_description_truncated_to_200(self, product: Product) -> None:
        spec = CardSpec(product=product, override_description="x" * 250)

        assert len(spec.override_description) == 200

    def test_assigned_description_truncated(self, product: Product) -> None:
        spec = CardSpec(product=product)

        spec.override_description = "x" * 300

        assert len(spec.override_description) == 200

    def test_truncation_is_idempotent(self, product: Product) -> None:
        once = CardSpec(product=product, override_description="y" * 201)
        twice = CardSpec(product=product, override_description=once.override_description)

        assert twice.override_description == once.override_description

    def test_short_description_untouched(self, product: Product) -> None:
        spec = CardSpec(product=product, override_description="Heavy duty")

        assert spec.override_description == "Heavy duty"

    def test_blank_price_becomes_none(self, product: Product) -> None:
        assert CardSpec(product=product, override_price="  ").override_price is None

    def test_numeric_price_becomes_string(self, product: Product) -> None:
        assert CardSpec(product=product, override_price=499).override_price == "499"


class TestUploadQueueItem:
    def _item(self) -> UploadQueueItem:
        return UploadQueueItem(filename="a.png", content=b"x", derived_name="A")

    def test_starts_pending_with_generated_id(self) -> None:
        item = self._item()

        assert item.status is ItemStatus.PENDING
        assert item.id

    def test_happy_path(self) -> None:
        item = self._item()
        item.transition(ItemStatus.PROCESSING)
        item.transition(ItemStatus.SKIPPED, "Duplicate name")

        assert item.status is ItemStatus.SKIPPED
        assert item.message == "Duplicate name"

    def test_cannot_skip_processing(self) -> None:
        with pytest.raises(ValueError):
            self._item().transition(ItemStatus.SUCCESS)

    def test_terminal_is_final(self) -> None:
        item = self._item()
        item.transition(ItemStatus.PROCESSING)
        item.transition(ItemStatus.ERROR, "boom")

        with pytest.raises(ValueError):
            item.transition(ItemStatus.PENDING)
        with pytest.raises(ValueError):
            item.transition(ItemStatus.SUCCESS)

    def test_content_not_serialized(self) -> None:
        assert "content" not in self._item().model_dump()


class TestQuotationRequest:
    def test_defaults_number_and_date(self) -> None:
        q = QuotationRequest(
            customer_name="Acme",
            selected_products=[{"product_id": 1, "name": "VALVE", "price": 10, "quantity": 2}],
        )

        assert q.quotation_number.startswith("Q-")
        assert len(q.quotation_date) == 10
        assert q.selected_products[0].product_id == "1"

    def test_requires_products(self) -> None:
        with pytest.raises(ValueError):
            QuotationRequest(customer_name="Acme", selected_products=[])
