import random
import uuid
from datetime import date
from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MAX_DESCRIPTION_LENGTH = 200


class Product(BaseModel):
    """Catalog row as returned by the spreadsheet backend."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    product_id: str = Field(default="", validation_alias=AliasChoices("product_id", "id"))
    product_name: str = Field(validation_alias=AliasChoices("product_name", "name"))
    category: Optional[str] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None

    @field_validator("product_id", "price", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        # Sheet cells come back as numbers for numeric ids and prices
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class CardSpec(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    product: Product
    override_price: Optional[str] = None
    override_description: Optional[str] = None

    @field_validator("override_price", mode="before")
    @classmethod
    def clean_price(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("override_description", mode="before")
    @classmethod
    def truncate_description(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v[:MAX_DESCRIPTION_LENGTH]
        return v


class CardElement(BaseModel):
    kind: str
    text: Optional[str] = None


class RenderedCard(BaseModel):
    product_id: str
    product_name: str
    filename: str
    width: int
    height: int
    image: bytes = Field(repr=False)
    elements: List[CardElement] = Field(default_factory=list)

    def count(self, kind: str) -> int:
        return sum(1 for e in self.elements if e.kind == kind)


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.SUCCESS, ItemStatus.SKIPPED, ItemStatus.ERROR)


class UploadQueueItem(BaseModel):
    """One file queued for bulk ingestion. Only the pipeline moves its status."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:9])
    filename: str
    content: bytes = Field(default=b"", exclude=True, repr=False)
    derived_name: str
    preview_url: Optional[str] = None
    status: ItemStatus = ItemStatus.PENDING
    message: str = ""

    def transition(self, status: ItemStatus, message: str = "") -> None:
        allowed = {
            ItemStatus.PENDING: {ItemStatus.PROCESSING},
            ItemStatus.PROCESSING: {ItemStatus.SUCCESS, ItemStatus.SKIPPED, ItemStatus.ERROR},
        }
        if status not in allowed.get(self.status, set()):
            raise ValueError(f"Illegal status transition for {self.id}: {self.status.value} -> {status.value}")
        self.status = status
        self.message = message


class BatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    added: int = 0
    skipped: int = 0
    errors: int = 0


class ItemStatusEvent(BaseModel):
    item_id: str
    derived_name: str
    status: ItemStatus
    message: str = ""


class BatchFinishedEvent(BaseModel):
    result: BatchResult
    stopped: bool = False


class CategoryChoice(BaseModel):
    """Either an existing category or the name of a new one."""

    selected: Optional[str] = None
    is_new: bool = False
    new_name: Optional[str] = None


class CategorySummary(BaseModel):
    name: str
    count: int


class ServiceResponse(BaseModel):
    """Envelope used by the catalog backend for every action."""

    success: bool
    data: Any = None
    error: Optional[str] = None


class UploadResponse(BaseModel):
    success: bool
    url: Optional[str] = None
    error: Optional[str] = None


class QuotationItem(BaseModel):
    product_id: str
    name: str
    price: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    image_url: Optional[str] = None

    @field_validator("product_id", "price", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


def default_quotation_number() -> str:
    return f"Q-{date.today().year}-{random.randint(0, 9999)}"


class QuotationRequest(BaseModel):
    customer_name: str = Field(min_length=1)
    quotation_number: str = Field(default_factory=default_quotation_number)
    quotation_date: str = Field(default_factory=lambda: date.today().isoformat())
    selected_products: List[QuotationItem] = Field(min_length=1)
