"""
View models for the quote editor.
These models represent the data structures shared by the UI, the API and the
export adapters.
"""

from typing import List, Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, computed_field

from estimator.core.config import settings
from estimator.services.quote_calculator import QuoteTotals, compute_totals, line_total

SourceMode = Literal["grounded", "offline"]


def new_item_id() -> str:
    """Return a fresh opaque item identifier."""
    return uuid.uuid4().hex


class LineItem(BaseModel):
    """One estimated material or labor entry of the quote."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_item_id)
    name: str = ""
    spec: str = ""
    quantity: float = 1.0
    unit: str = "unit"
    market_price: float = Field(default=0.0, alias="marketPrice")
    brand: str = ""
    remarks: str = ""
    supplier: str = ""
    source_url: str = Field(default="", alias="sourceUrl")

    @computed_field(alias="lineTotal")
    @property
    def line_total(self) -> float:
        return line_total(self)


def new_line_item() -> LineItem:
    """Build a blank, immediately editable row."""
    return LineItem(
        name=settings.DEFAULT_ITEM_NAME,
        quantity=1,
        unit=settings.DEFAULT_UNIT,
        market_price=0,
    )


def line_item_warnings(item: LineItem) -> List[str]:
    """
    Validation warnings for a row. Never blocks editing: values are often
    transiently invalid while the user is typing.
    """
    warnings = []
    if not item.name.strip():
        warnings.append("Item name is empty")
    if item.quantity < 0:
        warnings.append("Quantity is negative")
    if item.market_price < 0:
        warnings.append("Price is negative")
    return warnings


class GroundingSource(BaseModel):
    """A citation pointing to where a price was found."""
    model_config = ConfigDict(frozen=True)

    title: str
    uri: str


class QuoteHeaderInfo(BaseModel):
    """Project, vendor and client metadata printed on the quote."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    project_name: str = Field(default="", alias="projectName")
    vendor_name: str = Field(default="", alias="vendorName")
    vendor_contact: str = Field(default="", alias="vendorContact")
    vendor_phone: str = Field(default="", alias="vendorPhone")
    client_contact: str = Field(default="", alias="clientContact")
    client_phone: str = Field(default="", alias="clientPhone")
    client_tax_id: str = Field(default="", alias="clientTaxId")


class AnalysisResult(BaseModel):
    """Output of one extraction call."""
    items: List[LineItem] = Field(default_factory=list)
    sources: List[GroundingSource] = Field(default_factory=list)
    mode: SourceMode = "grounded"


class QuoteState(BaseModel):
    """Complete state of one quote editing session."""
    model_config = ConfigDict(frozen=True)

    items: List[LineItem] = Field(default_factory=list)
    sources: List[GroundingSource] = Field(default_factory=list)
    header: QuoteHeaderInfo = Field(default_factory=QuoteHeaderInfo)
    management_rate: float = Field(default_factory=lambda: settings.DEFAULT_MANAGEMENT_RATE)
    tax_rate: float = Field(default_factory=lambda: settings.DEFAULT_TAX_RATE)

    error: Optional[str] = None
    extracting: bool = False
    source_mode: Optional[SourceMode] = None

    @computed_field
    @property
    def totals(self) -> QuoteTotals:
        """Recomputed on every read."""
        return compute_totals(self.items, self.management_rate, self.tax_rate)

    @property
    def can_export(self) -> bool:
        return len(self.items) > 0

    def get_item(self, item_id: str) -> Optional[LineItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def warnings(self) -> dict[str, List[str]]:
        """Per-item validation warnings keyed by item id."""
        result = {}
        for item in self.items:
            found = line_item_warnings(item)
            if found:
                result[item.id] = found
        return result
