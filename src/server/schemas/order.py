# src/server/schemas/order.py
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """
    Bas för alla modeller som åker över tråden.
    Python-sidan använder snake_case, JSON-sidan camelCase (offerId, vatRate ...).
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class OrderRow(WireModel):
    """
    En position i offerten.
    Exempel:
      {"sku": "XV-UC-USER", "name": "UC User", "quantity": 3, "unit": 10.0}

    Offertverktyget skickar ibland bara list-/offertpris
    (listUnit/offerUnit/listTotal/offerTotal) – de används för rabattvisning.
    """
    sku: str = ""
    name: str = ""
    quantity: int = Field(0, ge=0)
    unit: Optional[float] = None          # nettopris per enhet
    total: Optional[float] = None         # radsumma netto; saknas → quantity * unit

    list_unit: Optional[float] = None
    offer_unit: Optional[float] = None
    list_total: Optional[float] = None
    offer_total: Optional[float] = None

    @model_validator(mode="after")
    def _offer_not_above_list(self) -> "OrderRow":
        if (
            self.list_unit is not None
            and self.offer_unit is not None
            and self.offer_unit > self.list_unit
        ):
            raise ValueError("offerUnit får inte vara högre än listUnit")
        return self


class Customer(WireModel):
    company: Optional[str] = None
    contact: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None


class OrderPayload(WireModel):
    """
    Kanonisk order. Okända fält (t.ex. salesperson) följer med som extra-fält.
    """
    model_config = ConfigDict(extra="allow")

    offer_id: str
    customer: Customer = Field(default_factory=Customer)
    monthly_rows: List[OrderRow] = Field(default_factory=list)
    one_time_rows: List[OrderRow] = Field(default_factory=list)
    vat_rate: float
    created_at: Optional[Union[int, float]] = None


class Signer(WireModel):
    name: Optional[str] = None
    email: Optional[str] = None
