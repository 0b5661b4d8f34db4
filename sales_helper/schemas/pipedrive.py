"""Pipedrive payload schemas."""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PipedriveValue(BaseModel):
    """Entry in a person's ``email`` / ``phone`` lists."""

    value: Optional[str] = None
    primary: bool = False


class PipedriveOrgRef(BaseModel):
    value: int
    name: Optional[str] = None


class PipedrivePerson(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = Field(min_length=1)
    email: list[PipedriveValue] = []
    phone: list[PipedriveValue] = []
    org_id: Optional[PipedriveOrgRef] = None

    def primary(self, values: list[PipedriveValue]) -> Optional[str]:
        for entry in values:
            if entry.primary and entry.value:
                return entry.value
        return next((entry.value for entry in values if entry.value), None)


class PipedriveOrganization(BaseModel):
    """Organizations carry custom fields under hashed keys, so extras are kept."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: Optional[str] = None

    def custom_field(self, key: str) -> Optional[str]:
        value = (self.model_extra or {}).get(key)
        if value is None or value == "":
            return None
        return str(value)


class PipedrivePrice(BaseModel):
    price: float = 0.0
    currency: Optional[str] = None


class PipedriveProduct(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    code: Optional[str] = None
    category: Optional[Union[str, int]] = None
    description: Optional[str] = None
    price: Optional[float] = None
    prices: list[PipedrivePrice] = []

    def unit_price(self) -> float:
        if self.price is not None:
            return self.price
        return self.prices[0].price if self.prices else 0.0


class PipedriveDeal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    title: Optional[str] = None


class PipedriveEnvelope(BaseModel):
    """Top-level ``{"success": …, "data": …}`` wrapper of every response."""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    data: Optional[Union[dict, list]] = None
    error: Optional[str] = None
    additional_data: dict = Field(default_factory=dict)
