"""Pydantic models for request bodies and API responses (camelCase on the wire)."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# responses

class ProductOut(ApiModel):
    id: str
    name: str
    description: str
    price: float
    category: str
    manufacturer: str
    stock: int
    prescription: bool
    image_path: Optional[str] = None


class UserOut(ApiModel):
    id: str
    username: str


class CartLine(ApiModel):
    product_id: str
    name: str
    category: str
    price: float
    quantity: int
    prescription: bool = False
    subtotal: float


class CartOut(ApiModel):
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    items: List[CartLine] = []
    total: float = 0.0
    item_count: int = 0

    def line_for(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self.items if line.product_id == product_id), None)


class OrderOut(ApiModel):
    id: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    items: List[CartLine]
    total: float
    customer_info: Dict[str, Any] = {}
    status: str = "confirmed"
    created_at: datetime


# requests; fields are optional so missing values surface as our own 400s

class Credentials(ApiModel):
    username: Optional[str] = None
    password: Optional[str] = None
    session_id: Optional[str] = None


class CartItemRequest(ApiModel):
    session_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: Optional[int] = 1


class CartRemoveRequest(ApiModel):
    session_id: Optional[str] = None
    product_id: Optional[str] = None


class CartSessionRequest(ApiModel):
    session_id: Optional[str] = None


class CheckoutRequest(ApiModel):
    session_id: Optional[str] = None
    customer_info: Dict[str, Any] = {}


class ProductUpdate(ApiModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    manufacturer: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    prescription: Optional[bool] = None
    image_path: Optional[str] = None


class NavigationQuery(ApiModel):
    query: Optional[str] = None


class ChatRequest(ApiModel):
    message: Optional[str] = None
    session_id: Optional[str] = None
    context: Dict[str, Any] = {}
