from datetime import date, datetime
from typing import Optional
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field

from .utils import now_utc

ROLE_STUDENT = "student"
ROLE_MANAGER = "manager"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    full_name: str
    student_id: Optional[str] = None
    password_hash: str
    role: str = ROLE_STUDENT  # student | manager
    is_verified: bool = False
    created_at: datetime = Field(default_factory=now_utc)

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER


class MenuItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str = ""
    price: float
    category: str = Field(index=True)
    image: Optional[str] = None
    is_veg: bool = False
    cuisine: str = ""
    spice_level: int = 0  # 0-5
    allergens: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    nutritional_info: dict = Field(default_factory=dict, sa_column=Column(JSON))
    is_available: bool = True
    ingredients: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    average_rating: float = 0.0
    review_count: int = 0
    preparation_time: int = 10  # minutes
    created_at: datetime = Field(default_factory=now_utc)


class CartItem(SQLModel):
    """A menu item as it stood when added to the cart, plus a quantity."""

    id: int
    name: str
    description: str = ""
    price: float
    category: str
    image: Optional[str] = None
    is_veg: bool = False
    cuisine: str = ""
    spice_level: int = 0
    allergens: list[str] = []
    nutritional_info: dict = {}
    is_available: bool = True
    ingredients: list[str] = []
    average_rating: float = 0.0
    review_count: int = 0
    preparation_time: int = 0
    quantity: int = Field(default=1, ge=1)

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    items: list[dict] = Field(default_factory=list, sa_column=Column(JSON))  # CartItem snapshots
    total_amount: float  # pre-tax
    status: str = Field(default="ordered", index=True)  # ordered | preparing | ready | served | cancelled
    scheduled_time: str  # "HH:MM" slot label
    service_date: date = Field(index=True)
    token: str = Field(index=True)
    special_instructions: Optional[str] = None
    estimated_preparation_time: int = 0  # minutes
    created_at: datetime = Field(default_factory=now_utc)

    def snapshot_items(self) -> list[CartItem]:
        return [CartItem.model_validate(raw) for raw in self.items]


class Review(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    user_name: str
    menu_item_id: int = Field(index=True)  # no FK: items may be deleted
    rating: int
    comment: str = ""
    created_at: datetime = Field(default_factory=now_utc)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str
    message: str
    kind: str = "info"  # success | info | warning | error
    read: bool = False
    created_at: datetime = Field(default_factory=now_utc)


class TokenCounter(SQLModel, table=True):
    date_key: str = Field(primary_key=True)  # YYYYMMDD
    count: int = 0


class SlotBooking(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("service_date", "time"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    service_date: date = Field(index=True)
    time: str  # "HH:MM"
    booked: int = 0


class OtpVerification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    otp: str
    expires_at: datetime
    verified: bool = False
    created_at: datetime = Field(default_factory=now_utc)
