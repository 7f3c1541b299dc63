# schemas.py
from typing import Optional

from fastapi import Query
from pydantic import BaseModel, EmailStr, Field, field_validator

from .reports.filters import ReportFilter, build_report_filter


# ------------------------
# Reports
# ------------------------
class ReportQuery(BaseModel):
    status: Optional[str] = None
    service: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    def to_filter(self) -> ReportFilter:
        return build_report_filter(self.status, self.service, self.date_from, self.date_to)

    def as_params(self) -> dict:
        params = {
            "status": self.status,
            "service": self.service,
            "dateFrom": self.date_from,
            "dateTo": self.date_to,
        }
        return {key: value for key, value in params.items() if value}


def report_query(
    status: Optional[str] = Query(None),
    service: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
) -> ReportQuery:
    return ReportQuery(status=status, service=service, date_from=date_from, date_to=date_to)


# ------------------------
# Accounts
# ------------------------
class RegisterForm(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class ProfileForm(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: EmailStr


# ------------------------
# Booking
# ------------------------
class BookingForm(BaseModel):
    service_id: str = Field(..., min_length=1)
    service_name: str = Field(..., min_length=1)
    pickup_date: Optional[str] = None
    notes: str = ""
    price: float = Field(0, ge=0)


# ------------------------
# Services catalog
# ------------------------
class ServiceForm(BaseModel):
    service_id: str = ""
    name: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(0, ge=0)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value
