from __future__ import annotations

from pydantic import BaseModel, Field

from msp_portal.schemas.base import UserRole, ViewModel


class Company(ViewModel):
    id: str
    name: str
    website: str | None = None
    phone: str | None = None
    address: str | None = None
    email: str | None = None


class Location(ViewModel):
    id: str
    company_id: str
    name: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    phone: str | None = None


class UserSummary(ViewModel):
    full_name: str
    email: str | None = None
    avatar_url: str | None = None


class UserProfile(ViewModel):
    id: str
    email: str | None = None
    full_name: str
    avatar_url: str | None = None
    role: UserRole
    company_id: str | None = None
    company: Company | None = None


class Client(ViewModel):
    id: str
    user_id: str | None = None
    company_id: str | None = None
    location_id: str | None = None
    job_title: str | None = None
    phone: str | None = None
    user: UserSummary | None = None
    company: Company | None = None
    location: Location | None = None


class Technician(ViewModel):
    id: str
    user_id: str | None = None
    specialization: str | None = None
    phone: str | None = None
    user: UserSummary | None = None


class CompanyCreate(BaseModel):
    name: str = Field(min_length=1)
    address: str | None = None
    phone: str | None = None
    email: str | None = None


class UserCreate(ViewModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    role: UserRole = "client"
    company_id: str | None = None
