from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

UserRole = Literal["client", "technician", "admin"]
TicketType = Literal["support", "hardware", "software"]
TicketStatus = Literal["pending", "in-progress", "complete"]
TicketPriority = Literal["low", "medium", "high", "critical"]
ChatStatus = Literal["active", "waiting", "closed"]

TICKET_STATUSES: tuple[str, ...] = ("pending", "in-progress", "complete")


class ViewModel(BaseModel):
    """Application-side shape of a remote row; serialises as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
