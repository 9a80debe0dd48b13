"""Schemas for MyCase lookups."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class CaseSummary(BaseModel):
    """A case labelled with its client, as shown in the evidence intake form."""

    id: Union[int, str]
    name: str = Field(..., description="Client display name.")
    case_number: str
    case_name: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_case(cls, case: Dict[str, Any], *, client_name: str) -> "CaseSummary":
        return cls(
            id=case["id"],
            name=client_name,
            case_number=case.get("case_number") or "No Case Number",
            case_name=case.get("name"),
            updated_at=case.get("updated_at"),
        )


class CaseSummaryList(BaseModel):
    clients: list[CaseSummary]


__all__ = ["CaseSummary", "CaseSummaryList"]
