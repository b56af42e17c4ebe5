import re
from enum import Enum
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

class CaseStatus(str, Enum):
    IN_VIOLATION = "IN VIOLATION"
    IN_COURT = "IN COURT"
    READY_TO_CLOSE = "READY TO CLOSE"
    CLOSED = "CLOSED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "CaseStatus":
        """Map upstream status text (inconsistent casing and separators) onto the enum."""
        if not raw:
            return cls.UNKNOWN
        normalized = re.sub(r"[\s_\-]+", " ", raw).strip().upper()
        if normalized == "RESOLVED":
            return cls.CLOSED
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN

    @property
    def terminal_rank(self) -> int:
        if self is CaseStatus.CLOSED:
            return 2
        if self is CaseStatus.READY_TO_CLOSE:
            return 1
        return 0

class ViolationRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    id: int = Field(alias="_id")
    casefile_number: Optional[str] = None
    address: Optional[str] = None
    parcel_id: Optional[str] = None
    status: Optional[str] = None
    investigation_date: Optional[date] = None
    violation_description: Optional[str] = None
    violation_code_section: Optional[str] = None
    violation_spec_instructions: Optional[str] = None
    investigation_outcome: Optional[str] = None
    investigation_findings: Optional[str] = None

    @field_validator(
        "casefile_number", "address", "parcel_id", "status",
        "violation_description", "violation_code_section",
        "violation_spec_instructions", "investigation_outcome",
        "investigation_findings",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("investigation_date", mode="before")
    @classmethod
    def date_part_only(cls, value):
        # upstream sends "2025-03-04T00:00:00"
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            value = value.strip()
            return value[:10] or None
        return value

    @property
    def case_status(self) -> CaseStatus:
        return CaseStatus.from_raw(self.status)

    @property
    def street_address(self) -> str:
        if not self.address:
            return "Unknown Address"
        return self.address.split(",")[0].strip() or "Unknown Address"

    def to_row(self) -> dict:
        return self.model_dump(by_alias=False)

class SyncResult(BaseModel):
    new_records: List[ViolationRecord] = []
    new_casefiles: List[ViolationRecord] = []
    new_records_for_existing_cases: List[ViolationRecord] = []

    @property
    def has_news(self) -> bool:
        return bool(self.new_records)

    @property
    def total(self) -> int:
        return len(self.new_records)
