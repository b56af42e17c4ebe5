from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class RunCadence(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"

class CheckOptions(BaseModel):
    """Optional JSON body accepted by the trigger endpoints."""

    model_config = ConfigDict(extra="ignore")

    test_run: bool = False
    full_sync: bool = False
    skip_email: bool = False
    skip_sms: bool = False
    skip_push: bool = False

class CheckResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str
    new_records_count: int = 0
    new_casefiles_count: int = 0
    new_records_for_existing_cases_count: int = 0
    email_sent: bool = False
    sms_sent: bool = False
    push_delivered: int = 0
    saved_successfully: bool = True

class CheckError(BaseModel):
    error: str
    stack: str = Field(default="")
