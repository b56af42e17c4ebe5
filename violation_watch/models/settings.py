from sqlalchemy import Boolean, Column, DateTime, Integer, String
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from violation_watch.core.db import Base

SETTINGS_ROW_ID = 1

class AppSettings(Base):
    """Single-row table: feature toggles, recipients and the sync checkpoint."""

    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True)
    violation_checks_enabled = Column(Boolean, default=True)
    email_reports_enabled = Column(Boolean, default=False)
    email_report_address = Column(String, nullable=True)
    sms_reports_enabled = Column(Boolean, default=False)
    sms_report_phone = Column(String, nullable=True)
    push_notifications_enabled = Column(Boolean, default=False)
    last_api_check_time = Column(DateTime(timezone=True), nullable=True)
    last_api_new_records_count = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class RunSettings(BaseModel):
    """Snapshot of AppSettings taken once at the start of a run."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    violation_checks_enabled: bool = True
    email_reports_enabled: bool = False
    email_report_address: Optional[str] = None
    sms_reports_enabled: bool = False
    sms_report_phone: Optional[str] = None
    push_notifications_enabled: bool = False
    last_api_check_time: Optional[datetime] = None
    last_api_new_records_count: Optional[int] = None

    @property
    def email_recipient(self) -> Optional[str]:
        if self.email_reports_enabled and self.email_report_address:
            return self.email_report_address
        return None

    @property
    def sms_recipient(self) -> Optional[str]:
        if self.sms_reports_enabled and self.sms_report_phone:
            return self.sms_report_phone
        return None
