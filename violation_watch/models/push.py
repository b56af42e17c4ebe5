from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint
from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime
from violation_watch.core.db import Base

class PushDevice(Base):
    __tablename__ = "push_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    device_token = Column(String, nullable=False)
    platform = Column(String, nullable=False)
    permission_granted = Column(Boolean, default=True)
    apns_environment = Column(String, nullable=True)
    app_version = Column(String, nullable=True)
    device_model = Column(String, nullable=True)
    os_version = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'device_token', name='_push_user_device_uc'),
    )

class PushDeviceInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    device_token: str
    platform: str
    permission_granted: bool = False
    apns_environment: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.apns_environment in (None, "", "production")

class PushRegistration(BaseModel):
    device_token: Optional[str] = None
    platform: Optional[str] = None
    permission_granted: bool = True
    app_version: Optional[str] = None
    device_model: Optional[str] = None
    os_version: Optional[str] = None
    apns_environment: Optional[str] = None

class PushMessage(BaseModel):
    title: str
    body: str
    data: Dict[str, Any] = {}

class PushReport(BaseModel):
    devices: int = 0
    delivered: int = 0
    failed: int = 0
