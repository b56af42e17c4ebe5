from sqlalchemy import BigInteger, Column, Date, DateTime, Integer, String, Text
from violation_watch.core.db import Base
from datetime import datetime

class Violation(Base):
    """One stored upstream record. Rows are never updated after insert."""

    __tablename__ = "violations"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    casefile_number = Column(String, nullable=True, index=True)
    address = Column(String, nullable=True)
    parcel_id = Column(String, nullable=True, index=True)
    status = Column(String, nullable=True)
    investigation_date = Column(Date, nullable=True, index=True)
    violation_description = Column(Text, nullable=True)
    violation_code_section = Column(Text, nullable=True)
    violation_spec_instructions = Column(Text, nullable=True)
    investigation_outcome = Column(Text, nullable=True)
    investigation_findings = Column(Text, nullable=True)

class WatchedLocation(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    address = Column(String, nullable=False)
    parcel_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class NotificationLog(Base):
    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel = Column(String, nullable=False)
    destination = Column(String, nullable=True)
    new_records_count = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="sent")
    sent_at = Column(DateTime, default=datetime.utcnow)
