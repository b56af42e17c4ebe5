from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from violation_watch.core.db import get_db
from violation_watch.services.notifier import NotificationFanout
from violation_watch.services.store import RecordStore
from violation_watch.services.upstream import UpstreamClient
from violation_watch.services.violation_check import ViolationCheck

def get_fanout(request: Request) -> NotificationFanout:
    return request.app.state.fanout

def get_upstream(request: Request) -> UpstreamClient:
    return request.app.state.upstream

def get_store(db: AsyncSession = Depends(get_db)) -> RecordStore:
    return RecordStore(db)

def get_violation_check(
    store: RecordStore = Depends(get_store),
    upstream: UpstreamClient = Depends(get_upstream),
    fanout: NotificationFanout = Depends(get_fanout),
) -> ViolationCheck:
    return ViolationCheck(store, upstream, fanout)
