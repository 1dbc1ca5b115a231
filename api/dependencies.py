from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from api.services import AccountQueryService
from database.engine import Database
from execution_engine.execution_service import TradeExecutionService
from notifications.in_app import NotificationWriter


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(database: Database = Depends(get_database)) -> Generator[Session, None, None]:
    db = database.new_session()
    try:
        yield db
    finally:
        db.close()


def get_query_service(db: Session = Depends(get_db)) -> AccountQueryService:
    return AccountQueryService(db)


def get_execution_service(request: Request) -> TradeExecutionService:
    return request.app.state.execution_service


def get_notification_writer(database: Database = Depends(get_database)) -> NotificationWriter:
    return NotificationWriter(database)
