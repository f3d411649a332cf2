"""Floor plan routes."""

from typing import List

from fastapi import APIRouter
from sqlalchemy import select

from tillpoint.api.deps import CurrentStaff
from tillpoint.db.session import DbSession
from tillpoint.models.floor import Table
from tillpoint.schemas.menu import TableResponse

router = APIRouter()


@router.get("", response_model=List[TableResponse])
def list_tables(staff: CurrentStaff, db: DbSession):
    return db.execute(select(Table).order_by(Table.number)).scalars().all()
