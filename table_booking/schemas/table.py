"""
Pydantic schemas for dining tables.
"""

from pydantic import BaseModel, Field

from table_booking.models.table import TableLocation


class TableCreate(BaseModel):
    table_number: str = Field(..., min_length=1, max_length=10)
    capacity: int = Field(..., gt=0)
    location: TableLocation = TableLocation.INDOOR
    is_available: bool = True


class TableRead(BaseModel):
    id: int
    table_number: str
    capacity: int
    location: TableLocation
    is_available: bool

    model_config = {"from_attributes": True, "frozen": True}


class TableAvailabilityUpdate(BaseModel):
    is_available: bool


# Default floor plan: 15 tables, matching the restaurant's seed data
DEFAULT_TABLES: tuple[TableCreate, ...] = (
    TableCreate(table_number="T01", capacity=2, location=TableLocation.INDOOR),
    TableCreate(table_number="T02", capacity=2, location=TableLocation.INDOOR),
    TableCreate(table_number="T03", capacity=4, location=TableLocation.INDOOR),
    TableCreate(table_number="T04", capacity=4, location=TableLocation.INDOOR),
    TableCreate(table_number="T05", capacity=4, location=TableLocation.INDOOR),
    TableCreate(table_number="T06", capacity=6, location=TableLocation.INDOOR),
    TableCreate(table_number="T07", capacity=6, location=TableLocation.INDOOR),
    TableCreate(table_number="T08", capacity=8, location=TableLocation.INDOOR),
    TableCreate(table_number="T09", capacity=4, location=TableLocation.OUTDOOR),
    TableCreate(table_number="T10", capacity=4, location=TableLocation.OUTDOOR),
    TableCreate(table_number="T11", capacity=6, location=TableLocation.OUTDOOR),
    TableCreate(table_number="T12", capacity=2, location=TableLocation.TERRACE),
    TableCreate(table_number="T13", capacity=2, location=TableLocation.TERRACE),
    TableCreate(table_number="T14", capacity=4, location=TableLocation.TERRACE),
    TableCreate(table_number="T15", capacity=4, location=TableLocation.TERRACE),
)
