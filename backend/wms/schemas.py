from datetime import date

from pydantic import BaseModel, Field


class LocationCreate(BaseModel):
    zone: str = Field(..., min_length=1, max_length=16)
    rack_no: str = Field(..., min_length=1, max_length=16)
    level_no: str = Field(..., min_length=1, max_length=8)
    side: str = Field("1", min_length=1, max_length=8)
    warehouse: str | None = None


class LocationBulkCreate(BaseModel):
    zone: str = Field(..., min_length=1, max_length=16)
    start_rack: str = Field(..., min_length=1, max_length=1)
    end_rack: str | None = Field(default=None, min_length=1, max_length=1)
    level_no: str = Field(..., min_length=1, max_length=8)
    warehouse: str | None = None


class ItemCreate(BaseModel):
    item_key: str = Field(..., min_length=1, max_length=64)
    item_name: str = Field(..., min_length=1, max_length=256)
    uom: str = "EA"
    barcode: str | None = None
    shelf_life_days: int | None = Field(default=None, ge=0)
    lot_required: str = Field("N", pattern="^(Y|N)$")
    remark: str | None = None
    use_team: str = ""
    unit_cost: float = Field(0, ge=0)


class ItemUpdate(BaseModel):
    item_name: str | None = None
    uom: str | None = None
    barcode: str | None = None
    shelf_life_days: int | None = Field(default=None, ge=0)
    lot_required: str | None = Field(default=None, pattern="^(Y|N)$")
    active_flag: str | None = Field(default=None, pattern="^(Y|N)$")
    remark: str | None = None
    use_team: str | None = None
    unit_cost: float | None = Field(default=None, ge=0)


class DirectInbound(BaseModel):
    location_code: str = Field(..., min_length=1, max_length=32)
    item_key: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., gt=0)
    lot_no: str | None = None
    exp_date: date | None = None


class OutboundCreate(BaseModel):
    location_code: str = Field(..., min_length=1, max_length=32)
    item_key: str = Field(..., min_length=1, max_length=64)
    lot_no: str | None = None
    quantity: int = Field(..., gt=0)
    remark: str = ""


class InventoryMove(BaseModel):
    inventory_id: int | None = Field(default=None, gt=0)
    source_location: str | None = None
    item_key: str | None = None
    lot_no: str | None = None
    target_location: str = Field(..., min_length=1, max_length=32)
    quantity: int = Field(..., gt=0)


class InventoryAdjust(BaseModel):
    location_code: str = Field(..., min_length=1, max_length=32)
    item_key: str = Field(..., min_length=1, max_length=64)
    lot_no: str | None = None
    delta: int
    reason: str = "manual"


class InventoryStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(AVAILABLE|HOLD|QC)$")


class InboundLineCreate(BaseModel):
    item_key: str = Field(..., min_length=1, max_length=64)
    qty: int = Field(..., gt=0)


class InboundCreate(BaseModel):
    inbound_type: str = Field("MAT_IN", pattern="^(MAT_IN|PROD_IN|OEM_IN|ETC_IN)$")
    supplier_name: str | None = None
    plan_date: date | None = None
    remark: str = ""
    lines: list[InboundLineCreate] = Field(..., min_length=1)


class InboundReceive(BaseModel):
    detail_id: int = Field(..., gt=0)
    location_code: str = Field(..., min_length=1, max_length=32)
    quantity: int = Field(..., gt=0)
    lot_no: str | None = None
    exp_date: date | None = None
