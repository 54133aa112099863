from datetime import date, datetime
from sqlalchemy import String, Integer, Float, ForeignKey, Date, DateTime, UniqueConstraint, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from .db import Base


class Location(Base):
    __tablename__ = "loc_master"

    loc_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    warehouse: Mapped[str] = mapped_column(String(32), default="WH01")
    zone: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)
    rack_no: Mapped[str | None] = mapped_column(String(16), nullable=True)
    level_no: Mapped[str | None] = mapped_column(String(8), nullable=True)
    side: Mapped[str | None] = mapped_column(String(8), nullable=True)
    active_flag: Mapped[str] = mapped_column(String(1), default="Y", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    inventory: Mapped[list["Inventory"]] = relationship(back_populates="location")


class Item(Base):
    __tablename__ = "item_master"

    item_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_name: Mapped[str] = mapped_column(String(256))
    uom: Mapped[str] = mapped_column(String(16), default="EA")
    barcode: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    shelf_life_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lot_required: Mapped[str] = mapped_column(String(1), default="N")
    active_flag: Mapped[str] = mapped_column(String(1), default="Y", index=True)
    remark: Mapped[str | None] = mapped_column(String(256), nullable=True)
    use_team: Mapped[str] = mapped_column(String(32), default="")
    unit_cost: Mapped[float] = mapped_column(Float, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class Inventory(Base):
    __tablename__ = "inventory"
    __table_args__ = (UniqueConstraint("location_code", "item_key", "lot_no", name="uq_inventory_location_item_lot"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    location_code: Mapped[str] = mapped_column(ForeignKey("loc_master.loc_id"), index=True)
    item_key: Mapped[str] = mapped_column(ForeignKey("item_master.item_key"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    lot_no: Mapped[str] = mapped_column(String(64), default="DEFAULT")
    exp_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="AVAILABLE")
    inbound_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    item: Mapped[Item] = relationship()
    location: Mapped[Location] = relationship(back_populates="inventory")


class InboundMaster(Base):
    __tablename__ = "inbound_master"

    inbound_no: Mapped[str] = mapped_column(String(32), primary_key=True)
    inbound_type: Mapped[str] = mapped_column(String(16), default="MAT_IN")
    supplier_name: Mapped[str] = mapped_column(String(128))
    plan_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(16), default="PENDING", index=True)
    remark: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    details: Mapped[list["InboundDetail"]] = relationship(back_populates="master", order_by="InboundDetail.item_key")


class InboundDetail(Base):
    __tablename__ = "inbound_detail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inbound_no: Mapped[str] = mapped_column(ForeignKey("inbound_master.inbound_no"), index=True)
    item_key: Mapped[str] = mapped_column(ForeignKey("item_master.item_key"), index=True)
    plan_qty: Mapped[int] = mapped_column(Integer)
    received_qty: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="PENDING")

    master: Mapped[InboundMaster] = relationship(back_populates="details")
    item: Mapped[Item] = relationship()


class StockTx(Base):
    __tablename__ = "stock_tx"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_type: Mapped[str] = mapped_column(String(16), index=True)  # INBOUND | DIRECT_IN | OUTBOUND | MOVE | ADJUST
    io_type: Mapped[str] = mapped_column(String(8))  # IN | OUT
    location_code: Mapped[str] = mapped_column(String(32), index=True)
    item_key: Mapped[str] = mapped_column(ForeignKey("item_master.item_key"), index=True)
    lot_no: Mapped[str] = mapped_column(String(64), default="DEFAULT")
    quantity: Mapped[int] = mapped_column(Integer)
    ref_doc_no: Mapped[str | None] = mapped_column(String(32), nullable=True)
    remark: Mapped[str] = mapped_column(String(256), default="")
    operator: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)

    item: Mapped[Item] = relationship()


class OperationLog(Base):
    __tablename__ = "operation_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    module: Mapped[str] = mapped_column(String(64), index=True)
    action: Mapped[str] = mapped_column(String(64))
    entity: Mapped[str] = mapped_column(String(64))
    entity_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    detail: Mapped[str] = mapped_column(String(512), default="")
    before_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    after_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    operator: Mapped[str | None] = mapped_column(String(64), nullable=True)
    request_source: Mapped[str | None] = mapped_column(String(128), nullable=True)
    trace_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
