from datetime import date, datetime, time, timedelta
from io import BytesIO
import json
import logging
import math
import secrets
from contextvars import ContextVar
from fastapi import FastAPI, Depends, HTTPException, Response, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy.orm import Session
from sqlalchemy import Select, select, func, or_, and_, not_
from sqlalchemy.exc import IntegrityError, OperationalError
from .config import settings
from .db import SessionLocal, tx
from . import layout, models, schemas

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def audit_trace_middleware(request: Request, call_next):
    trace_id = request.headers.get("X-Trace-Id") or secrets.token_hex(8)
    request_source = request.headers.get("X-Request-Source")
    if not request_source:
        request_source = request.client.host if request.client else "unknown"
    trace_id_ctx.set(trace_id)
    request_source_ctx.set(request_source)
    operator_ctx.set(request.headers.get("X-Operator"))
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response


TX_INBOUND = "INBOUND"
TX_DIRECT_IN = "DIRECT_IN"
TX_OUTBOUND = "OUTBOUND"
TX_MOVE = "MOVE"
TX_ADJUST = "ADJUST"

TX_TYPE_FILTERS = {
    TX_INBOUND: [TX_INBOUND, TX_DIRECT_IN],
    TX_DIRECT_IN: [TX_DIRECT_IN],
    TX_OUTBOUND: [TX_OUTBOUND],
    TX_MOVE: [TX_MOVE],
    TX_ADJUST: [TX_ADJUST],
}

SUPPLIER_DEFAULTS = {
    "PROD_IN": "Internal production line",
    "MAT_IN": "Materials team / purchasing",
    "ETC_IN": "Other",
}

INBOUND_NO_ATTEMPTS = 20

# Item columns that may change but never be set back to null.
REQUIRED_ITEM_FIELDS = {"item_name", "uom", "lot_required", "active_flag", "use_team", "unit_cost"}

EXPORT_COLUMNS = [
    ("location_code", "Location"),
    ("zone", "Zone"),
    ("item_key", "Item code"),
    ("item_name", "Item name"),
    ("uom", "UOM"),
    ("lot_no", "LOT"),
    ("quantity", "Quantity"),
    ("exp_date", "Expiry"),
    ("status", "Status"),
    ("inbound_date", "Inbound date"),
]

trace_id_ctx: ContextVar[str | None] = ContextVar("trace_id", default=None)
request_source_ctx: ContextVar[str | None] = ContextVar("request_source", default=None)
operator_ctx: ContextVar[str | None] = ContextVar("operator", default=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def add_operation_log(
    module: str,
    action: str,
    entity: str,
    entity_key: str | int | None,
    detail: str = "",
    before_value: dict | None = None,
    after_value: dict | None = None,
):
    # Keep business APIs available even if audit log storage is temporarily broken.
    try:
        with SessionLocal() as log_db:
            log_db.add(
                models.OperationLog(
                    module=module,
                    action=action,
                    entity=entity,
                    entity_key=str(entity_key) if entity_key is not None else None,
                    detail=detail,
                    before_value=json.dumps(before_value, ensure_ascii=False, default=str) if before_value is not None else None,
                    after_value=json.dumps(after_value, ensure_ascii=False, default=str) if after_value is not None else None,
                    operator=operator_ctx.get(),
                    request_source=request_source_ctx.get(),
                    trace_id=trace_id_ctx.get(),
                )
            )
            log_db.commit()
    except Exception:
        logger.warning("operation log write failed: %s.%s %s", module, action, entity_key, exc_info=True)


@app.on_event("startup")
def on_startup():
    with SessionLocal() as db:
        try:
            db.execute(select(models.Location.loc_id).limit(1))
        except OperationalError as exc:
            raise RuntimeError("database schema is missing, run migrations first: alembic upgrade head") from exc
    logger.info("%s started", settings.APP_NAME)


# ---------------------------------------------------------------------------
# serializers / shared lookups
# ---------------------------------------------------------------------------


def location_dict(loc: models.Location) -> dict:
    return {
        "loc_id": loc.loc_id,
        "warehouse": loc.warehouse,
        "zone": layout.resolve_zone(loc.loc_id, loc.zone),
        "rack_no": loc.rack_no,
        "level_no": loc.level_no,
        "side": loc.side,
        "active_flag": loc.active_flag,
    }


def item_dict(item: models.Item) -> dict:
    return {
        "item_key": item.item_key,
        "item_name": item.item_name,
        "uom": item.uom,
        "barcode": item.barcode,
        "shelf_life_days": item.shelf_life_days,
        "lot_required": item.lot_required,
        "active_flag": item.active_flag,
        "remark": item.remark,
        "use_team": item.use_team,
        "unit_cost": item.unit_cost,
        "created_at": item.created_at,
    }


def inventory_dict(inv: models.Inventory, item: models.Item | None = None, loc: models.Location | None = None) -> dict:
    return {
        "id": inv.id,
        "location_code": inv.location_code,
        "zone": layout.resolve_zone(loc.loc_id, loc.zone) if loc else None,
        "item_key": inv.item_key,
        "item_name": item.item_name if item else None,
        "uom": item.uom if item else None,
        "lot_no": inv.lot_no,
        "quantity": inv.quantity,
        "exp_date": inv.exp_date,
        "status": inv.status,
        "inbound_date": inv.inbound_date,
        "updated_at": inv.updated_at,
    }


def location_cells(db: Session, include_inactive: bool = False) -> list[dict]:
    stmt = select(models.Location).order_by(models.Location.loc_id)
    if not include_inactive:
        stmt = stmt.where(models.Location.active_flag == "Y")
    cells = {loc.loc_id: {**location_dict(loc), "quantity": 0, "items": []} for loc in db.scalars(stmt)}

    stock = db.execute(
        select(models.Inventory.location_code, models.Inventory.quantity, models.Item.item_name)
        .join(models.Item, models.Item.item_key == models.Inventory.item_key)
        .where(models.Inventory.quantity > 0)
    )
    for location_code, quantity, item_name in stock:
        cell = cells.get(location_code)
        if cell is None:
            continue
        cell["quantity"] += quantity
        if item_name not in cell["items"]:
            cell["items"].append(item_name)
    return list(cells.values())


def get_location_or_404(db: Session, loc_id: str) -> models.Location:
    loc = db.get(models.Location, loc_id)
    if not loc:
        raise HTTPException(404, f"location {loc_id} does not exist")
    return loc


def get_item_or_404(db: Session, item_key: str) -> models.Item:
    item = db.get(models.Item, item_key)
    if not item:
        raise HTTPException(404, f"item {item_key} does not exist")
    return item


def normalize_code(code: str) -> str:
    return code.strip().upper()


def receipt_lot(item: models.Item, lot_no: str | None) -> str:
    if item.lot_required == "Y":
        if not lot_no or not lot_no.strip():
            raise HTTPException(400, f"item {item.item_key} requires a LOT number")
        return lot_no.strip()
    return settings.DEFAULT_LOT_NO


def find_stock(db: Session, location_code: str, item_key: str, lot_no: str) -> models.Inventory | None:
    return db.scalar(
        select(models.Inventory)
        .where(models.Inventory.location_code == location_code)
        .where(models.Inventory.item_key == item_key)
        .where(models.Inventory.lot_no == lot_no)
    )


def receive_stock(
    db: Session,
    location_code: str,
    item_key: str,
    lot_no: str,
    qty: int,
    exp_date: date | None = None,
) -> models.Inventory:
    inv = find_stock(db, location_code, item_key, lot_no)
    if inv:
        inv.quantity += qty
        inv.updated_at = datetime.now()
        return inv
    get_location_or_404(db, location_code)
    now = datetime.now()
    inv = models.Inventory(
        location_code=location_code,
        item_key=item_key,
        lot_no=lot_no,
        quantity=qty,
        exp_date=exp_date,
        status="AVAILABLE",
        inbound_date=now,
        updated_at=now,
    )
    db.add(inv)
    db.flush()
    return inv


def record_tx(
    db: Session,
    transaction_type: str,
    io_type: str,
    location_code: str,
    item_key: str,
    lot_no: str,
    quantity: int,
    remark: str = "",
    ref_doc_no: str | None = None,
):
    db.add(
        models.StockTx(
            transaction_type=transaction_type,
            io_type=io_type,
            location_code=location_code,
            item_key=item_key,
            lot_no=lot_no,
            quantity=quantity,
            ref_doc_no=ref_doc_no,
            remark=remark,
            operator=operator_ctx.get(),
        )
    )


def paginate(db: Session, stmt: Select, page: int, page_size: int) -> tuple[dict, list]:
    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = db.execute(stmt.offset((page - 1) * page_size).limit(page_size)).all()
    meta = {
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": max(1, math.ceil(total / page_size)),
    }
    return meta, rows


# ---------------------------------------------------------------------------
# system
# ---------------------------------------------------------------------------


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    return {
        "total_locations": db.scalar(select(func.count()).select_from(models.Location)) or 0,
        "total_items": db.scalar(select(func.count()).select_from(models.Item)) or 0,
        "total_stock": db.scalar(select(func.coalesce(func.sum(models.Inventory.quantity), 0))) or 0,
    }


@app.get("/operation_logs")
def list_operation_logs(limit: int = Query(100, ge=1, le=1000), db: Session = Depends(get_db)):
    return db.scalars(select(models.OperationLog).order_by(models.OperationLog.id.desc()).limit(limit)).all()


# ---------------------------------------------------------------------------
# locations
# ---------------------------------------------------------------------------


@app.get("/locations")
def list_locations(
    team: str | None = Query(default=None, pattern="^(ALL|PRODUCTION|LOGISTICS)$"),
    zone: str | None = Query(default=None),
    include_inactive: int = Query(0),
    db: Session = Depends(get_db),
):
    cells = location_cells(db, include_inactive=bool(include_inactive))
    return [c for c in cells if layout.in_team(c, team) and (not zone or c["zone"] == zone)]


@app.get("/locations/master")
def location_master(
    team: str = Query(layout.TEAM_PRODUCTION, pattern="^(PRODUCTION|LOGISTICS)$"),
    zone: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    tab = [c for c in location_cells(db, include_inactive=True) if layout.in_team(c, team)]
    zones = sorted({c["zone"] or layout.UNASSIGNED_ZONE for c in tab})
    current = zone if zone in zones else (zones[0] if zones else None)
    return {
        "team": team,
        "zones": zones,
        "current_zone": current,
        "locations": [c for c in tab if (c["zone"] or layout.UNASSIGNED_ZONE) == current],
    }


@app.get("/locations/zones")
def list_zones(db: Session = Depends(get_db)):
    locs = db.scalars(select(models.Location).where(models.Location.active_flag == "Y")).all()
    return layout.split_zones(layout.resolve_zone(loc.loc_id, loc.zone) for loc in locs)


@app.get("/locations/search")
def search_locations(q: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    stmt = (
        select(models.Location)
        .where(models.Location.active_flag == "Y")
        .where(models.Location.loc_id.ilike(f"%{q.strip()}%"))
        .order_by(models.Location.loc_id)
        .limit(settings.SEARCH_LIMIT)
    )
    return [{"loc_id": loc.loc_id, "zone": layout.resolve_zone(loc.loc_id, loc.zone)} for loc in db.scalars(stmt)]


@app.get("/locations/map")
def location_map(db: Session = Depends(get_db)):
    cells = location_cells(db)
    return {
        "production": layout.production_tiles(cells),
        "logistics": layout.logistics_cards(cells),
    }


@app.get("/locations/racks/{rack}")
def rack_detail(
    rack: str,
    team: str = Query(layout.TEAM_PRODUCTION, pattern="^(PRODUCTION|LOGISTICS)$"),
    db: Session = Depends(get_db),
):
    rack = normalize_code(rack)
    cells = layout.rack_cells(location_cells(db), rack, team)
    if not cells:
        raise HTTPException(404, f"rack {rack} has no locations")
    return layout.rack_grid(rack, cells)


@app.get("/locations/selector")
def location_selector(
    team: str = Query(layout.TEAM_PRODUCTION, pattern="^(PRODUCTION|LOGISTICS)$"),
    zone: str | None = Query(default=None),
    rack: str | None = Query(default=None),
    side: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return layout.cascade(location_cells(db), team=team, zone=zone, rack=rack, side=side)


@app.post("/locations")
def create_location(payload: schemas.LocationCreate, db: Session = Depends(get_db)):
    zone = normalize_code(payload.zone)
    rack = normalize_code(payload.rack_no)
    loc_id = layout.build_location_code(zone, rack, payload.level_no.strip(), payload.side.strip())
    if db.get(models.Location, loc_id):
        raise HTTPException(400, f"location {loc_id} already exists")
    loc = models.Location(
        loc_id=loc_id,
        warehouse=payload.warehouse or settings.DEFAULT_WAREHOUSE,
        zone=zone,
        rack_no=rack,
        level_no=payload.level_no.strip(),
        side=payload.side.strip(),
        active_flag="Y",
    )
    db.add(loc)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(400, f"location {loc_id} already exists")
    db.refresh(loc)
    add_operation_log("locations", "create", "location", loc.loc_id, f"zone={zone}")
    return location_dict(loc)


@app.post("/locations/bulk")
def bulk_create_locations(payload: schemas.LocationBulkCreate, db: Session = Depends(get_db)):
    zone = normalize_code(payload.zone)
    level = payload.level_no.strip()
    try:
        racks = layout.char_range(payload.start_rack, payload.end_rack)
    except ValueError as exc:
        raise HTTPException(400, str(exc))

    new_locs = [
        models.Location(
            loc_id=layout.build_location_code(zone, rack, level, side),
            warehouse=payload.warehouse or settings.DEFAULT_WAREHOUSE,
            zone=zone,
            rack_no=rack,
            level_no=level,
            side=side,
            active_flag="Y",
        )
        for rack in racks
        for side in ("1", "2")
    ]
    codes = [loc.loc_id for loc in new_locs]
    existing = db.scalars(select(models.Location.loc_id).where(models.Location.loc_id.in_(codes))).all()
    if existing:
        raise HTTPException(400, f"locations already exist: {', '.join(sorted(existing))}")

    db.add_all(new_locs)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(400, "locations already exist")
    add_operation_log("locations", "bulk_create", "location", None, f"zone={zone},count={len(codes)}", after_value={"loc_ids": codes})
    return {"created": codes}


@app.post("/locations/{loc_id}/toggle")
def toggle_location(loc_id: str, db: Session = Depends(get_db)):
    loc = get_location_or_404(db, loc_id)
    before = loc.active_flag
    loc.active_flag = "N" if before == "Y" else "Y"
    db.commit()
    add_operation_log(
        "locations",
        "toggle",
        "location",
        loc.loc_id,
        before_value={"active_flag": before},
        after_value={"active_flag": loc.active_flag},
    )
    return {"loc_id": loc.loc_id, "active_flag": loc.active_flag}


@app.get("/locations/{loc_id}")
def get_location(loc_id: str, db: Session = Depends(get_db)):
    loc = get_location_or_404(db, loc_id)
    rows = db.execute(
        select(models.Inventory, models.Item)
        .join(models.Item, models.Item.item_key == models.Inventory.item_key)
        .where(models.Inventory.location_code == loc_id)
        .order_by(models.Inventory.item_key, models.Inventory.lot_no)
    ).all()
    return {**location_dict(loc), "inventory": [inventory_dict(inv, item, loc) for inv, item in rows]}


# ---------------------------------------------------------------------------
# item master
# ---------------------------------------------------------------------------


def item_search_filter(keyword: str):
    """Every whitespace separated term must hit name, code, remark or barcode."""
    clauses = []
    for term in keyword.lower().split():
        pattern = f"%{term}%"
        clauses.append(
            or_(
                func.lower(models.Item.item_name).like(pattern),
                func.lower(models.Item.item_key).like(pattern),
                func.lower(func.coalesce(models.Item.remark, "")).like(pattern),
                func.lower(func.coalesce(models.Item.barcode, "")).like(pattern),
            )
        )
    return and_(*clauses)


@app.get("/items")
def list_items(
    include_inactive: int = Query(0),
    q: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    stmt = select(models.Item).order_by(models.Item.item_key)
    if not include_inactive:
        stmt = stmt.where(models.Item.active_flag == "Y")
    if q and q.strip():
        stmt = stmt.where(item_search_filter(q))
    return [item_dict(item) for item in db.scalars(stmt)]


@app.get("/items/search")
def search_items(
    q: str = Query(..., min_length=1),
    limit: int = Query(default=settings.SEARCH_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
):
    if not q.strip():
        return []
    stmt = (
        select(models.Item)
        .where(models.Item.active_flag == "Y")
        .where(item_search_filter(q))
        .order_by(models.Item.item_name)
        .limit(limit)
    )
    return [item_dict(item) for item in db.scalars(stmt)]


@app.get("/items/{item_key}")
def get_item(item_key: str, db: Session = Depends(get_db)):
    return item_dict(get_item_or_404(db, item_key))


@app.post("/items")
def create_item(payload: schemas.ItemCreate, db: Session = Depends(get_db)):
    item = models.Item(**{**payload.model_dump(), "item_key": payload.item_key.strip()}, active_flag="Y")
    db.add(item)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(400, "item_key already exists")
    db.refresh(item)
    add_operation_log("items", "create", "item", item.item_key, f"name={item.item_name}")
    return item_dict(item)


@app.put("/items/{item_key}")
def update_item(item_key: str, payload: schemas.ItemUpdate, db: Session = Depends(get_db)):
    item = get_item_or_404(db, item_key)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "nothing to update")
    required = sorted(key for key in REQUIRED_ITEM_FIELDS if key in changes and changes[key] is None)
    if required:
        raise HTTPException(400, f"{', '.join(required)} cannot be cleared")
    before = {key: getattr(item, key) for key in changes}
    for key, value in changes.items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    add_operation_log("items", "update", "item", item.item_key, before_value=before, after_value=changes)
    return item_dict(item)


@app.delete("/items/{item_key}")
def delete_item(item_key: str, force: int = Query(0), db: Session = Depends(get_db)):
    item = get_item_or_404(db, item_key)

    has_inventory = db.scalar(
        select(models.Inventory.id)
        .where(models.Inventory.item_key == item_key)
        .where(models.Inventory.quantity > 0)
        .limit(1)
    )
    has_history = db.scalar(select(models.StockTx.id).where(models.StockTx.item_key == item_key).limit(1))
    has_plans = db.scalar(select(models.InboundDetail.id).where(models.InboundDetail.item_key == item_key).limit(1))

    if has_inventory or has_history or has_plans or not force:
        item.active_flag = "N"
        db.commit()
        add_operation_log("items", "deactivate", "item", item_key)
        if has_inventory:
            reason = "inventory exists"
        elif has_history or has_plans:
            reason = "item is referenced by history"
        else:
            reason = "soft delete by default"
        return {"status": "soft_deleted", "reason": reason}

    db.execute(models.Inventory.__table__.delete().where(models.Inventory.item_key == item_key))
    db.delete(item)
    db.commit()
    add_operation_log("items", "delete", "item", item_key)
    return {"status": "deleted"}


# ---------------------------------------------------------------------------
# inventory
# ---------------------------------------------------------------------------


def blank_zone_match(zone: str):
    """SQL twin of ``layout.resolve_zone`` for locations stored without a zone."""
    loc_id = models.Location.loc_id
    logistics = loc_id.startswith(settings.LOGISTICS_ZONE, autoescape=True)
    if zone == settings.LOGISTICS_ZONE:
        return logistics
    return and_(
        not_(logistics),
        or_(loc_id == zone, loc_id.startswith(f"{zone}-", autoescape=True)),
    )


def inventory_query(query: str | None, zones: str | None, team: str | None) -> Select:
    stmt = (
        select(models.Inventory, models.Item, models.Location)
        .join(models.Item, models.Item.item_key == models.Inventory.item_key)
        .join(models.Location, models.Location.loc_id == models.Inventory.location_code)
        .order_by(models.Inventory.location_code, models.Inventory.item_key, models.Inventory.lot_no)
    )
    if query and query.strip():
        pattern = f"%{query.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(models.Inventory.location_code).like(pattern),
                func.lower(models.Item.item_name).like(pattern),
                func.lower(models.Inventory.item_key).like(pattern),
            )
        )

    zone_list = [z.strip() for z in (zones or "").split(",") if z.strip()]
    zone_col = func.coalesce(models.Location.zone, "")
    if zone_list:
        stmt = stmt.where(
            or_(
                models.Location.zone.in_(zone_list),
                and_(func.trim(zone_col) == "", or_(*[blank_zone_match(z) for z in zone_list])),
            )
        )
    elif team and team != layout.TEAM_ALL:
        logistics = or_(
            zone_col.contains(settings.LOGISTICS_ZONE),
            models.Location.loc_id.startswith(settings.LOGISTICS_ZONE),
        )
        stmt = stmt.where(logistics if team == layout.TEAM_LOGISTICS else not_(logistics))
    return stmt


@app.get("/inventory")
def list_inventory(
    query: str | None = Query(default=None),
    zones: str | None = Query(default=None),
    team: str | None = Query(default=None, pattern="^(ALL|PRODUCTION|LOGISTICS)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    meta, rows = paginate(db, inventory_query(query, zones, team), page, page_size)
    return {**meta, "rows": [inventory_dict(inv, item, loc) for inv, item, loc in rows]}


@app.get("/inventory/export")
def export_inventory(
    query: str | None = Query(default=None),
    zones: str | None = Query(default=None),
    team: str | None = Query(default=None, pattern="^(ALL|PRODUCTION|LOGISTICS)$"),
    db: Session = Depends(get_db),
):
    wb = Workbook()
    ws = wb.active
    ws.title = "Inventory"
    ws.append([label for _, label in EXPORT_COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)

    stmt = inventory_query(query, zones, team).execution_options(yield_per=1000)
    count = 0
    for inv, item, loc in db.execute(stmt):
        row = inventory_dict(inv, item, loc)
        ws.append([row[key] for key, _ in EXPORT_COLUMNS])
        count += 1

    buffer = BytesIO()
    wb.save(buffer)
    logger.info("inventory export: %d rows", count)
    filename = f"inventory_{datetime.now():%Y%m%d_%H%M%S}.xlsx"
    return Response(
        content=buffer.getvalue(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/inventory/direct-inbound")
def direct_inbound(payload: schemas.DirectInbound, db: Session = Depends(get_db)):
    location_code = normalize_code(payload.location_code)
    get_location_or_404(db, location_code)
    item = get_item_or_404(db, payload.item_key)
    if item.active_flag != "Y":
        raise HTTPException(400, f"item {item.item_key} is inactive")
    lot_no = receipt_lot(item, payload.lot_no)

    with tx(db):
        inv = receive_stock(db, location_code, item.item_key, lot_no, payload.quantity, payload.exp_date)
        record_tx(db, TX_DIRECT_IN, "IN", location_code, item.item_key, lot_no, payload.quantity, "Direct inbound")
    db.commit()
    logger.info("direct inbound %s x%d -> %s (lot %s)", item.item_key, payload.quantity, location_code, lot_no)
    add_operation_log(
        "inventory",
        "direct_inbound",
        "inventory",
        inv.id,
        f"item={item.item_key},qty={payload.quantity},location={location_code}",
    )
    return {"status": "ok", "inventory_id": inv.id, "quantity": inv.quantity}


@app.post("/inventory/outbound")
def register_outbound(payload: schemas.OutboundCreate, db: Session = Depends(get_db)):
    location_code = normalize_code(payload.location_code)
    lot_no = payload.lot_no or settings.DEFAULT_LOT_NO
    inv = find_stock(db, location_code, payload.item_key, lot_no)
    if not inv:
        raise HTTPException(404, "stock not found for location/item/lot")
    before_qty = inv.quantity
    if before_qty - payload.quantity < 0:
        raise HTTPException(400, f"insufficient stock: {before_qty} on hand")

    with tx(db):
        # An emptied row stays at zero rather than being deleted.
        inv.quantity = before_qty - payload.quantity
        inv.updated_at = datetime.now()
        record_tx(
            db,
            TX_OUTBOUND,
            "OUT",
            location_code,
            payload.item_key,
            lot_no,
            -payload.quantity,
            payload.remark or "Outbound registration",
        )
    db.commit()
    logger.info("outbound %s x%d <- %s (lot %s)", payload.item_key, payload.quantity, location_code, lot_no)
    add_operation_log(
        "inventory",
        "outbound",
        "inventory",
        inv.id,
        f"item={payload.item_key},qty={payload.quantity},location={location_code}",
        before_value={"quantity": before_qty},
        after_value={"quantity": inv.quantity},
    )
    return {"status": "ok", "inventory_id": inv.id, "quantity": inv.quantity}


@app.post("/inventory/move")
def move_inventory(payload: schemas.InventoryMove, db: Session = Depends(get_db)):
    if payload.inventory_id:
        source = db.get(models.Inventory, payload.inventory_id)
    else:
        if not payload.source_location or not payload.item_key:
            raise HTTPException(400, "inventory_id or source_location + item_key is required")
        source = find_stock(
            db,
            normalize_code(payload.source_location),
            payload.item_key,
            payload.lot_no or settings.DEFAULT_LOT_NO,
        )
    if not source:
        raise HTTPException(404, "source stock not found")

    source_code = source.location_code
    item_key = source.item_key
    lot_no = source.lot_no
    target_code = normalize_code(payload.target_location)
    qty = payload.quantity
    if target_code == source_code:
        raise HTTPException(400, "target location is the same as the source")
    if qty > source.quantity:
        raise HTTPException(400, f"cannot move more than the {source.quantity} on hand")

    with tx(db):
        target = find_stock(db, target_code, item_key, lot_no)
        if not target:
            get_location_or_404(db, target_code)

        remaining = source.quantity - qty
        exp_date = source.exp_date
        if remaining == 0:
            db.delete(source)
        else:
            source.quantity = remaining
            source.updated_at = datetime.now()
        db.flush()

        if target:
            target.quantity += qty
            target.updated_at = datetime.now()
        else:
            receive_stock(db, target_code, item_key, lot_no, qty, exp_date)

        record_tx(db, TX_MOVE, "OUT", source_code, item_key, lot_no, -qty, f"Move out (to {target_code})")
        record_tx(db, TX_MOVE, "IN", target_code, item_key, lot_no, qty, f"Move in (from {source_code})")
    db.commit()
    logger.info("move %s x%d %s -> %s (lot %s)", item_key, qty, source_code, target_code, lot_no)
    add_operation_log(
        "inventory",
        "move",
        "inventory",
        item_key,
        f"{source_code}->{target_code},qty={qty},lot={lot_no}",
    )
    return {"status": "ok", "source_remaining": remaining, "target_location": target_code}


@app.post("/inventory/adjust")
def adjust_inventory(payload: schemas.InventoryAdjust, db: Session = Depends(get_db)):
    if payload.delta == 0:
        raise HTTPException(400, "delta must not be zero")
    location_code = normalize_code(payload.location_code)
    lot_no = payload.lot_no or settings.DEFAULT_LOT_NO
    get_item_or_404(db, payload.item_key)

    with tx(db):
        inv = find_stock(db, location_code, payload.item_key, lot_no)
        before_qty = inv.quantity if inv else 0
        if before_qty + payload.delta < 0:
            raise HTTPException(400, "inventory cannot be negative")
        if inv:
            inv.quantity += payload.delta
            inv.updated_at = datetime.now()
        else:
            inv = receive_stock(db, location_code, payload.item_key, lot_no, payload.delta)
        record_tx(
            db,
            TX_ADJUST,
            "IN" if payload.delta > 0 else "OUT",
            location_code,
            payload.item_key,
            lot_no,
            payload.delta,
            f"Adjust: {payload.reason}",
        )
    db.commit()
    logger.info("adjust %s %+d at %s (lot %s)", payload.item_key, payload.delta, location_code, lot_no)
    add_operation_log(
        "inventory",
        "adjust",
        "inventory",
        inv.id,
        f"item={payload.item_key},delta={payload.delta},reason={payload.reason}",
        before_value={"quantity": before_qty},
        after_value={"quantity": inv.quantity},
    )
    return {"status": "ok", "inventory_id": inv.id, "quantity": inv.quantity}


@app.put("/inventory/{inventory_id}/status")
def update_inventory_status(inventory_id: int, payload: schemas.InventoryStatusUpdate, db: Session = Depends(get_db)):
    inv = db.get(models.Inventory, inventory_id)
    if not inv:
        raise HTTPException(404, "inventory row not found")
    before = inv.status
    inv.status = payload.status
    inv.updated_at = datetime.now()
    db.commit()
    add_operation_log(
        "inventory",
        "status",
        "inventory",
        inventory_id,
        before_value={"status": before},
        after_value={"status": payload.status},
    )
    return {"id": inventory_id, "status": inv.status}


# ---------------------------------------------------------------------------
# inbound plans
# ---------------------------------------------------------------------------


def inbound_dict(master: models.InboundMaster) -> dict:
    return {
        "inbound_no": master.inbound_no,
        "inbound_type": master.inbound_type,
        "supplier_name": master.supplier_name,
        "plan_date": master.plan_date,
        "status": master.status,
        "remark": master.remark,
        "created_at": master.created_at,
    }


def next_inbound_no(db: Session, plan_date: date) -> str:
    for _ in range(INBOUND_NO_ATTEMPTS):
        candidate = f"IB-{plan_date:%y%m%d}-{1000 + secrets.randbelow(9000)}"
        if not db.get(models.InboundMaster, candidate):
            return candidate
    raise HTTPException(409, "could not allocate an inbound number, retry later")


@app.get("/inbounds")
def list_inbounds(
    status: str | None = Query(default=None, pattern="^(PENDING|PARTIAL|CLOSED)$"),
    db: Session = Depends(get_db),
):
    stmt = select(models.InboundMaster).order_by(models.InboundMaster.created_at.desc(), models.InboundMaster.inbound_no.desc())
    if status:
        stmt = stmt.where(models.InboundMaster.status == status)
    return [inbound_dict(m) for m in db.scalars(stmt)]


@app.post("/inbounds")
def create_inbound(payload: schemas.InboundCreate, db: Session = Depends(get_db)):
    if payload.inbound_type == "OEM_IN":
        supplier = (payload.supplier_name or "").strip()
        if not supplier:
            raise HTTPException(400, "supplier_name is required for OEM_IN")
    else:
        supplier = SUPPLIER_DEFAULTS[payload.inbound_type]

    keys = [line.item_key for line in payload.lines]
    duplicates = sorted({k for k in keys if keys.count(k) > 1})
    if duplicates:
        raise HTTPException(400, f"duplicate items: {', '.join(duplicates)}")
    known = set(db.scalars(select(models.Item.item_key).where(models.Item.item_key.in_(keys))).all())
    missing = [k for k in keys if k not in known]
    if missing:
        raise HTTPException(400, f"unknown items: {', '.join(missing)}")

    plan_date = payload.plan_date or date.today()
    try:
        with tx(db):
            inbound_no = next_inbound_no(db, plan_date)
            master = models.InboundMaster(
                inbound_no=inbound_no,
                inbound_type=payload.inbound_type,
                supplier_name=supplier,
                plan_date=plan_date,
                status="PENDING",
                remark=payload.remark,
            )
            db.add(master)
            db.flush()
            db.add_all(
                [
                    models.InboundDetail(
                        inbound_no=inbound_no,
                        item_key=line.item_key,
                        plan_qty=line.qty,
                        received_qty=0,
                        status="PENDING",
                    )
                    for line in payload.lines
                ]
            )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(400, "inbound number already exists, retry")
    logger.info("inbound plan %s created with %d lines", inbound_no, len(payload.lines))
    add_operation_log("inbound", "create", "inbound_master", inbound_no, f"supplier={supplier},lines={len(payload.lines)}")
    return {"inbound_no": inbound_no}


@app.get("/inbounds/{inbound_no}")
def get_inbound(inbound_no: str, db: Session = Depends(get_db)):
    master = db.get(models.InboundMaster, inbound_no)
    if not master:
        raise HTTPException(404, "inbound plan not found")
    details = []
    for d in master.details:
        progress = min(100, round(d.received_qty / d.plan_qty * 100)) if d.plan_qty else 100
        details.append(
            {
                "id": d.id,
                "item_key": d.item_key,
                "item_name": d.item.item_name,
                "uom": d.item.uom,
                "lot_required": d.item.lot_required,
                "plan_qty": d.plan_qty,
                "received_qty": d.received_qty,
                "remaining_qty": max(0, d.plan_qty - d.received_qty),
                "progress": progress,
                "status": d.status,
            }
        )
    return {**inbound_dict(master), "details": details}


@app.post("/inbounds/{inbound_no}/receive")
def receive_inbound(inbound_no: str, payload: schemas.InboundReceive, db: Session = Depends(get_db)):
    master = db.get(models.InboundMaster, inbound_no)
    if not master:
        raise HTTPException(404, "inbound plan not found")
    detail = db.get(models.InboundDetail, payload.detail_id)
    if not detail or detail.inbound_no != inbound_no:
        raise HTTPException(404, "inbound line not found")
    if detail.status == "COMPLETED":
        raise HTTPException(400, "inbound line is already completed")

    location_code = normalize_code(payload.location_code)
    lot_no = receipt_lot(detail.item, payload.lot_no)
    before_status = master.status

    with tx(db):
        receive_stock(db, location_code, detail.item_key, lot_no, payload.quantity, payload.exp_date)
        detail.received_qty += payload.quantity
        detail.status = "COMPLETED" if detail.received_qty >= detail.plan_qty else "PENDING"
        record_tx(
            db,
            TX_INBOUND,
            "IN",
            location_code,
            detail.item_key,
            lot_no,
            payload.quantity,
            f"Inbound work: {master.supplier_name}",
            ref_doc_no=inbound_no,
        )
        db.flush()
        all_done = all(d.status == "COMPLETED" for d in master.details)
        master.status = "CLOSED" if all_done else "PARTIAL"
    db.commit()
    logger.info("inbound %s line %d received %d at %s", inbound_no, detail.id, payload.quantity, location_code)
    add_operation_log(
        "inbound",
        "receive",
        "inbound_master",
        inbound_no,
        f"detail={detail.id},qty={payload.quantity},location={location_code}",
        before_value={"status": before_status},
        after_value={"status": master.status},
    )
    return {
        "status": master.status,
        "detail_status": detail.status,
        "received_qty": detail.received_qty,
    }


# ---------------------------------------------------------------------------
# transaction history
# ---------------------------------------------------------------------------


@app.get("/transactions")
def list_transactions(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    tx_type: str = Query("ALL"),
    keyword: str | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    stmt = (
        select(models.StockTx, models.Item)
        .outerjoin(models.Item, models.Item.item_key == models.StockTx.item_key)
        .order_by(models.StockTx.transaction_date.desc(), models.StockTx.id.desc())
    )
    if start_date:
        stmt = stmt.where(models.StockTx.transaction_date >= datetime.combine(start_date, time.min))
    if end_date:
        stmt = stmt.where(models.StockTx.transaction_date < datetime.combine(end_date + timedelta(days=1), time.min))
    if tx_type != "ALL":
        if tx_type not in TX_TYPE_FILTERS:
            raise HTTPException(400, f"unknown transaction type {tx_type}")
        stmt = stmt.where(models.StockTx.transaction_type.in_(TX_TYPE_FILTERS[tx_type]))
    if keyword and keyword.strip():
        pattern = f"%{keyword.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(func.coalesce(models.Item.item_name, "")).like(pattern),
                func.lower(models.StockTx.item_key).like(pattern),
                func.lower(models.StockTx.location_code).like(pattern),
                func.lower(models.StockTx.lot_no).like(pattern),
                func.lower(models.StockTx.remark).like(pattern),
            )
        )

    meta, rows = paginate(db, stmt, page, page_size)
    return {
        **meta,
        "rows": [
            {
                "id": t.id,
                "transaction_date": t.transaction_date,
                "transaction_type": t.transaction_type,
                "io_type": t.io_type,
                "location_code": t.location_code,
                "item_key": t.item_key,
                "item_name": item.item_name if item else None,
                "uom": item.uom if item else None,
                "lot_no": t.lot_no,
                "quantity": t.quantity,
                "ref_doc_no": t.ref_doc_no,
                "remark": t.remark,
                "operator": t.operator,
            }
            for t, item in rows
        ],
    }
