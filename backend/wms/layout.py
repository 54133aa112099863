"""Location map helpers.

Everything here works on plain cell dicts built from ``loc_master`` rows::

    {"loc_id": "MA11", "zone": "M", "rack_no": "A", "level_no": "1",
     "side": "1", "active_flag": "Y", "quantity": 12, "items": ["Slim box"]}

and never touches the database, so map screens and the location picker share
one set of grouping rules.
"""

from string import ascii_uppercase

from .config import settings

TEAM_ALL = "ALL"
TEAM_PRODUCTION = "PRODUCTION"
TEAM_LOGISTICS = "LOGISTICS"

# Production floor tiles, left block top to bottom then right block.
PRODUCTION_RACKS = ["S", "R", "Q", "P", "O", "N", "M", "L", "K", "J", "I", "H", "G", "F", "E", "D", "C", "B", "A"]
LOGISTICS_RACKS = ["A", "B", "C", "D", "E", "F"]

UNASSIGNED_ZONE = "ETC"


def resolve_zone(loc_id: str, zone: str | None) -> str:
    if zone and zone.strip():
        return zone
    if loc_id.startswith(settings.LOGISTICS_ZONE):
        return settings.LOGISTICS_ZONE
    return loc_id.split("-")[0]


def is_logistics(zone: str | None, loc_id: str = "") -> bool:
    logistics = settings.LOGISTICS_ZONE
    return bool(zone and logistics in zone) or loc_id.startswith(logistics)


def in_team(cell: dict, team: str | None) -> bool:
    if not team or team == TEAM_ALL:
        return True
    logistics = is_logistics(cell.get("zone"), cell["loc_id"])
    return logistics if team == TEAM_LOGISTICS else not logistics


def split_zones(zones) -> dict:
    unique = sorted({z for z in zones if z})
    return {
        "production": [z for z in unique if not is_logistics(z)],
        "logistics": [z for z in unique if is_logistics(z)],
    }


def build_location_code(zone: str, rack: str, level: str, side: str) -> str:
    return f"{zone}{rack}{level}{side}".upper()


def char_range(start: str, end: str | None = None) -> list[str]:
    """Inclusive letter span, ``char_range("A", "C") == ["A", "B", "C"]``."""
    first = start.strip().upper()
    last = (end or start).strip().upper()
    if first not in ascii_uppercase or last not in ascii_uppercase:
        raise ValueError("rack range must be single letters A-Z")
    if ord(last) < ord(first):
        raise ValueError("end rack comes before start rack")
    return [chr(code) for code in range(ord(first), ord(last) + 1)]


def level_number(level_no) -> int:
    try:
        return int(level_no)
    except (TypeError, ValueError):
        return 0


def load_band(occupancy_rate: int) -> str:
    if occupancy_rate > 80:
        return "HIGH"
    if occupancy_rate > 50:
        return "MEDIUM"
    return "LOW"


def rack_stats(rack: str, cells: list[dict]) -> dict:
    total = len(cells)
    used = sum(1 for c in cells if c.get("quantity", 0) > 0)
    rate = 0 if total == 0 else round(used / total * 100)
    return {
        "rack": rack,
        "total_cells": total,
        "used_cells": used,
        "occupancy_rate": rate,
        "load": load_band(rate),
    }


def rack_type(sides) -> str:
    sides = set(sides)
    numeric = [int(s) for s in sides if str(s).isdigit()]
    if numeric and max(numeric) > 2:
        return "DEEP"
    if len(sides) == 1:
        return "SINGLE"
    return "DOUBLE"


def rack_cells(cells: list[dict], rack: str, team: str) -> list[dict]:
    """Cells drawn inside one rack tile.

    Logistics racks are the ``rack_no`` column inside the logistics zone;
    on the production floor each zone letter is its own rack.
    """
    if team == TEAM_LOGISTICS:
        return [c for c in cells if c["zone"] == settings.LOGISTICS_ZONE and c["rack_no"] == rack]
    return [c for c in cells if c["zone"] == rack]


def rack_grid(rack: str, cells: list[dict]) -> dict:
    columns = sorted({c["rack_no"] for c in cells if c.get("rack_no")})
    levels = sorted({level_number(c["level_no"]) for c in cells}, reverse=True)
    sides = sorted({c["side"] for c in cells if c.get("side")})
    kind = rack_type(sides)

    by_position = {}
    for c in cells:
        by_position.setdefault((c["rack_no"], level_number(c["level_no"]), c["side"]), c)
    grid = {}
    for side in sides:
        suffix = ("-F" if side == "1" else "-B") if kind == "DOUBLE" else ""
        rows = []
        for lvl in levels:
            row = []
            for col in columns:
                cell = by_position.get((col, lvl, side))
                if cell:
                    row.append({**cell, "exists": True})
                else:
                    row.append(
                        {
                            "exists": False,
                            "rack_no": col,
                            "level_no": str(lvl),
                            "side": side,
                            "suggested_code": f"{rack}{col}{lvl}{suffix}",
                        }
                    )
            rows.append({"level": lvl, "cells": row})
        grid[side] = rows

    return {
        "rack": rack,
        "rack_type": kind,
        "columns": columns,
        "levels": levels,
        "sides": sides,
        "total_cells": len(cells),
        "grid": grid,
    }


def production_tiles(cells: list[dict]) -> list[dict]:
    production = [c for c in cells if not is_logistics(c["zone"], c["loc_id"])]
    active = {c["zone"] for c in production}
    stocked = {c["zone"] for c in production if c.get("quantity", 0) > 0}
    return [{"rack": r, "active": r in active, "has_stock": r in stocked} for r in PRODUCTION_RACKS]


def logistics_cards(cells: list[dict]) -> list[dict]:
    cards = []
    for rack in LOGISTICS_RACKS:
        stats = rack_stats(rack, rack_cells(cells, rack, TEAM_LOGISTICS))
        if stats["total_cells"]:
            cards.append(stats)
    return cards


def cascade(
    cells: list[dict],
    team: str = TEAM_PRODUCTION,
    zone: str | None = None,
    rack: str | None = None,
    side: str | None = None,
) -> dict:
    tab = [c for c in cells if in_team(c, team)]
    zones = sorted({c["zone"] or UNASSIGNED_ZONE for c in tab})

    zone_cells = [c for c in tab if not zone or (c["zone"] or UNASSIGNED_ZONE) == zone]
    racks = sorted({c["rack_no"] for c in zone_cells if c.get("rack_no")})

    rack_filtered = [c for c in zone_cells if not rack or c["rack_no"] == rack]
    sides = sorted({c["side"] for c in rack_filtered if c.get("side")})

    final = [c for c in rack_filtered if not side or c["side"] == side]
    final.sort(key=lambda c: level_number(c["level_no"]))
    return {"zones": zones, "racks": racks, "sides": sides, "cells": final}
