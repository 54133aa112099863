def _create(client, zone, rack, level, side="1"):
    return client.post("/locations", json={"zone": zone, "rack_no": rack, "level_no": level, "side": side})


def test_create_location_builds_code(client):
    resp = _create(client, "m", "a", "1", "2")
    assert resp.status_code == 200
    body = resp.json()
    assert body["loc_id"] == "MA12"
    assert body["zone"] == "M"
    assert body["warehouse"] == "WH01"

    assert _create(client, "M", "A", "1", "2").status_code == 400


def test_bulk_create_covers_rack_range_and_both_sides(client):
    resp = client.post("/locations/bulk", json={"zone": "2F", "start_rack": "a", "end_rack": "C", "level_no": "3"})
    assert resp.status_code == 200
    assert resp.json()["created"] == ["2FA31", "2FA32", "2FB31", "2FB32", "2FC31", "2FC32"]

    # overlapping range writes nothing
    resp = client.post("/locations/bulk", json={"zone": "2F", "start_rack": "C", "end_rack": "D", "level_no": "3"})
    assert resp.status_code == 400
    assert "2FC31" in resp.json()["detail"]
    assert len(client.get("/locations").json()) == 6

    assert client.post("/locations/bulk", json={"zone": "2F", "start_rack": "D", "end_rack": "B", "level_no": "1"}).status_code == 400


def test_toggle_hides_location_from_active_lists(client):
    _create(client, "M", "A", "1")
    _create(client, "M", "B", "1")

    resp = client.post("/locations/MA11/toggle")
    assert resp.json() == {"loc_id": "MA11", "active_flag": "N"}
    assert [loc["loc_id"] for loc in client.get("/locations").json()] == ["MB11"]
    assert len(client.get("/locations", params={"include_inactive": 1}).json()) == 2
    assert client.get("/locations/search", params={"q": "ma"}).json() == []

    assert client.post("/locations/MA11/toggle").json()["active_flag"] == "Y"
    assert client.post("/locations/NOPE/toggle").status_code == 404


def test_zones_master_and_search(stocked):
    client = stocked
    _create(client, "H", "A", "1")

    assert client.get("/locations/zones").json() == {"production": ["H", "M"], "logistics": ["2F"]}

    master = client.get("/locations/master").json()
    assert master["zones"] == ["H", "M"]
    assert master["current_zone"] == "H"
    assert [loc["loc_id"] for loc in master["locations"]] == ["HA11"]

    master = client.get("/locations/master", params={"team": "LOGISTICS", "zone": "X"}).json()
    assert master["current_zone"] == "2F"

    found = client.get("/locations/search", params={"q": "a1"}).json()
    assert {loc["loc_id"] for loc in found} == {"MA11", "2FA11", "HA11"}


def test_location_detail_lists_stock(stocked):
    client = stocked
    client.post("/inventory/direct-inbound", json={"location_code": "MA11", "item_key": "BOX-01", "quantity": 2})
    detail = client.get("/locations/MA11").json()
    assert detail["zone"] == "M"
    assert [(r["item_key"], r["quantity"]) for r in detail["inventory"]] == [("BOX-01", 2)]
    assert client.get("/locations/NOPE").status_code == 404


def test_map_overview(stocked):
    client = stocked
    client.post("/locations/bulk", json={"zone": "2F", "start_rack": "A", "end_rack": "B", "level_no": "2"})
    client.post("/inventory/direct-inbound", json={"location_code": "2FA11", "item_key": "BOX-01", "quantity": 1})
    client.post("/inventory/direct-inbound", json={"location_code": "MA11", "item_key": "BOX-01", "quantity": 1})

    overview = client.get("/locations/map").json()
    cards = {c["rack"]: c for c in overview["logistics"]}
    assert set(cards) == {"A", "B"}
    assert cards["A"]["total_cells"] == 3
    assert cards["A"]["used_cells"] == 1
    assert cards["A"]["occupancy_rate"] == 33
    assert cards["B"]["load"] == "LOW"

    tiles = {t["rack"]: t for t in overview["production"]}
    assert tiles["M"] == {"rack": "M", "active": True, "has_stock": True}
    assert tiles["A"]["active"] is False


def test_rack_detail_and_selector(stocked):
    client = stocked
    client.post("/inventory/direct-inbound", json={"location_code": "MA21", "item_key": "BOX-01", "quantity": 5})

    rack = client.get("/locations/racks/m").json()
    assert rack["rack_type"] == "SINGLE"
    assert rack["levels"] == [2, 1]
    top = rack["grid"]["1"][0]
    assert top["level"] == 2
    assert top["cells"][0]["loc_id"] == "MA21"
    assert top["cells"][0]["quantity"] == 5
    assert top["cells"][0]["items"] == ["Slim box"]

    assert client.get("/locations/racks/Q").status_code == 404
    assert client.get("/locations/racks/A", params={"team": "LOGISTICS"}).json()["total_cells"] == 1

    picker = client.get("/locations/selector", params={"zone": "M", "rack": "A"}).json()
    assert picker["zones"] == ["M"]
    assert picker["racks"] == ["A"]
    assert picker["sides"] == ["1"]
    assert [(c["loc_id"], c["quantity"]) for c in picker["cells"]] == [("MA11", 0), ("MA21", 5)]
