def test_item_crud_and_listing(client):
    resp = client.post(
        "/items",
        json={"item_key": "TAPE-01", "item_name": "Packing tape", "uom": "RL", "barcode": "8801234", "unit_cost": 1.5},
    )
    assert resp.status_code == 200
    assert resp.json()["active_flag"] == "Y"
    assert client.post("/items", json={"item_key": "TAPE-01", "item_name": "dup"}).status_code == 400
    assert client.post("/items", json={"item_key": "X", "item_name": "bad", "lot_required": "maybe"}).status_code == 422

    resp = client.put("/items/TAPE-01", json={"item_name": "Clear packing tape", "shelf_life_days": 365})
    assert resp.json()["item_name"] == "Clear packing tape"
    assert resp.json()["shelf_life_days"] == 365
    assert client.put("/items/TAPE-01", json={}).status_code == 400
    assert client.put("/items/NOPE", json={"item_name": "x"}).status_code == 404

    assert client.get("/items/TAPE-01").json()["barcode"] == "8801234"
    assert client.get("/items/NOPE").status_code == 404


def test_multi_term_search(stocked):
    client = stocked
    client.post("/items", json={"item_key": "BOX-02", "item_name": "Slim box large", "barcode": "990011"})

    def names(q):
        return [i["item_key"] for i in client.get("/items/search", params={"q": q}).json()]

    assert names("slim box") == ["BOX-01", "BOX-02"]
    assert names("box large") == ["BOX-02"]
    assert names("carton") == ["BOX-01"]
    assert names("990011") == ["BOX-02"]
    assert names("glue slim") == []

    assert [i["item_key"] for i in client.get("/items", params={"q": "GLUE"}).json()] == ["GLUE-01"]


def test_delete_is_soft_when_item_is_in_use(stocked):
    client = stocked
    client.post("/inventory/direct-inbound", json={"location_code": "MA11", "item_key": "BOX-01", "quantity": 1})

    resp = client.delete("/items/BOX-01", params={"force": 1})
    assert resp.json() == {"status": "soft_deleted", "reason": "inventory exists"}
    assert [i["item_key"] for i in client.get("/items").json()] == ["GLUE-01"]
    assert len(client.get("/items", params={"include_inactive": 1}).json()) == 2
    assert client.get("/items/search", params={"q": "slim"}).json() == []

    assert client.delete("/items/GLUE-01").json()["reason"] == "soft delete by default"
    client.put("/items/GLUE-01", json={"active_flag": "Y"})
    assert client.delete("/items/GLUE-01", params={"force": 1}).json() == {"status": "deleted"}
    assert client.get("/items/GLUE-01").status_code == 404


def test_update_can_clear_optional_fields(client):
    client.post("/items", json={"item_key": "TAPE-01", "item_name": "Packing tape", "barcode": "8801234", "remark": "clear"})

    resp = client.put("/items/TAPE-01", json={"barcode": None, "remark": None})
    assert resp.status_code == 200
    assert resp.json()["barcode"] is None
    assert resp.json()["remark"] is None
    assert resp.json()["item_name"] == "Packing tape"

    assert client.put("/items/TAPE-01", json={"item_name": None}).status_code == 400
    assert client.get("/items/TAPE-01").json()["item_name"] == "Packing tape"
