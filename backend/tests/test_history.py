from datetime import date, datetime, timedelta

from sqlalchemy import update

from wms import models


def _seed_history(client):
    client.post("/inventory/direct-inbound", json={"location_code": "MA11", "item_key": "BOX-01", "quantity": 10})
    client.post("/inventory/outbound", json={"location_code": "MA11", "item_key": "BOX-01", "quantity": 2, "remark": "to line 3"})
    client.post("/inventory/move", json={"source_location": "MA11", "item_key": "BOX-01", "target_location": "MA21", "quantity": 3})
    client.post("/inventory/adjust", json={"location_code": "MA21", "item_key": "BOX-01", "delta": -1, "reason": "damage"})
    no = client.post("/inbounds", json={"inbound_type": "MAT_IN", "lines": [{"item_key": "BOX-01", "qty": 1}]}).json()["inbound_no"]
    detail_id = client.get(f"/inbounds/{no}").json()["details"][0]["id"]
    client.post(f"/inbounds/{no}/receive", json={"detail_id": detail_id, "location_code": "MA11", "quantity": 1})


def _types(client, **params):
    return [r["transaction_type"] for r in client.get("/transactions", params=params).json()["rows"]]


def test_history_newest_first_and_type_filter(stocked):
    client = stocked
    _seed_history(client)

    assert _types(client) == ["INBOUND", "ADJUST", "MOVE", "MOVE", "OUTBOUND", "DIRECT_IN"]
    assert _types(client, tx_type="INBOUND") == ["INBOUND", "DIRECT_IN"]
    assert _types(client, tx_type="MOVE") == ["MOVE", "MOVE"]
    assert client.get("/transactions", params={"tx_type": "BOGUS"}).status_code == 400

    rows = client.get("/transactions", params={"tx_type": "ADJUST"}).json()["rows"]
    assert rows[0]["quantity"] == -1
    assert rows[0]["io_type"] == "OUT"
    assert rows[0]["item_name"] == "Slim box"


def test_history_keyword_and_paging(stocked):
    client = stocked
    _seed_history(client)

    assert _types(client, keyword="line 3") == ["OUTBOUND"]
    assert _types(client, keyword="ma21") == ["ADJUST", "MOVE", "MOVE"]
    assert len(_types(client, keyword="slim")) == 6

    page = client.get("/transactions", params={"page": 2, "page_size": 4}).json()
    assert page["total"] == 6
    assert page["total_pages"] == 2
    assert len(page["rows"]) == 2


def test_history_date_range_is_inclusive(client_and_db, stocked):
    client, session_factory = client_and_db
    _seed_history(client)
    last_week = datetime.now() - timedelta(days=7)
    with session_factory() as db:
        db.execute(
            update(models.StockTx)
            .where(models.StockTx.transaction_type == "DIRECT_IN")
            .values(transaction_date=last_week)
        )
        db.commit()

    today = date.today().isoformat()
    assert "DIRECT_IN" not in _types(client, start_date=today, end_date=today)
    assert len(_types(client, start_date=today, end_date=today)) == 5
    assert _types(client, end_date=(date.today() - timedelta(days=1)).isoformat()) == ["DIRECT_IN"]
    assert len(_types(client, start_date=last_week.date().isoformat())) == 6
