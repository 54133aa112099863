from pathlib import Path
import tempfile

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from wms.db import Base
import wms.main as main


@pytest.fixture()
def client_and_db(monkeypatch):
    db_file = Path(tempfile.mkdtemp()) / "test_wms.db"
    engine = create_engine(
        f"sqlite:///{db_file}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    testing_session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    monkeypatch.setattr(main, "SessionLocal", testing_session)

    Base.metadata.create_all(bind=engine)

    with TestClient(main.app) as client:
        yield client, testing_session
    engine.dispose()


@pytest.fixture()
def client(client_and_db):
    return client_and_db[0]


@pytest.fixture()
def stocked(client):
    """Two production locations, one logistics location and two items."""
    for zone, rack, level, side in [("M", "A", "1", "1"), ("M", "A", "2", "1"), ("2F", "A", "1", "1")]:
        resp = client.post("/locations", json={"zone": zone, "rack_no": rack, "level_no": level, "side": side})
        assert resp.status_code == 200
    client.post("/items", json={"item_key": "BOX-01", "item_name": "Slim box", "uom": "EA", "remark": "outer carton"})
    client.post("/items", json={"item_key": "GLUE-01", "item_name": "Hot melt glue", "uom": "KG", "lot_required": "Y"})
    return client
