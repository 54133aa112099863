from wms.config import Settings


def test_cors_origins_accepts_comma_separated_env(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")
    assert Settings(_env_file=None).CORS_ORIGINS == ["http://a.example", "http://b.example"]


def test_cors_origins_accepts_json_env(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", '["http://a.example"]')
    assert Settings(_env_file=None).CORS_ORIGINS == ["http://a.example"]


def test_cors_origins_default(monkeypatch):
    monkeypatch.delenv("CORS_ORIGINS", raising=False)
    assert Settings(_env_file=None).CORS_ORIGINS == ["*"]
