import pytest

from core.config import Settings, settings


def test_cors_origins_accept_json_and_csv():
    assert Settings(SECRET_KEY="x", CORS_ORIGINS='["https://a.ng", "https://b.ng"]').CORS_ORIGINS == [
        "https://a.ng", "https://b.ng",
    ]
    assert Settings(SECRET_KEY="x", CORS_ORIGINS="https://a.ng, https://b.ng").CORS_ORIGINS == [
        "https://a.ng", "https://b.ng",
    ]


def test_secret_key_is_required(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
    with pytest.raises(ValueError):
        Settings(_env_file=None)


def test_defaults():
    s = Settings(SECRET_KEY="x", FRONTEND_URL="https://shop.example.com/", _env_file=None)
    assert s.payment_callback_url == "https://shop.example.com/checkout/callback"
    assert s.rate_limit.window_seconds == 900
    assert s.rate_limit.max_requests == 100
    assert s.marketplace.currency == "NGN"
    assert s.marketplace.pending_payment_ttl_minutes == 30
    assert s.BCRYPT_ROUNDS == 12
    assert settings.SECRET_KEY
