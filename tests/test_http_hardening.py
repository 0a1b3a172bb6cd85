"""
Security headers, rate limiting, error translation and health reporting
"""

from unittest.mock import patch

from fastapi.testclient import TestClient

from config import Config
from middleware.rate_limiter import RateLimiter, bucket_for_path
from middleware.security_middleware import SecurityConfig, SecurityMiddleware


class TestSecurityHeaders:

    def test_headers_on_every_response(self, client):
        for response in (client.get("/health"), client.get("/payments")):
            assert response.headers["X-Content-Type-Options"] == "nosniff"
            assert response.headers["X-Frame-Options"] == "DENY"
            assert response.headers["Referrer-Policy"] == "no-referrer"
            assert "frame-ancestors 'none'" in response.headers["Content-Security-Policy"]

    def test_hsts_only_when_enabled(self):
        assert "Strict-Transport-Security" not in SecurityMiddleware(SecurityConfig(enable_hsts=False)).generate_security_headers()
        headers = SecurityMiddleware(SecurityConfig(enable_hsts=True)).generate_security_headers()
        assert headers["Strict-Transport-Security"].startswith("max-age=31536000")


class TestRateLimiting:

    def test_sliding_window(self):
        limiter = RateLimiter()
        for offset in range(3):
            assert limiter.is_rate_limited("1.2.3.4", "auth", 3, 60, now=1000.0 + offset) == (False, None)

        limited, retry_after = limiter.is_rate_limited("1.2.3.4", "auth", 3, 60, now=1010.0)
        assert limited
        assert retry_after == 50

        assert limiter.is_rate_limited("5.6.7.8", "auth", 3, 60, now=1010.0) == (False, None)
        assert limiter.is_rate_limited("1.2.3.4", "auth", 3, 60, now=1061.0) == (False, None)

    def test_reset(self):
        limiter = RateLimiter()
        limiter.is_rate_limited("1.2.3.4", "auth", 1, 60, now=1.0)
        limiter.reset("1.2.3.4")
        assert limiter.is_rate_limited("1.2.3.4", "auth", 1, 60, now=2.0) == (False, None)

    def test_idle_clients_are_forgotten(self):
        limiter = RateLimiter(cleanup_interval_seconds=60)
        for index in range(50):
            limiter.is_rate_limited(f"10.0.0.{index}", "general", 5, 60, now=1000.0)
        limiter.is_rate_limited("10.0.1.1", "auth", 5, 60, now=1050.0)
        assert len(limiter._requests) == 51

        limiter.is_rate_limited("10.0.2.2", "general", 5, 60, now=1100.0)

        assert set(limiter._requests) == {("10.0.1.1", "auth"), ("10.0.2.2", "general")}
        assert set(limiter._windows) == set(limiter._requests)

    def test_buckets(self):
        assert bucket_for_path("/session/csrf") == "auth"
        assert bucket_for_path("/accounts") == "auth"
        assert bucket_for_path("/payments/abc/verify") == "payment"
        assert bucket_for_path("/health") == "general"

    def test_over_limit_requests_get_429(self, client, monkeypatch):
        monkeypatch.setattr(Config, "RATE_LIMITING_ENABLED", True)
        monkeypatch.setitem(Config.RATE_LIMITS, "auth", {"max_requests": 2, "window_seconds": 60})

        statuses = [client.get("/session/csrf").status_code for _ in range(3)]
        assert statuses == [200, 200, 429]

        limited = client.get("/session/csrf")
        assert limited.json()["error"]["code"] == "RateLimited"
        assert int(limited.headers["Retry-After"]) >= 1
        assert limited.headers["X-Frame-Options"] == "DENY"


class TestErrorTranslation:

    def test_unexpected_error_becomes_internal_error(self, app, services):
        with patch.object(services.payments, "list_own", side_effect=RuntimeError("store exploded")):
            with TestClient(app) as test_client:
                driver_csrf = test_client.get("/session/csrf")
                assert driver_csrf.status_code == 200
                test_client.post(
                    "/session",
                    json={"username": "employee1", "accountNumber": "90000001", "password": Config.SEED_STAFF_PASSWORD},
                    headers={Config.CSRF_HEADER_NAME: driver_csrf.json()["csrfToken"]},
                )
                response = test_client.get("/payments")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "InternalError"
        assert "store exploded" in response.json()["error"]["message"]

    def test_production_hides_internal_detail(self, app, services, monkeypatch):
        monkeypatch.setattr(Config, "IS_PRODUCTION", True)
        with patch.object(services.payments, "list_own", side_effect=RuntimeError("store exploded")):
            with TestClient(app) as test_client:
                token = test_client.get("/session/csrf").json()["csrfToken"]
                test_client.post(
                    "/session",
                    json={"username": "employee1", "accountNumber": "90000001", "password": Config.SEED_STAFF_PASSWORD},
                    headers={Config.CSRF_HEADER_NAME: token},
                )
                response = test_client.get("/payments")

        assert response.status_code == 500
        assert "store exploded" not in response.text
        assert response.json()["error"]["message"] == "Internal server error"

    def test_malformed_body_is_a_validation_error(self, portal):
        portal.csrf()
        response = portal.client.post(
            "/session",
            content=b"not json",
            headers={**portal.csrf_headers(), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ValidationError"


class TestHealth:

    def test_health_reports_store(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "ok"

    def test_health_degraded_when_store_unreachable(self, client):
        with patch("portal_server.test_connection", return_value=False):
            response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
