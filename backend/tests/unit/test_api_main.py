"""Tests for the FastAPI application and exception handlers.

Every failure reaches the client as {"error": message, "code": CODE}
with an optional "details" list.
"""

from unittest.mock import patch

import pytest
import structlog
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from masar.core.config import settings
from masar.core.errors import (
    AlreadyVerifiedError,
    ConflictError,
    CsrfError,
    InjectionDetectedError,
    InternalError,
    NotFoundError,
    RateLimitError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from masar.main import create_app


@pytest.fixture
def app():
    """Create test application instance."""
    return create_app()


@pytest.fixture
async def client(app):
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    async def test_health_returns_healthy_status(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAPIVersioning:
    """Tests for API versioning."""

    async def test_v1_router_mounted(self, client):
        """GET on an unknown v1 path is a plain 404 (GET is CSRF-exempt)."""
        response = await client.get("/api/v1/nonexistent")
        assert response.status_code == 404


# =============================================================================
# Exception handlers
# =============================================================================


@pytest.mark.parametrize(
    ("exc", "status", "code"),
    [
        (ValidationError("Invalid input"), 400, "VALIDATION_ERROR"),
        (AlreadyVerifiedError(), 400, "EMAIL_ALREADY_VERIFIED"),
        (UnauthorizedError(), 401, "UNAUTHORIZED"),
        (CsrfError(), 403, "CSRF_FAILED"),
        (NotFoundError("User"), 404, "NOT_FOUND"),
        (ConflictError("EMAIL_IN_USE", "Email already in use"), 409, "EMAIL_IN_USE"),
        (RateLimitError(), 429, "RATE_LIMITED"),
        (TransportError(), 500, "EMAIL_DELIVERY_FAILED"),
        (InternalError(), 500, "INTERNAL_ERROR"),
    ],
)
async def test_api_error_maps_to_status_and_code(app, client, exc, status, code):
    @app.get("/test/raise")
    async def raise_error():
        raise exc

    response = await client.get("/test/raise")

    assert response.status_code == status
    assert response.json() == {"error": exc.message, "code": code}


class TestExceptionHandlers:
    """Envelope details for specific errors."""

    async def test_details_included_when_present(self, app, client):
        @app.get("/test/injection")
        async def raise_injection():
            raise InjectionDetectedError("skills[0].name")

        response = await client.get("/test/injection")

        assert response.status_code == 400
        assert response.json() == {
            "error": "Potential SQL injection detected in field: skills[0].name",
            "code": "INJECTION_DETECTED",
            "details": [{"field": "skills[0].name"}],
        }

    async def test_error_response_has_no_data_key(self, app, client):
        @app.get("/test/envelope-check")
        async def raise_error():
            raise NotFoundError("Item")

        response = await client.get("/test/envelope-check")

        assert "data" not in response.json()

    async def test_rate_limit_error_sets_retry_after(self, app, client):
        @app.get("/test/locked")
        async def raise_locked():
            raise RateLimitError("Slow down", retry_after_seconds=600)

        response = await client.get("/test/locked")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "600"

    async def test_rate_limit_error_without_hint_has_no_retry_after(self, app, client):
        @app.get("/test/locked")
        async def raise_locked():
            raise RateLimitError()

        response = await client.get("/test/locked")

        assert "retry-after" not in response.headers

    async def test_csrf_error_expires_cookie(self, app, client):
        @app.get("/test/csrf")
        async def raise_csrf():
            raise CsrfError()

        response = await client.get("/test/csrf")

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith(f"{settings.csrf_cookie_name}=")
        assert "Max-Age=0" in set_cookie

    async def test_unhandled_exception_returns_generic_500(self, app, client):
        @app.get("/test/boom")
        async def boom():
            raise RuntimeError("connection to prod-db-01 refused")

        with structlog.testing.capture_logs() as logs:
            response = await client.get("/test/boom")

        assert response.status_code == 500
        assert response.json() == {
            "error": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
        assert "prod-db-01" not in response.text
        assert any(log["event"] == "unhandled_exception" for log in logs)


class TestRequestValidation:
    """Tests for FastAPI request validation errors."""

    async def test_returns_400_without_echoing_input(self, app, client):
        class Body(BaseModel):
            count: int

        @app.post("/test/body")
        async def take_body(body: Body):
            return body

        response = await client.post("/test/body", json={"count": "secret-value"})

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Request validation failed"
        assert data["code"] == "VALIDATION_ERROR"
        assert set(data["details"][0]) == {"loc", "msg", "type"}
        assert data["details"][0]["loc"] == ["body", "count"]
        assert "secret-value" not in response.text


# =============================================================================
# Middleware
# =============================================================================


class TestCORSMiddleware:
    """Tests for CORS middleware configuration."""

    async def test_preflight_allows_csrf_header(self, client):
        response = await client.options(
            "/api/v1/auth/send-otp",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": settings.csrf_header_name,
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
        assert response.headers["access-control-allow-credentials"] == "true"

    async def test_csrf_header_exposed(self, client):
        response = await client.get("/health", headers={"Origin": "http://localhost:3000"})

        exposed = response.headers.get("access-control-expose-headers", "")
        assert settings.csrf_header_name.lower() in exposed.lower()

    async def test_cors_denies_unconfigured_origin(self):
        with patch("masar.main.settings.allowed_origins", ["http://allowed-origin.com"]):
            test_app = create_app()
            transport = ASGITransport(app=test_app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await ac.options(
                    "/health",
                    headers={
                        "Origin": "http://malicious-site.com",
                        "Access-Control-Request-Method": "GET",
                    },
                )

        assert response.headers.get("access-control-allow-origin") != "http://malicious-site.com"


class TestSecurityHeadersMiddleware:
    """Tests for security headers middleware."""

    async def test_baseline_headers(self, client):
        response = await client.get("/health")

        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"
        csp = response.headers["content-security-policy"]
        assert "default-src 'none'" in csp
        assert "frame-ancestors 'none'" in csp

    async def test_cache_control_on_api_endpoints(self, client):
        response = await client.get("/api/v1/csrf")
        assert "no-store" in response.headers.get("cache-control", "")

    async def test_cache_control_not_on_health(self, client):
        response = await client.get("/health")
        assert "no-store" not in response.headers.get("cache-control", "")

    async def test_hsts_header_not_in_development(self, client):
        response = await client.get("/health")
        assert response.headers.get("strict-transport-security") is None

    async def test_hsts_header_in_production(self, client, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")

        response = await client.get("/health")

        hsts = response.headers["strict-transport-security"]
        assert "max-age=31536000" in hsts
        assert "includeSubDomains" in hsts
