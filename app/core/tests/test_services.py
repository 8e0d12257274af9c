"""
Tests for core service layer primitives and infrastructure views.

Tests cover:
- ServiceResult construction and API response format
- BaseService logger naming and transactions
- BaseApplicationError formatting
- Health check endpoint
"""

from unittest.mock import patch

import pytest
from django.contrib.auth.models import User
from django.test import RequestFactory

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult
from core.views import health_check


class ExampleService(BaseService):
    pass


# =============================================================================
# ServiceResult Tests
# =============================================================================


class TestServiceResult:
    """Tests for ServiceResult."""

    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result.success is True
        assert result.data == {"id": 1}
        assert result.error is None
        assert bool(result) is True

    def test_failure(self):
        result = ServiceResult.failure("Not found", error_code="NOT_FOUND")

        assert result.success is False
        assert result.data is None
        assert result.error_code == "NOT_FOUND"
        assert bool(result) is False

    def test_success_response(self):
        assert ServiceResult.success("ok").to_response() == {
            "success": True,
            "data": "ok",
        }

    def test_failure_response(self):
        result = ServiceResult.failure(
            "Validation failed",
            error_code="VALIDATION_ERROR",
            errors={"quantity": ["Too large"]},
        )

        assert result.to_response() == {
            "success": False,
            "error": "Validation failed",
            "error_code": "VALIDATION_ERROR",
            "errors": {"quantity": ["Too large"]},
        }

    def test_failure_response_without_code(self):
        assert ServiceResult.failure("Oops").to_response() == {
            "success": False,
            "error": "Oops",
        }


# =============================================================================
# BaseService Tests
# =============================================================================


class TestBaseService:
    """Tests for BaseService helpers."""

    def test_logger_named_after_service(self):
        logger = ExampleService.get_logger()

        assert logger.name == f"{__name__}.ExampleService"

    @pytest.mark.django_db
    def test_atomic_rolls_back_on_error(self):
        with pytest.raises(RuntimeError):
            with ExampleService.atomic():
                User.objects.create(username="rolled_back")
                raise RuntimeError("abort")

        assert not User.objects.filter(username="rolled_back").exists()


# =============================================================================
# BaseApplicationError Tests
# =============================================================================


class TestBaseApplicationError:
    """Tests for BaseApplicationError."""

    def test_default_error_code(self):
        error = BaseApplicationError("Something failed")

        assert error.error_code == BaseApplicationError.default_error_code
        assert str(error) == f"[{error.error_code}] Something failed"

    def test_to_dict(self):
        error = BaseApplicationError(
            "Checkout could not be started",
            error_code="CHECKOUT_FAILED",
            details={"price_id": "price_123"},
        )

        assert error.to_dict() == {
            "error": "Checkout could not be started",
            "error_code": "CHECKOUT_FAILED",
            "details": {"price_id": "price_123"},
        }


# =============================================================================
# Health Check Tests
# =============================================================================


class TestHealthCheck:
    """Tests for the /health/ endpoint."""

    @pytest.mark.django_db
    def test_healthy(self):
        response = health_check(RequestFactory().get("/health/"))

        assert response.status_code == 200
        assert b'"database": "connected"' in response.content

    @pytest.mark.django_db
    def test_database_unreachable(self):
        with patch("core.views.connection.cursor", side_effect=Exception("down")):
            response = health_check(RequestFactory().get("/health/"))

        assert response.status_code == 503
        assert b'"status": "unhealthy"' in response.content

    @pytest.mark.django_db
    def test_reports_configured_stripe(self):
        response = health_check(RequestFactory().get("/health/"))

        assert b'"stripe": "configured"' in response.content

    @pytest.mark.django_db
    def test_missing_stripe_credentials_stays_healthy(self, settings):
        settings.STRIPE_WEBHOOK_SECRET = ""

        response = health_check(RequestFactory().get("/health/"))

        assert response.status_code == 200
        assert b'"stripe": "unconfigured"' in response.content
