"""Middleware tests: request ID, CORS, error responses."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/api/v1/rewards/lessons",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_validation_error_shape(client: AsyncClient, user: str) -> None:
    """Malformed bodies return 422 with the field errors."""
    response = await client.post(f"/api/v1/rewards/users/{user}/challenge-progress", json={"increment": 1})
    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Validation error"
    assert data["errors"][0]["loc"][-1] == "challenge_type"


@pytest.mark.asyncio
async def test_user_action_error_shape(client: AsyncClient, user: str) -> None:
    response = await client.post(f"/api/v1/rewards/users/{user}/lessons/missing/complete")
    assert response.status_code == 404
    assert response.json() == {"detail": "Lesson not found: missing", "error": "LessonNotFound"}


@pytest.mark.asyncio
async def test_oversized_request_id_replaced(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "r" * 200})
    assert len(response.headers["x-request-id"]) == 36
