"""Health check endpoint."""

from httpx import AsyncClient


async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert "version" in body
