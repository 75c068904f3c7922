import pytest


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "marketplace"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_responses_carry_request_id(client):
    response = await client.get("/health", headers={"x-request-id": "req-123"})

    assert response.headers.get("x-request-id") == "req-123"
