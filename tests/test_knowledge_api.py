"""API tests for staff knowledge base management."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_article_lifecycle(authed_client: AsyncClient):
    created = await authed_client.post("/knowledge", json={"title": "Reset your password", "content": "Use the link."})
    assert created.status_code == 201
    article = created.json()
    assert article["slug"] == "reset-your-password"
    assert article["is_published"] is False

    by_slug = await authed_client.get("/knowledge/slug/reset-your-password")
    assert by_slug.status_code == 200
    assert by_slug.json()["id"] == article["id"]

    updated = await authed_client.patch(f"/knowledge/{article['id']}", json={"title": "Change your password", "is_published": True})
    assert updated.json()["slug"] == "change-your-password"

    published = await authed_client.get("/knowledge", params={"published_only": True})
    assert [a["title"] for a in published.json()] == ["Change your password"]

    deleted = await authed_client.delete(f"/knowledge/{article['id']}")
    assert deleted.status_code == 204
    missing = await authed_client.get(f"/knowledge/{article['id']}")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_unsluggable_title(authed_client: AsyncClient):
    response = await authed_client.post("/knowledge", json={"title": "???", "content": "Nothing"})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "title"
