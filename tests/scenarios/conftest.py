"""Shared fixtures for end-to-end scenarios.

Each scenario drives a FastAPI app through httpx's ASGI transport, so
concurrent requests share one event loop with the guard's asyncio locks.
"""

import asyncio

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse

from idempotency_guard.adapters.asgi import IdempotentEndpoint
from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.guard import IdempotencyGuard
from idempotency_guard.newsletter import NewsletterIssue, NewsletterPublisher
from idempotency_guard.storage.memory import MemoryStorageAdapter

ISSUE_PAYLOAD = {
    "title": "Newsletter title",
    "text_content": "Newsletter body as plain text",
    "html_content": "<p>Newsletter body as HTML</p>",
}


class Subscribers:
    def __init__(self, emails: list[str]) -> None:
        self.emails = emails

    async def confirmed_subscribers(self) -> list[str]:
        return list(self.emails)


class MockEmailSender:
    """Records deliveries; can be slowed down or made to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.delay = 0.0
        self.failures_left = 0

    async def send_email(self, recipient, subject, html_content, text_content) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures_left:
            self.failures_left -= 1
            raise ConnectionError("SMTP relay unavailable")
        self.sent.append((recipient, subject))


async def resolve_owner(request: Request) -> str | None:
    return request.headers.get("x-user-id")


@pytest.fixture
def config() -> IdempotencyConfig:
    return IdempotencyConfig(wait_timeout_seconds=2.0, poll_interval_seconds=0.01)


@pytest.fixture
def storage() -> MemoryStorageAdapter:
    return MemoryStorageAdapter(lock_timeout_seconds=2.0)


@pytest.fixture
def email_sender() -> MockEmailSender:
    return MockEmailSender()


@pytest.fixture
def subscribers() -> Subscribers:
    return Subscribers(["ursula@example.com", "le.guin@example.com"])


@pytest.fixture
def app(storage, config, subscribers, email_sender) -> FastAPI:
    guard = IdempotencyGuard(storage, config)
    publisher = NewsletterPublisher(subscribers, email_sender)

    async def publish_newsletter(request: Request):
        issue = NewsletterIssue.model_validate(await request.json())
        return await publisher.publish(issue)

    counter = {"orders": 0}

    async def create_order(request: Request):
        counter["orders"] += 1
        payload = await request.json()
        return JSONResponse(
            {"order_id": counter["orders"], "product_id": payload["product_id"]},
            status_code=201,
            headers={"x-order-sequence": str(counter["orders"])},
        )

    app = FastAPI()
    app.add_route(
        "/admin/newsletters",
        IdempotentEndpoint(guard, publish_newsletter, resolve_owner).handle,
        methods=["POST"],
    )
    app.add_route(
        "/orders",
        IdempotentEndpoint(guard, create_order, resolve_owner).handle,
        methods=["POST"],
    )
    app.state.counter = counter
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def publish_headers(owner_id: str, key: str) -> dict[str, str]:
    return {"x-user-id": owner_id, "idempotency-key": key}
