"""Demo FastAPI application publishing newsletters through the idempotency guard.

Run with: python demo_app.py
Then publish an issue twice with the same key; the second call is a replay:

    curl -i -X POST http://localhost:8000/admin/newsletters \\
        -H "X-User-Id: U1" -H "Idempotency-Key: abc-123" \\
        -H "Content-Type: application/json" \\
        -d '{"title": "Issue #1", "text_content": "Hi", "html_content": "<p>Hi</p>"}'
"""

from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI
from starlette.requests import Request

from idempotency_guard.adapters.asgi import IdempotentEndpoint
from idempotency_guard.config import IdempotencyConfig
from idempotency_guard.core.guard import IdempotencyGuard
from idempotency_guard.models import BatchOutcome
from idempotency_guard.newsletter import NewsletterIssue, NewsletterPublisher
from idempotency_guard.observability.logging import configure_logging, get_logger
from idempotency_guard.storage import create_storage

config = IdempotencyConfig.from_env()
configure_logging(level=config.log_level, json_output=config.json_logs)
logger = get_logger(__name__)

app = FastAPI(
    title="Idempotency Guard Demo",
    description="Publishes newsletter issues exactly once per Idempotency-Key",
    version="0.1.0",
)


class InMemorySubscribers:
    def __init__(self, emails: list[str]) -> None:
        self.emails = emails

    async def confirmed_subscribers(self) -> list[str]:
        return list(self.emails)


class ConsoleEmailSender:
    """Pretends to deliver emails by logging them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_email(
        self,
        recipient: str,
        subject: str,
        html_content: str,
        text_content: str,
    ) -> None:
        self.sent.append((recipient, subject))
        logger.info("email.sent", recipient=recipient, subject=subject)


subscribers = InMemorySubscribers(
    ["ursula@example.com", "le.guin@example.com", "not-an-email"]
)
email_sender = ConsoleEmailSender()
publisher = NewsletterPublisher(subscribers, email_sender)
guard = IdempotencyGuard(create_storage(config), config)


async def resolve_owner(request: Request) -> str | None:
    # Stand-in for a session lookup
    return request.headers.get("x-user-id")


async def publish_newsletter(request: Request) -> BatchOutcome:
    issue = NewsletterIssue.model_validate(await request.json())
    return await publisher.publish(issue)


newsletter_endpoint = IdempotentEndpoint(
    guard=guard,
    handler=publish_newsletter,
    owner_resolver=resolve_owner,
)

app.add_route("/admin/newsletters", newsletter_endpoint.handle, methods=["POST"])


@app.get("/")
async def root():
    """Root endpoint - returns API info."""
    return {
        "name": "Idempotency Guard Demo",
        "version": "0.1.0",
        "endpoints": {
            "POST /admin/newsletters": "Publish a newsletter issue (idempotent)",
            "GET /admin/sent": "Emails delivered so far",
        },
        "usage": "Send 'X-User-Id' and 'Idempotency-Key' headers with every publish",
    }


@app.get("/admin/sent")
async def sent_emails():
    return {
        "count": len(email_sender.sent),
        "emails": [
            {"recipient": recipient, "subject": subject}
            for recipient, subject in email_sender.sent
        ],
        "timestamp": datetime.now(UTC).isoformat(),
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
