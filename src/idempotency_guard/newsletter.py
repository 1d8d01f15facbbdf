"""Newsletter publishing, the reference side effect for the guard.

Publishing an issue sends one email per confirmed subscriber. Stored addresses
that no longer validate are skipped and reported as failed items; a transport
error aborts the whole batch so that the guard releases the claim and a retry
can run it again.

Examples:
    Publishing through the guard::

        publisher = NewsletterPublisher(subscribers, email_sender)
        issue = NewsletterIssue(
            title="Issue #1",
            text_content="Hello",
            html_content="<p>Hello</p>",
        )

        response = await guard.execute(
            owner_id, raw_key, lambda: publisher.publish(issue)
        )
"""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, EmailStr, Field, TypeAdapter, ValidationError

from idempotency_guard.models import BatchOutcome, ItemOutcome, ResponseSnapshot
from idempotency_guard.observability.logging import get_logger

logger = get_logger(__name__)

NEWSLETTERS_PATH = "/admin/newsletters"

_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)


class NewsletterIssue(BaseModel):
    """A newsletter issue as submitted by an author."""

    title: str = Field(..., min_length=1)
    text_content: str
    html_content: str

    model_config = {"frozen": True}


@runtime_checkable
class SubscriberSource(Protocol):
    async def confirmed_subscribers(self) -> list[str]:
        """Return the stored email addresses of all confirmed subscribers."""
        ...


@runtime_checkable
class EmailSender(Protocol):
    async def send_email(
        self,
        recipient: str,
        subject: str,
        html_content: str,
        text_content: str,
    ) -> None:
        """Deliver one email. Raises on transport failure."""
        ...


def see_other(location: str) -> ResponseSnapshot:
    """Build a ``303 See Other`` redirect to ``location``."""
    return ResponseSnapshot(
        status_code=303,
        headers=[(b"content-length", b"0"), (b"location", location.encode("latin-1"))],
        body=b"",
    )


class NewsletterPublisher:
    """Sends a newsletter issue to every confirmed subscriber.

    Attributes:
        subscribers: Where confirmed subscriber addresses come from
        email_sender: Delivers individual emails
    """

    def __init__(self, subscribers: SubscriberSource, email_sender: EmailSender) -> None:
        self.subscribers = subscribers
        self.email_sender = email_sender

    async def publish(self, issue: NewsletterIssue) -> BatchOutcome:
        """Send ``issue`` to all confirmed subscribers.

        Args:
            issue: The issue to send

        Returns:
            A BatchOutcome with one item per stored address and a redirect
            to the newsletters page as the response.

        Raises:
            Exception: Whatever the subscriber source or email sender raised.
                Delivery stops at the first transport failure.
        """
        items: list[ItemOutcome] = []

        for raw_email in await self.subscribers.confirmed_subscribers():
            try:
                email = _email_adapter.validate_python(raw_email)
            except ValidationError as e:
                logger.warning(
                    "newsletter.subscriber_skipped",
                    recipient=raw_email,
                    error=str(e),
                )
                items.append(
                    ItemOutcome.failure(
                        raw_email,
                        "Skipping a confirmed subscriber. Their stored contact details are invalid",
                    )
                )
                continue

            await self.email_sender.send_email(
                email,
                issue.title,
                issue.html_content,
                issue.text_content,
            )
            items.append(ItemOutcome.success(email))

        logger.info(
            "newsletter.published",
            title=issue.title,
            recipients=len(items),
        )
        return BatchOutcome(response=see_other(NEWSLETTERS_PATH), items=items)
