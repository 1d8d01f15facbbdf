"""ASGI endpoint adapter for FastAPI and Starlette applications.

This module wraps a request handler with the idempotency guard so that a
submission is executed at most once per (owner, Idempotency-Key) pair and
every retry receives the first response byte for byte.

The endpoint:
1. Resolves the caller's identity (401 when there is none)
2. Extracts and validates the idempotency key (400 when missing or invalid)
3. Runs the handler through the guard
4. Sends the saved response with its raw headers exactly as stored

Examples:
    Starlette integration::

        from starlette.applications import Starlette
        from starlette.routing import Route

        endpoint = IdempotentEndpoint(
            guard=guard,
            handler=publish_newsletter,
            owner_resolver=current_user_id,
        )

        app = Starlette(routes=[Route("/admin/newsletters", endpoint, methods=["POST"])])

    FastAPI integration::

        app = FastAPI()
        app.add_route("/admin/newsletters", endpoint.handle, methods=["POST"])
"""

from collections.abc import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import Receive, Scope, Send

from idempotency_guard.core.guard import IdempotencyGuard
from idempotency_guard.exceptions import (
    ClaimWaitTimeoutError,
    IdempotencyError,
    KeyValidationError,
    SideEffectError,
    StorageError,
)
from idempotency_guard.models import BatchOutcome, ResponseSnapshot
from idempotency_guard.observability.logging import get_logger

logger = get_logger(__name__)

IDEMPOTENCY_HEADER = "idempotency-key"

Handler = Callable[[Request], Awaitable[Response | ResponseSnapshot | BatchOutcome]]
OwnerResolver = Callable[[Request], Awaitable[str | None]]
KeyExtractor = Callable[[Request], str | None]


def header_key_extractor(request: Request) -> str | None:
    """Read the raw key from the ``Idempotency-Key`` header.

    The value is returned untouched; validation happens in the guard.
    """
    return request.headers.get(IDEMPOTENCY_HEADER)


async def to_snapshot(response: Response) -> ResponseSnapshot:
    """Capture a Starlette response as a ResponseSnapshot.

    Streaming responses are drained. Headers are taken from ``raw_headers``
    so nothing is re-encoded.
    """
    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is not None:
        body = b""
        async for chunk in body_iterator:
            body += chunk if isinstance(chunk, bytes) else chunk.encode(response.charset)
    else:
        body = bytes(response.body)

    return ResponseSnapshot(
        status_code=response.status_code,
        headers=[(name, value) for name, value in response.raw_headers],
        body=body,
    )


def to_response(snapshot: ResponseSnapshot) -> Response:
    """Build a Starlette response that sends ``snapshot`` verbatim."""
    response = Response(content=snapshot.body, status_code=snapshot.status_code)
    # Replace the headers Starlette derived from the body with the stored ones
    response.raw_headers = list(snapshot.headers)
    return response


class IdempotentEndpoint:
    """Starlette endpoint that runs ``handler`` through the idempotency guard.

    Instances are ASGI applications and can be mounted directly as a route
    endpoint. :meth:`handle` is the request/response form of the same logic.

    Attributes:
        guard: The guard enforcing exactly-once execution
        handler: Performs the side effect for a request
        owner_resolver: Returns the authenticated owner id, or None
        key_extractor: Returns the raw idempotency key, or None
        retry_after_seconds: Value of ``Retry-After`` on 425 responses
    """

    def __init__(
        self,
        guard: IdempotencyGuard,
        handler: Handler,
        owner_resolver: OwnerResolver,
        key_extractor: KeyExtractor = header_key_extractor,
        retry_after_seconds: int = 1,
    ) -> None:
        self.guard = guard
        self.handler = handler
        self.owner_resolver = owner_resolver
        self.key_extractor = key_extractor
        self.retry_after_seconds = retry_after_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        """Process one request with idempotency handling.

        Args:
            request: The incoming Starlette request

        Returns:
            The handler's response, a replay of it, or an error response
        """
        owner_id = await self.owner_resolver(request)
        if owner_id is None:
            return PlainTextResponse("Authentication required", status_code=401)

        raw_key = self.key_extractor(request)
        if raw_key is None:
            return PlainTextResponse("Missing idempotency key", status_code=400)

        async def side_effect() -> ResponseSnapshot | BatchOutcome:
            result = await self.handler(request)
            if isinstance(result, Response):
                return await to_snapshot(result)
            return result

        try:
            snapshot = await self.guard.execute(owner_id, raw_key, side_effect)
        except KeyValidationError as e:
            return PlainTextResponse(e.message, status_code=400)
        except ClaimWaitTimeoutError as e:
            return PlainTextResponse(
                e.message,
                status_code=425,
                headers={"retry-after": str(self.retry_after_seconds)},
            )
        except (SideEffectError, StorageError) as e:
            logger.error(
                "request.failed",
                owner_id=owner_id,
                error=e.message,
                error_type=type(e).__name__,
            )
            return PlainTextResponse("Internal server error", status_code=500)
        except IdempotencyError as e:
            logger.error("request.failed", owner_id=owner_id, error=e.message)
            return PlainTextResponse("Internal server error", status_code=500)

        return to_response(snapshot)
