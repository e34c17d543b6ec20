"""
Last-resort error handling middleware.

Pure ASGI middleware (not BaseHTTPMiddleware) so that yield dependencies
such as get_db_session() still commit or roll back normally.
"""
import json

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from orderdesk.core.logging import get_logger

logger = get_logger(__name__)


class ErrorHandlerMiddleware:
    """
    Turns unhandled exceptions into a JSON 500.

    Domain errors and HTTPException never get this far; FastAPI's exception
    handlers render them first.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            path = scope.get("path", "unknown")
            if response_started:
                logger.exception("Unhandled exception after response started", error=str(e), path=path)
                raise

            logger.exception("Unhandled exception", error=str(e), path=path)

            request_id = scope.get("state", {}).get("request_id")
            body = json.dumps({
                "detail": "Internal server error",
                "type": type(e).__name__,
                "requestId": request_id,
            }).encode("utf-8")

            await send({
                "type": "http.response.start",
                "status": 500,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            })
            await send({
                "type": "http.response.body",
                "body": body,
            })
