"""MCP protocol session engine."""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from mcpkit.protocol.errors import (
    ERROR_MESSAGES,
    INTERNAL_ERROR,
    MCPError,
    MessageParseError,
    NotificationHandlerError,
    REQUEST_CANCELLED,
)
from mcpkit.protocol.messages import (
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    Method,
    RequestId,
    method_name,
)
from mcpkit.protocol.options import (
    Progress,
    ProgressCallback,
    ProtocolOptions,
    RequestOptions,
)

if TYPE_CHECKING:
    from mcpkit.transport.base import Transport

logger = logging.getLogger(__name__)

# Type aliases for handlers
RequestHandler = Callable[[JSONRPCRequest, "RequestHandlerExtra"], Awaitable[Any] | Any]
NotificationHandler = Callable[[JSONRPCNotification], Awaitable[None] | None]


async def maybe_await(value: Any) -> Any:
    """Handlers and hooks may be plain functions or coroutines."""
    if inspect.isawaitable(value):
        return await value
    return value


def _is_id(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def _to_wire(result: Any) -> Any:
    if result is None:
        return {}
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result


@dataclass
class RequestHandlerExtra:
    """
    Context handed to request handlers next to the request itself.

    Lets a long-running handler report progress back to the requester when
    the request carried a progress token.
    """

    request_id: RequestId
    progress_token: str | int | None
    _session: "ProtocolSession"

    async def report_progress(
        self,
        progress: float,
        total: float | None = None,
    ) -> None:
        """
        Send a progress notification for this request.

        Does nothing when the requester did not ask for progress.

        Args:
            progress: Current progress value.
            total: Total value (if known).
        """
        if self.progress_token is None:
            return

        params: dict[str, Any] = {
            "progressToken": self.progress_token,
            "progress": progress,
        }
        if total is not None:
            params["total"] = total

        await self._session.notify(Method.NOTIFICATIONS_PROGRESS, params)


class ProtocolSession(ABC):
    """
    Core MCP protocol engine shared by clients and servers.

    Binds one transport, allocates request ids, correlates responses with
    pending requests, dispatches incoming requests and notifications to
    registered handlers, and enforces capability checks through the
    abstract assert_* hooks implemented by each role.

    All state lives on one event loop; nothing here is thread-safe.
    """

    def __init__(self, options: ProtocolOptions | None = None):
        """
        Initialize the session.

        Subclasses must set up whatever their assert_* hooks read before
        calling this, since the built-in handlers are registered here.

        Args:
            options: Session options (strict capabilities, default timeout).
        """
        self.options = options or ProtocolOptions()

        self._transport: Transport | None = None
        self._request_handlers: dict[str, RequestHandler] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}
        self._response_handlers: dict[RequestId, asyncio.Future[Any]] = {}
        self._progress_handlers: dict[RequestId, ProgressCallback] = {}
        self._in_flight: dict[RequestId, asyncio.Task[None]] = {}
        self._notification_tasks: set[asyncio.Task[None]] = set()
        self._last_notification: asyncio.Task[None] | None = None
        self._request_message_id = 0

        self.fallback_request_handler: RequestHandler | None = None
        self.fallback_notification_handler: NotificationHandler | None = None

        self.onclose: Callable[[], Awaitable[None] | None] | None = None
        self.onerror: Callable[[Exception], Awaitable[None] | None] | None = None

        self.set_request_handler(Method.PING, self._on_ping)

    @property
    def transport(self) -> Transport | None:
        """The bound transport, or None when not connected."""
        return self._transport

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    @property
    def pending_request_count(self) -> int:
        """Number of outgoing requests still awaiting a reply."""
        return len(self._response_handlers)

    async def connect(self, transport: Transport) -> None:
        """
        Bind a transport and start receiving messages.

        Args:
            transport: The transport to bind. It must not be started yet.

        Raises:
            MCPError: If a transport is already bound.
        """
        if self._transport is not None:
            raise MCPError.already_connected()

        self._transport = transport
        transport.set_on_message(self._on_message)
        transport.set_on_error(self._on_error)
        transport.set_on_close(self._on_close)

        try:
            await transport.start()
        except Exception:
            self._transport = None
            raise

        logger.debug(f"{type(self).__name__} connected to {type(transport).__name__}")

    async def set_transport(self, transport: Transport) -> None:
        """Alias of connect()."""
        await self.connect(transport)

    async def close(self) -> None:
        """
        Close the underlying transport.

        Pending requests are rejected by the transport's close callback,
        not here.
        """
        if self._transport is not None:
            await self._transport.close()

    async def request(
        self,
        method: Method | str,
        params: dict[str, Any] | None = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Send a request and wait for the response.

        Args:
            method: The RPC method name.
            params: Optional method parameters.
            options: Progress callback and timeout for this request.

        Returns:
            The result from the response.

        Raises:
            MCPError: If not connected, on timeout, or on an error response.
            CapabilityError: If strict capabilities are enforced and the
                peer did not declare what this method needs.
        """
        transport = self._transport
        if transport is None:
            raise MCPError.not_connected()

        method = method_name(method)
        if self.options.enforce_strict_capabilities:
            self.assert_capability_for_method(method)

        options = options or RequestOptions()
        message_id = self._request_message_id
        self._request_message_id += 1

        if options.on_progress is not None:
            params = dict(params or {})
            params["_meta"] = {**(params.get("_meta") or {}), "progressToken": message_id}
            self._progress_handlers[message_id] = options.on_progress

        request = JSONRPCRequest(id=message_id, method=method, params=params)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._response_handlers[message_id] = future

        timeout = options.timeout if options.timeout is not None else self.options.request_timeout

        try:
            await transport.send(request)
            logger.debug(f"Sent {request}")
            return await asyncio.wait_for(future, timeout=timeout)

        except asyncio.TimeoutError:
            self._retire(message_id)
            await self._send_cancelled(message_id, f"Request timed out after {timeout}s")
            raise MCPError.timeout(timeout) from None

        except asyncio.CancelledError as e:
            self._retire(message_id)
            reason = str(e.args[0]) if e.args else ERROR_MESSAGES[REQUEST_CANCELLED]
            await self._send_cancelled(message_id, reason)
            raise

        finally:
            self._retire(message_id)

    async def notify(
        self,
        method: Method | str,
        params: dict[str, Any] | None = None,
    ) -> None:
        """
        Send a notification (fire-and-forget).

        Args:
            method: The notification method name.
            params: Optional method parameters.

        Raises:
            MCPError: If not connected.
            CapabilityError: If the local side did not declare the
                capability this notification needs.
        """
        transport = self._transport
        if transport is None:
            raise MCPError.not_connected()

        method = method_name(method)
        self.assert_notification_capability(method)

        notification = JSONRPCNotification(method=method, params=params)
        await transport.send(notification)
        logger.debug(f"Sent {notification}")

    def set_request_handler(self, method: Method | str, handler: RequestHandler) -> None:
        """
        Register the handler for incoming requests of a method.

        Replaces any previous handler for the same method.

        Raises:
            CapabilityError: If the local capabilities do not allow
                handling this method.
        """
        method = method_name(method)
        self.assert_request_handler_capability(method)
        self._request_handlers[method] = handler

    def remove_request_handler(self, method: Method | str) -> None:
        self._request_handlers.pop(method_name(method), None)

    def set_notification_handler(
        self,
        method: Method | str,
        handler: NotificationHandler,
    ) -> None:
        """Register the handler for incoming notifications of a method."""
        self._notification_handlers[method_name(method)] = handler

    def remove_notification_handler(self, method: Method | str) -> None:
        self._notification_handlers.pop(method_name(method), None)

    async def on_close(self) -> None:
        """Hook run after the transport closed and pending requests were rejected."""
        if self.onclose is not None:
            await maybe_await(self.onclose())

    async def on_error(self, error: Exception) -> None:
        """Hook receiving transport errors and protocol desynchronization."""
        if self.onerror is not None:
            await maybe_await(self.onerror(error))

    @abstractmethod
    def assert_capability_for_method(self, method: str) -> None:
        """Check an outgoing request against the peer's capabilities."""

    @abstractmethod
    def assert_notification_capability(self, method: str) -> None:
        """Check an outgoing notification against the local capabilities."""

    @abstractmethod
    def assert_request_handler_capability(self, method: str) -> None:
        """Check a request handler registration against the local capabilities."""

    def _check_request_allowed(self, request: JSONRPCRequest) -> None:
        """
        Lifecycle gate for incoming requests.

        Raise MCPError to answer the request with that error instead of
        dispatching it.
        """

    def _retire(self, message_id: RequestId) -> None:
        self._response_handlers.pop(message_id, None)
        self._progress_handlers.pop(message_id, None)

    async def _send_cancelled(self, request_id: RequestId, reason: str) -> None:
        transport = self._transport
        if transport is None:
            return

        notification = JSONRPCNotification(
            method=Method.NOTIFICATIONS_CANCELLED.value,
            params={"requestId": request_id, "reason": reason},
        )
        try:
            await transport.send(notification)
        except Exception as e:
            logger.warning(f"Failed to send cancellation for request {request_id}: {e}")

    async def _send_reply(self, response: JSONRPCResponse | JSONRPCErrorResponse) -> None:
        transport = self._transport
        if transport is None:
            logger.debug(f"Dropping {response}: transport closed")
            return
        try:
            await transport.send(response)
        except Exception as e:
            logger.error(f"Failed to send {response}: {e}")
            await self._report_error(e)

    async def _report_error(self, error: Exception) -> None:
        try:
            await self.on_error(error)
        except Exception:
            logger.exception("Error hook failed")

    async def _on_message(self, message: JSONRPCMessage) -> None:
        """Route one incoming message to the matching table."""
        if isinstance(message, (JSONRPCResponse, JSONRPCErrorResponse)):
            await self._on_response(message)
        elif isinstance(message, JSONRPCRequest):
            await self._on_request(message)
        else:
            await self._on_notification(message)

    async def _on_response(self, message: JSONRPCResponse | JSONRPCErrorResponse) -> None:
        future = self._response_handlers.get(message.id) if message.id is not None else None
        if future is None:
            logger.warning(f"No pending request for id: {message.id}")
            await self._report_error(
                MCPError.invalid_request(
                    f"Received response for unknown message ID: {message.id}"
                )
            )
            return

        self._retire(message.id)
        if future.done():
            return

        if isinstance(message, JSONRPCErrorResponse):
            future.set_exception(
                MCPError(
                    code=message.error.code,
                    message=message.error.message,
                    data=message.error.data,
                )
            )
        else:
            future.set_result(message.result)

    async def _on_request(self, request: JSONRPCRequest) -> None:
        logger.debug(f"Received {request}")
        try:
            self._check_request_allowed(request)
        except MCPError as e:
            await self._send_reply(
                JSONRPCErrorResponse.create(request.id, e.code, e.message, e.data)
            )
            return

        handler = self._request_handlers.get(request.method, self.fallback_request_handler)
        if handler is None:
            error = MCPError.method_not_found(request.method)
            await self._send_reply(
                JSONRPCErrorResponse.create(request.id, error.code, error.message, error.data)
            )
            return

        meta = (request.params or {}).get("_meta") or {}
        token = meta.get("progressToken") if isinstance(meta, dict) else None
        extra = RequestHandlerExtra(
            request_id=request.id,
            progress_token=token if _is_id(token) else None,
            _session=self,
        )

        task = asyncio.create_task(
            self._run_request_handler(handler, request, extra),
            name=f"mcp-request-{request.id}",
        )
        self._in_flight[request.id] = task
        task.add_done_callback(lambda t, request_id=request.id: self._forget_in_flight(request_id, t))

    def _forget_in_flight(self, request_id: RequestId, task: asyncio.Task[None]) -> None:
        if self._in_flight.get(request_id) is task:
            del self._in_flight[request_id]

    async def _run_request_handler(
        self,
        handler: RequestHandler,
        request: JSONRPCRequest,
        extra: RequestHandlerExtra,
    ) -> None:
        """Run one handler and reply with its result or error."""
        try:
            result = await maybe_await(handler(request, extra))
        except asyncio.CancelledError:
            # Cancelled by the peer or by teardown: no reply
            logger.debug(f"Handler for {request} cancelled")
            raise
        except MCPError as e:
            response = JSONRPCErrorResponse.create(request.id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception(f"Handler error for {request.method}")
            response = JSONRPCErrorResponse.create(
                request.id,
                INTERNAL_ERROR,
                str(e) or ERROR_MESSAGES[INTERNAL_ERROR],
            )
        else:
            response = JSONRPCResponse(id=request.id, result=_to_wire(result))

        await self._send_reply(response)

    async def _on_notification(self, notification: JSONRPCNotification) -> None:
        logger.debug(f"Received {notification}")
        if notification.method == Method.NOTIFICATIONS_PROGRESS.value:
            await self._on_progress(notification)
            return
        if notification.method == Method.NOTIFICATIONS_CANCELLED.value:
            await self._on_cancelled(notification)
            return

        handler = self._notification_handlers.get(
            notification.method, self.fallback_notification_handler
        )
        if handler is None:
            return

        # Handlers run one at a time in arrival order, off the transport reader
        task = asyncio.create_task(
            self._run_notification_handler(handler, notification, self._last_notification),
            name=f"mcp-notification-{notification.method}",
        )
        self._last_notification = task
        self._notification_tasks.add(task)
        task.add_done_callback(self._notification_tasks.discard)

    async def _run_notification_handler(
        self,
        handler: NotificationHandler,
        notification: JSONRPCNotification,
        previous: asyncio.Task[None] | None,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        try:
            await maybe_await(handler(notification))
        except asyncio.CancelledError:
            logger.debug(f"Handler for {notification} cancelled")
            raise
        except Exception as e:
            if self.options.enforce_strict_capabilities:
                logger.error(f"Notification handler error for {notification.method}: {e}")
                await self._report_error(NotificationHandlerError.wrap(notification.method, e))
            else:
                logger.exception(f"Notification handler error for {notification.method}")
                await self._report_error(e)

    async def _on_progress(self, notification: JSONRPCNotification) -> None:
        params = notification.params or {}
        token = params.get("progressToken")
        handler = self._progress_handlers.get(token) if _is_id(token) else None

        if handler is None:
            logger.warning(f"Progress for unknown token: {token}")
            await self._report_error(
                MCPError.invalid_params(
                    f"Received progress notification for unknown token: {token}"
                )
            )
            return

        try:
            progress = Progress(
                progress=float(params.get("progress", 0)),
                total=float(params["total"]) if params.get("total") is not None else None,
            )
            await maybe_await(handler(progress))
        except Exception as e:
            logger.exception("Progress callback error")
            await self._report_error(e)

    async def _on_cancelled(self, notification: JSONRPCNotification) -> None:
        params = notification.params or {}
        request_id = params.get("requestId")
        task = self._in_flight.get(request_id) if _is_id(request_id) else None

        if task is None:
            logger.debug(f"Cancellation for unknown or finished request: {request_id}")
            return

        logger.info(f"Request cancelled by peer: id={request_id}, reason={params.get('reason')}")
        task.cancel()

    async def _on_ping(self, request: JSONRPCRequest, extra: RequestHandlerExtra) -> dict[str, Any]:
        return {}

    async def _on_error(self, error: Exception) -> None:
        """
        Handle an error reported by the transport.

        A message that failed to parse only affects itself; anything else
        is treated as fatal to every pending request.
        """
        if isinstance(error, MessageParseError):
            logger.warning(f"Discarding malformed message: {error}")
            if error.request_id is not None:
                await self._send_reply(
                    JSONRPCErrorResponse.create(
                        error.request_id, error.code, error.message, error.data
                    )
                )
            await self._report_error(error)
            return

        logger.error(f"Transport error: {error}")
        pending = list(self._response_handlers.values())
        self._response_handlers.clear()
        self._progress_handlers.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

        await self._report_error(error)

    async def _on_close(self) -> None:
        """Reject everything still pending and run the close hook."""
        pending = list(self._response_handlers.values())
        self._response_handlers.clear()
        self._progress_handlers.clear()
        self._transport = None

        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()
        for task in list(self._notification_tasks):
            task.cancel()
        self._notification_tasks.clear()
        self._last_notification = None

        for future in pending:
            if not future.done():
                future.set_exception(MCPError.connection_closed())

        logger.info(f"{type(self).__name__} connection closed")
        try:
            await self.on_close()
        except Exception:
            logger.exception("Close hook failed")

    async def __aenter__(self) -> "ProtocolSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
