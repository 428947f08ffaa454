"""
Message router.

One inbound frame produces exactly one outbound frame: the handler's response,
or an ``error`` event when the frame can't be parsed, names an unknown action,
or the handler raises. Nothing a client sends closes the connection.
"""
import json
import logging
from typing import Optional, Union

from print_bridge.errors import BridgeError, ProtocolError
from print_bridge.jobs.models import Request
from print_bridge.server.handlers import ACTIONS, error_event
from print_bridge.server.registry import Connection

logger = logging.getLogger(__name__)


def parse_frame(frame: Union[str, bytes]) -> Request:
    """Decode a text or binary frame into a Request."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode('utf-8')
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Invalid message: not UTF-8 ({e})")
    try:
        message = json.loads(frame)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Invalid JSON: {e}")
    if not isinstance(message, dict):
        raise ProtocolError("Invalid message: expected a JSON object")

    request = Request.from_message(message)
    if not request.action:
        raise ProtocolError("Invalid message: missing action", request.request_id)
    return request


class MessageRouter:

    def __init__(self, context, actions: Optional[dict] = None):
        self.context = context
        self.actions = dict(ACTIONS if actions is None else actions)

    async def dispatch(self, connection: Connection, frame: Union[str, bytes]) -> dict:
        """Handle one frame and send its response. Returns the response sent."""
        try:
            request = parse_frame(frame)
        except ProtocolError as e:
            logger.warning(f"Bad frame from {connection.ip}: {e}")
            response = error_event(str(e), e.request_id)
            await self.send(connection, response)
            return response

        logger.info(f"← {request.action} ({request.request_id}) from {connection.ip}")
        handler = self.actions.get(request.action)
        if handler is None:
            logger.warning(f"Unknown action {request.action!r} from {connection.ip}")
            response = error_event(f"Unknown action: {request.action}", request.request_id)
        else:
            try:
                response = await handler(self.context, request)
            except BridgeError as e:
                logger.warning(f"{request.action} ({request.request_id}) failed: {e}")
                response = error_event(str(e), request.request_id)
            except Exception as e:
                logger.error(f"{request.action} ({request.request_id}) crashed: {e}", exc_info=True)
                response = error_event(str(e) or e.__class__.__name__, request.request_id)

        await self.send(connection, response)
        return response

    async def send(self, connection: Connection, message: dict) -> bool:
        """Send a JSON frame; a closed or failing transport is logged, never raised."""
        transport = connection.transport
        if getattr(transport, 'closed', False):
            logger.warning(f"Dropping {message.get('event')} for closed {connection}")
            return False
        try:
            await transport.send_json(message)
        except (ConnectionError, RuntimeError) as e:
            logger.warning(f"Could not send {message.get('event')} to {connection}: {e}")
            return False
        logger.debug(f"→ {message.get('event')} ({message.get('requestId')}) to {connection.ip}")
        return True
