"""
Connection registry.

Membership mirrors the set of open WebSocket transports: a connection is
added when the socket is accepted and removed when it closes or errors.
Removal is idempotent so close and error paths can both call it.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from print_bridge.jobs.models import utcnow

logger = logging.getLogger(__name__)

UNKNOWN_IP = 'unknown'


def normalize_ip(remote: Optional[str]) -> str:
    """Strip the IPv4-mapped IPv6 prefix and map the IPv6 loopback to 127.0.0.1."""
    if not remote:
        return UNKNOWN_IP
    ip = str(remote).strip()
    if ip.startswith('::ffff:'):
        ip = ip[len('::ffff:'):]
    if ip == '::1':
        ip = '127.0.0.1'
    return ip or UNKNOWN_IP


@dataclass(eq=False)
class Connection:
    transport: Any
    ip: str = UNKNOWN_IP
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    opened_at: datetime = field(default_factory=utcnow)

    def __str__(self):
        return f"Connection({self.id[:8]} from {self.ip})"


class ConnectionRegistry:

    def __init__(self, observer=None):
        self.observer = observer
        self._connections: Dict[str, Connection] = {}

    def register(self, transport, remote: Optional[str] = None) -> Connection:
        conn = Connection(transport=transport, ip=normalize_ip(remote))
        self._connections[conn.id] = conn
        logger.info(f"Client connected: {conn.ip} ({self.count()} connected)")
        self._notify('connect', conn)
        return conn

    def unregister(self, conn: Connection) -> bool:
        if self._connections.pop(conn.id, None) is None:
            return False
        logger.info(f"Client disconnected: {conn.ip} ({self.count()} connected)")
        self._notify('disconnect', conn)
        return True

    def get(self, conn_id: str) -> Optional[Connection]:
        return self._connections.get(conn_id)

    def all(self) -> List[Connection]:
        return list(self._connections.values())

    def count(self) -> int:
        return len(self._connections)

    def clear(self):
        for conn in self.all():
            self.unregister(conn)

    def _notify(self, kind: str, conn: Connection):
        if self.observer is None:
            return
        info = {'ip': conn.ip, 'time': utcnow().isoformat()}
        try:
            self.observer.notify_client_event(kind, info)
        except Exception as e:
            logger.warning(f"Client observer failed for {kind} {conn.ip}: {e}")
