from .http_transport import HttpTransport
from .ws_transport import ConnectionState, WebSocketTransport

__all__ = ["ConnectionState", "HttpTransport", "WebSocketTransport"]
