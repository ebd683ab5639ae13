"""
HTTP service for the film negative processor.

- config:    immutable ServerConfig
- http:      request parsing, error types, response writer
- multipart: boundary and file extraction
- handler:   one request per connection
- listener:  accept loop with a bounded worker pool
"""

from .config import ServerConfig
from .handler import ConnectionHandler, ConnectionState
from .listener import RequestListener

__all__ = ["ServerConfig", "ConnectionHandler", "ConnectionState", "RequestListener"]
