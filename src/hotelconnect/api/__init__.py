"""HTTP surface: the translate endpoint the gateway calls."""

from hotelconnect.api.server import create_app, start_server

__all__ = ["create_app", "start_server"]
