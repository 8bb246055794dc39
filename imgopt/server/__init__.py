"""Reference gateway: POST /process-image backed by Pillow."""
from .app import create_app
from .settings import GatewaySettings

__all__ = ["create_app", "GatewaySettings"]
