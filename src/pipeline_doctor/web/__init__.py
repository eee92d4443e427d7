"""HTTP receiver for Pipeline Doctor."""

from .app import create_app, run_server, verify_signature

__all__ = ["create_app", "run_server", "verify_signature"]
