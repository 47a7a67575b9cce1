"""
errors.py — Exceptions raised by the rules engine.

Network and remote-API failures are not exceptions here: they come back as
ApiResult values from core.api_client.
"""


class ValidationError(ValueError):
    """Input rejected before any request is sent to the remote API."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.message = message
        self.field = field
