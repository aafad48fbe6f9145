"""
Error taxonomy shared by services and routers.

Services raise these; main.py renders each as {"error": message} with the
class's status code. Messages are safe to show to callers.
"""


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(GatewayError):
    """Missing or malformed input, e.g. no bucket name or no uploaded file."""
    status_code = 400


class Unauthorized(GatewayError):
    """Missing or unknown bearer token, or missing public token."""
    status_code = 401


class Forbidden(GatewayError):
    """Public token matched but has expired."""
    status_code = 403


class NotFound(GatewayError):
    """Bucket or object absent, or not owned by the caller."""
    status_code = 404


class Conflict(GatewayError):
    """Bucket name already taken by this user."""
    status_code = 409


class UpstreamError(GatewayError):
    """A Google Drive or OAuth call failed; detail is logged, not returned."""
    status_code = 502
