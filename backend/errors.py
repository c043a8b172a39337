"""Error types surfaced by the relay and the proxy.

Each error knows the HTTP status and the caller-safe message it maps to;
``main.py`` turns them into JSON responses.
"""

TIMEOUT_GUIDANCE = (
    "The request timed out. Possible causes:\n"
    "1. The upstream server is slow to respond\n"
    "2. The network connection is unstable\n"
    "3. The model takes too long to process the request\n\n"
    "Suggestions:\n"
    "- Check that the API address is correct\n"
    "- Try a faster model\n"
    "- Check the network connection"
)


class RelayError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None, details: str | None = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidRequestError(RelayError):
    status_code = 400
    message = "Invalid request"


class UnauthorizedError(RelayError):
    status_code = 401
    message = "Unauthorized"


class PermissionDeniedError(RelayError):
    status_code = 403
    message = "You do not have permission to use AI recommendations, ask an administrator for access"


class ConfigurationError(RelayError):
    """Missing credential or disabled feature. Never retried."""

    def __init__(self, message: str, details: str | None = None, status_code: int = 500):
        super().__init__(message, details)
        self.status_code = status_code


class NotFoundError(RelayError):
    status_code = 404
    message = "Not found"


class NoInstanceAvailableError(RelayError):
    status_code = 503
    message = "No available proxy instance"


class MalformedReplyError(RelayError):
    message = "The AI service returned a malformed response, retry later"


class UpstreamError(RelayError):
    """Non-2xx answer from a service we depend on."""

    def __init__(self, status: int, details: str | None = None, message: str | None = None):
        super().__init__(message or upstream_status_message(status), details)
        self.status = status

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["status"] = self.status
        return body


class UpstreamTimeoutError(RelayError):
    status_code = 504

    def __init__(self, budget: float, target: str = "AI service"):
        super().__init__(f"{target} timed out ({budget:g} seconds)", TIMEOUT_GUIDANCE)
        self.budget = budget

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["timeout"] = True
        return body


def upstream_status_message(status: int) -> str:
    if status == 401:
        return "Invalid API key, ask an administrator to check the configuration"
    if status == 429:
        return "Rate limited by the AI service, retry later"
    if status == 400:
        return "Bad request parameters, check your input"
    if status >= 500:
        return "AI server error, retry later"
    return "AI service temporarily unavailable, retry later"
