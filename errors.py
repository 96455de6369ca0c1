class RecommendationError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        return {"error": self.message}


class InvalidRequest(RecommendationError):
    status_code = 400


class MethodNotAllowed(RecommendationError):
    status_code = 405

    def __init__(self, message="Use POST"):
        super().__init__(message)


class ConfigurationError(RecommendationError):
    status_code = 500


class UpstreamError(RecommendationError):
    """Completion API answered with a non-success status (or not at all)."""

    def __init__(self, message, status_code, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    def to_body(self) -> dict:
        return {"error": self.message, "status": self.status_code, "details": self.details}


class InternalError(RecommendationError):
    status_code = 500

    def __init__(self, cause):
        super().__init__("Server error")
        self.cause = cause

    def to_body(self) -> dict:
        return {"error": self.message, "details": str(self.cause)}


class ParseError(ValueError):
    """Completion text was not a JSON object. Recovered with fallbacks, never returned."""
