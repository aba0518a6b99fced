from __future__ import annotations


class RelayError(RuntimeError):
    category = "internal"
    status = 500

    def __init__(self, message: str, status: int | None = None, category: str | None = None, body: str | None = None):
        super().__init__(message)
        if status is not None:
            self.status = status
        if category is not None:
            self.category = category
        self.body = body

    def to_payload(self) -> dict[str, str]:
        return {"error": str(self) or "Unexpected server error.", "category": self.category}


class UpstreamUnavailable(RelayError):
    category = "upstream-unavailable"
    status = 502


class UpstreamRejected(RelayError):
    category = "upstream-unavailable"
    status = 502

    @classmethod
    def from_status(cls, service: str, status_code: int, body: str | None = None) -> UpstreamRejected:
        if status_code in (400, 404):
            return cls("Ally code not found.", status=404, category="not-found", body=body)
        if status_code == 429:
            return cls(f"{service} rate limit reached. Please wait a moment.", status=429, category="rate-limited", body=body)
        return cls(f"{service} request failed ({status_code}).", body=body)


class InvalidInput(RelayError):
    category = "invalid-input"
    status = 400
