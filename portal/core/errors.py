# portal/core/errors.py

from typing import Optional


class PipelineError(Exception):
    """Base for everything the mutation pipeline raises on purpose."""


class UnknownCollection(PipelineError):
    def __init__(self, name: str):
        super().__init__(f"Unknown collection '{name}'")
        self.name = name


class PermissionDenied(PipelineError):
    def __init__(self, resource: str, action: str):
        super().__init__(f"Missing '{action}' permission on '{resource}'")
        self.resource = resource
        self.action = action


class MutationFailed(PipelineError):
    """The Mutation Service rejected the call (transport or validation)."""

    def __init__(self, status_code: Optional[int], detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class SessionExpired(MutationFailed):
    """401/403/token failure. The console session has already been signed out."""


def is_session_failure(exc: BaseException) -> bool:
    status_code = getattr(exc, "status_code", None)
    if status_code in (401, 403):
        return True
    # Digits in the message (ids, ports) are not statuses
    return "token" in str(exc).lower()
