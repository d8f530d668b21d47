"""
Domain errors for SkillSwap

Each error carries the HTTP status the API answers with. Domain modules raise
these; main.py turns them into {"detail": ...} responses.
"""


class SkillSwapError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailed(SkillSwapError):
    status_code = 400


class NotAuthenticated(SkillSwapError):
    status_code = 401


class Forbidden(SkillSwapError):
    status_code = 403


class NotFound(SkillSwapError):
    status_code = 404


class InvalidTransition(SkillSwapError):
    status_code = 409


class AlreadySubmitted(SkillSwapError):
    status_code = 409


class StoreUnavailable(SkillSwapError):
    status_code = 503
