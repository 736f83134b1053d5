"""Application errors.

Every failure a caller can see carries a stable machine-readable ``kind``
and a human-readable ``detail``. Services raise these; main.py renders them
as ``{"errors": [{"kind": ..., "detail": ...}]}``.
"""


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "internal"
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.detail}


class NotFound(AppError):
    kind = "not_found"
    status_code = 404


class ValidationFailure(AppError):
    kind = "validation"
    status_code = 400


class Forbidden(AppError):
    kind = "forbidden"
    status_code = 403


class DependencyFailure(AppError):
    """An external collaborator (mail, GitHub) failed; the decision can't be trusted."""

    kind = "dependency_failure"
    status_code = 500
