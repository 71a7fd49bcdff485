from __future__ import annotations


class PointsError(Exception):
    """Base for errors a caller can act on. Rendered as {"detail": message}."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PointsError):
    status_code = 422


class NotFound(PointsError):
    status_code = 404


class Forbidden(PointsError):
    status_code = 403


class Unauthorized(PointsError):
    status_code = 401
