# questcraft_cms/errors.py
from __future__ import annotations


class ServiceError(Exception):
    """Basis für fachliche Fehler, die ein Handler in Statuscode + Text übersetzt."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409
