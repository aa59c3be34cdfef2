from __future__ import annotations
"""Domain error type shared by services, validators and route handlers.

`AppError` is a werkzeug `HTTPException`, so the application-wide error handler
renders it like any `abort()` while services can raise it without importing Flask
request machinery.
"""
from werkzeug.exceptions import HTTPException


class AppError(HTTPException):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(description=message)
        self.code = status_code
        self.message = message
        self.status_code = status_code


class EntityNotFound(AppError):
    def __init__(self, what: str):
        super().__init__(f'{what} not found', 404)


class Unauthorized(AppError):
    def __init__(self, message: str = 'You are not authorized to perform this action'):
        super().__init__(message, 403)


class InvalidTransition(AppError):
    def __init__(self, message: str):
        super().__init__(message, 409)


class NoApproversFound(AppError):
    def __init__(self, entity_type: str):
        super().__init__(f'No approvers found for this {entity_type}', 400)


class InsufficientBalance(AppError):
    def __init__(self, available, requested):
        super().__init__(f'Insufficient balance. Available: {available}, Requested: {requested}', 400)
        self.available = available
        self.requested = requested


__all__ = ['AppError', 'EntityNotFound', 'Unauthorized', 'InvalidTransition', 'NoApproversFound', 'InsufficientBalance']
