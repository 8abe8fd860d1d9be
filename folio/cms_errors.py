#!/usr/bin/env python3
"""
Error types for FOLIO

Every failure a request handler expects to recover from is a CmsError
carrying the message shown to the user and the HTTP status used when the
handler re-renders a form.
"""


class CmsError(Exception):
    """Base class for recoverable CMS errors"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(CmsError):
    """Document or path does not exist"""
    status_code = 404

    def __init__(self, name: str):
        super().__init__(f"{name} does not exist.")
        self.name = name


class AlreadyExists(CmsError):
    """Name collision on create, rename, duplicate or upload"""
    status_code = 409

    def __init__(self, name: str, message: str = "That file already exists. Please choose another name."):
        super().__init__(message)
        self.name = name


class InvalidInput(CmsError):
    """Empty name, disallowed extension or unusable path"""
    status_code = 422


class TooLarge(CmsError):
    """Upload exceeds the configured size limit"""
    status_code = 422

    def __init__(self, size: int, limit: int):
        super().__init__("The file is too big. Please resize or try another file.")
        self.size = size
        self.limit = limit


class Unauthenticated(CmsError):
    """Protected operation attempted without a signed-in session"""
    status_code = 401

    def __init__(self, message: str = "You must be signed in to do that."):
        super().__init__(message)


class Conflict(CmsError):
    """Username already registered"""
    status_code = 409

    def __init__(self, username: str):
        super().__init__("That username already exists. Please choose another.")
        self.username = username


class InvalidCredentials(CmsError):
    """Sign-in failure"""
    status_code = 422

    def __init__(self, message: str = "Invalid credentials."):
        super().__init__(message)
