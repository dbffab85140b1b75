"""Typed HTTP errors raised by the booking and waitlist services"""

from fastapi import HTTPException


class NotFoundError(HTTPException):
    """A referenced record does not exist or is not visible to the caller"""

    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class BadRequestError(HTTPException):
    """Input or business policy rejected the request"""

    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=400, detail=detail)


class ConflictError(HTTPException):
    """The request collides with existing state (overlap, duplicate, invalid transition)"""

    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=409, detail=detail)
