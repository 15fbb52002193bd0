"""
Error taxonomy shared by the marketplace components.

Components raise these; the API layer renders them as {"error": message}
with the class status code.
"""


class MarketError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidInput(MarketError):
    status_code = 400


class Unauthenticated(MarketError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(MarketError):
    status_code = 403


class NotFound(MarketError):
    status_code = 404
