"""Error kinds raised by the stores and the auth gate.

Every error carries the message shown to the client and the HTTP status the
route boundary answers with. The app turns them into ``{success, message}``.
"""


class ApiError(Exception):
    status_code = 400
    message = 'Request failed.'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(ApiError):
    status_code = 400
    message = 'Invalid request.'


class DuplicateUsername(ApiError):
    status_code = 409
    message = 'Username already taken.'


class InvalidCredentials(ApiError):
    status_code = 401
    message = 'Invalid username or password.'


class Unauthenticated(ApiError):
    status_code = 401
    message = 'Not logged in.'


class PersistenceError(ApiError):
    status_code = 500
    message = 'Something went wrong, please try again later.'
