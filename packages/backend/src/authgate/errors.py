"""Domain errors for sign-in flows.

Learn: Services raise these; the API layer turns them into JSON
responses through a single exception handler (see main.py). Each
error carries the HTTP status and the message shown to callers.
Credential failures deliberately share one message so a caller
can't tell "no such user" from "wrong password".
"""


class AuthError(Exception):
    """Base class for all sign-in errors."""

    status_code = 400
    public_message = "Bad request"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)


class MissingFieldsError(AuthError):
    public_message = "Missing required fields"


class MissingEmailError(AuthError):
    """The identity provider did not hand us an email address."""

    public_message = "No email found in profile"


class DuplicateAccountError(AuthError):
    public_message = "User already exists"


class InvalidCredentialsError(AuthError):
    status_code = 401
    public_message = "Invalid credentials"


class InvalidTokenError(AuthError):
    status_code = 401
    public_message = "Invalid or expired token"


class MissingDefaultRoleError(AuthError):
    """The default role was never seeded. Deployment defect, not a user error."""

    status_code = 500
    public_message = "Internal server error"
