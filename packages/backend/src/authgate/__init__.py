"""authgate — multi-provider sign-in service.

Resolves email/password and OAuth (Google, GitHub) sign-ins onto one
durable user account and issues role-bearing JWTs for the rest of the
platform.
"""

__version__ = "0.1.0"
