"""Authentication primitives.

Learn: Two building blocks used by the services and the API:
1. password.py → bcrypt hashing for the email/password identity
2. tokens.py → signed JWT access tokens carrying {userId, email, role}

dependencies.py wires them (and the other app-scoped collaborators)
into FastAPI routes.
"""
