"""OAuth2 sign-in: provider registry and profile parsing.

Only the success/failure contract matters to the rest of the service:
a finished handshake yields an OAuthCallback, which becomes an
IdentityAssertion for the resolver.
"""
