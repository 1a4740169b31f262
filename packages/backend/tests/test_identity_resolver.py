"""Identity resolver tests.

Learn: Tests cover the three resolution paths and the invariants that
hold across them:
1. Returning user (exact provider identity match)
2. Account linking by email
3. New user creation, with the default role
4. Input and configuration failures
5. Recovery from a lost insert race
"""

import pytest
from sqlalchemy import func, select

from authgate.db.models import Provider, ProviderIdentity, User
from authgate.errors import MissingDefaultRoleError, MissingEmailError
from authgate.services.identity_resolver import IdentityAssertion, IdentityResolver


def google(sub="sub-123", email="a@x.com", **kwargs) -> IdentityAssertion:
    kwargs.setdefault("access_token", "g-access")
    return IdentityAssertion(
        provider=Provider.GOOGLE, provider_id=sub, email=email, **kwargs
    )


def github(sub="42", email="a@x.com", **kwargs) -> IdentityAssertion:
    kwargs.setdefault("access_token", "gh-access")
    return IdentityAssertion(
        provider=Provider.GITHUB, provider_id=sub, email=email, **kwargs
    )


async def count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


# ═══════════════════════════════════════════════════════════
# New users
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_new_user_gets_default_role_and_one_identity(db_session):
    resolver = IdentityResolver(db_session)
    user = await resolver.resolve(
        google(display_name="Ada Lovelace", avatar_url="https://img.test/ada.png")
    )

    assert user.email == "a@x.com"
    assert user.display_name == "Ada Lovelace"
    assert user.avatar == "https://img.test/ada.png"
    assert user.role.name == "user"
    assert len(user.providers) == 1
    identity = user.providers[0]
    assert identity.provider == "google"
    assert identity.provider_id == "sub-123"
    assert identity.access_token == "g-access"
    assert identity.refresh_token is None
    assert identity.credential_hash is None


@pytest.mark.asyncio
async def test_display_name_falls_back_to_username(db_session):
    user = await IdentityResolver(db_session).resolve(github(username="octocat"))
    assert user.display_name == "octocat"


@pytest.mark.asyncio
async def test_display_name_falls_back_to_email_local_part(db_session):
    user = await IdentityResolver(db_session).resolve(google(email="grace@navy.mil"))
    assert user.display_name == "grace"


@pytest.mark.asyncio
async def test_email_is_normalized(db_session):
    user = await IdentityResolver(db_session).resolve(google(email="  Ada@X.com "))
    assert user.email == "ada@x.com"
    assert user.providers[0].email == "ada@x.com"


# ═══════════════════════════════════════════════════════════
# Returning users
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_returning_login_is_idempotent(db_session):
    resolver = IdentityResolver(db_session)
    first = await resolver.resolve(google())
    second = await resolver.resolve(google())

    assert second.id == first.id
    assert len(second.providers) == 1
    assert await count(db_session, User) == 1


@pytest.mark.asyncio
async def test_returning_login_refreshes_tokens_and_email(db_session):
    resolver = IdentityResolver(db_session)
    await resolver.resolve(google(access_token="old", refresh_token="r1"))
    user = await resolver.resolve(
        google(email="new@x.com", access_token="new", refresh_token="r2")
    )

    identity = user.find_provider(Provider.GOOGLE, "sub-123")
    assert identity.access_token == "new"
    assert identity.refresh_token == "r2"
    assert identity.email == "new@x.com"


@pytest.mark.asyncio
async def test_missing_refresh_token_keeps_stored_one(db_session):
    resolver = IdentityResolver(db_session)
    await resolver.resolve(google(refresh_token="keep-me"))
    user = await resolver.resolve(google(access_token="second", refresh_token=None))

    identity = user.find_provider(Provider.GOOGLE, "sub-123")
    assert identity.access_token == "second"
    assert identity.refresh_token == "keep-me"


@pytest.mark.asyncio
async def test_identity_match_wins_over_email_match(db_session):
    """A token refresh with a changed email never triggers linking."""
    resolver = IdentityResolver(db_session)
    owner = await resolver.resolve(google(email="a@x.com"))
    other = await resolver.resolve(github(sub="7", email="b@x.com"))

    again = await resolver.resolve(google(email="b@x.com"))

    assert again.id == owner.id
    assert again.id != other.id
    assert len(again.providers) == 1


# ═══════════════════════════════════════════════════════════
# Linking
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_linking_is_keyed_by_email_not_name(db_session):
    resolver = IdentityResolver(db_session)
    created = await resolver.resolve(github(display_name="Original Name"))
    linked = await resolver.resolve(google(display_name="Another Name"))

    assert linked.id == created.id
    assert linked.display_name == "Original Name"
    assert [p.provider for p in linked.providers] == ["github", "google"]
    assert await count(db_session, User) == 1
    assert await count(db_session, ProviderIdentity) == 2


@pytest.mark.asyncio
async def test_linked_identity_stores_its_tokens(db_session):
    resolver = IdentityResolver(db_session)
    await resolver.resolve(github())
    user = await resolver.resolve(google(access_token="ga", refresh_token="gr"))

    identity = user.find_provider(Provider.GOOGLE)
    assert identity.access_token == "ga"
    assert identity.refresh_token == "gr"


# ═══════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("email", [None, "", "   "])
async def test_missing_email_is_rejected_without_writes(db_session, email):
    with pytest.raises(MissingEmailError):
        await IdentityResolver(db_session).resolve(google(email=email))
    assert await count(db_session, User) == 0


@pytest.mark.asyncio
async def test_missing_default_role_is_fatal(unseeded_session):
    with pytest.raises(MissingDefaultRoleError):
        await IdentityResolver(unseeded_session).resolve(google())
    assert await count(unseeded_session, User) == 0


@pytest.mark.asyncio
async def test_email_provider_is_not_resolved_here(db_session):
    assertion = IdentityAssertion(
        provider=Provider.EMAIL, provider_id="a@x.com", email="a@x.com"
    )
    with pytest.raises(ValueError):
        await IdentityResolver(db_session).resolve(assertion)


# ═══════════════════════════════════════════════════════════
# Concurrency
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_lost_insert_race_resolves_to_existing_user(db_session):
    """Second of two concurrent first-time callbacks.

    The first lookups miss (the competing request hadn't committed yet),
    the insert hits the unique constraint, and the retry finds the winner.
    """
    winner = await IdentityResolver(db_session).resolve(google())

    loser = IdentityResolver(db_session)
    real_by_identity = loser.store.find_by_identity
    real_by_email = loser.store.find_by_email
    calls = {"identity": 0, "email": 0}

    async def stale_by_identity(provider, provider_id):
        calls["identity"] += 1
        if calls["identity"] == 1:
            return None
        return await real_by_identity(provider, provider_id)

    async def stale_by_email(email):
        calls["email"] += 1
        if calls["email"] == 1:
            return None
        return await real_by_email(email)

    loser.store.find_by_identity = stale_by_identity
    loser.store.find_by_email = stale_by_email

    user = await loser.resolve(google(access_token="from-loser"))

    assert user.id == winner.id
    assert calls["identity"] == 2
    assert await count(db_session, User) == 1
    assert await count(db_session, ProviderIdentity) == 1
    assert user.providers[0].access_token == "from-loser"
