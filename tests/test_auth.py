import time
from urllib.parse import parse_qs, urlparse

import pytest
from jose import jwt

from job_tracker.auth import AuthChangeEvent, pwd_context
from job_tracker.client import MockClient
from job_tracker.exceptions import AuthArgumentError


# ── Sign up / sign in ──────────────────────────────────────────────────────────

async def test_sign_up_creates_user_profile_and_session(client):
    result = await client.auth.sign_up(email="ada@example.com", password="lovelace", bio="Analyst")

    assert result.error is None
    user, session = result.data.user, result.data.session
    assert user.email == "ada@example.com"
    assert user.user_metadata.name == "ada"
    assert session.user.id == user.id
    assert session.expires_at > time.time()
    assert session.access_token != session.refresh_token

    profile = client.database.get("user_profiles", user.id)
    assert profile["email"] == "ada@example.com"
    assert profile["bio"] == "Analyst"
    assert client.database.get("users", user.id)["email"] == "ada@example.com"


@pytest.mark.parametrize("kwargs", [
    {"password": "secret123"},
    {"email": "ada@example.com"},
    {"email": "", "password": "secret123"},
])
async def test_sign_up_missing_arguments_raise(client, kwargs):
    with pytest.raises(AuthArgumentError):
        await client.auth.sign_up(**kwargs)


@pytest.mark.parametrize("email,password,code", [
    ("not-an-email", "secret123", "invalid_email"),
    ("ada@example", "secret123", "invalid_email"),
    ("ada@example.com", "123", "weak_password"),
])
async def test_sign_up_validation(client, email, password, code):
    result = await client.auth.sign_up(email=email, password=password)
    assert result.data.user is None
    assert result.error.code == code
    assert client.auth.current_session is None


async def test_sign_up_duplicate_email_is_case_insensitive(client):
    await client.auth.sign_up(email="ada@example.com", password="secret123")
    result = await client.auth.sign_up(email="ADA@example.com", password="secret123")
    assert result.error.code == "user_already_exists"
    assert result.error.status == 422


async def test_sign_in_with_password(client, fixtures):
    user = await fixtures.create_user("ada@example.com", password="secret123")
    await client.auth.sign_out()

    result = await client.auth.sign_in_with_password(email="ada@example.com", password="secret123")

    assert result.error is None
    assert result.data.user.id == user.id
    assert client.auth.current_session.user.id == user.id


@pytest.mark.parametrize("email,password", [
    ("ada@example.com", "wrong-password"),
    ("nobody@example.com", "secret123"),
])
async def test_sign_in_with_bad_credentials(client, fixtures, email, password):
    await fixtures.create_user("ada@example.com", password="secret123")
    await client.auth.sign_out()

    result = await client.auth.sign_in_with_password(email=email, password=password)

    assert result.error.code == "invalid_credentials"
    assert result.error.message == "Invalid login credentials"
    assert client.auth.current_session is None


async def test_sign_in_missing_arguments_raise(client):
    with pytest.raises(AuthArgumentError):
        await client.auth.sign_in_with_password(email="ada@example.com")


async def test_sign_in_during_network_error(client, fixtures):
    await fixtures.create_user("ada@example.com", password="secret123")
    client.simulate_network_error()
    result = await client.auth.sign_in_with_password(email="ada@example.com", password="secret123")
    assert result.error.code == "network_error"


# ── Passwords & tokens ─────────────────────────────────────────────────────────

async def test_access_token_is_a_signed_jwt(client, config, user_a):
    session = client.auth.current_session

    access = jwt.decode(session.access_token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    refresh = jwt.decode(session.refresh_token, config.jwt_secret, algorithms=[config.jwt_algorithm])

    assert (access["sub"], access["email"], access["type"]) == (user_a.id, "alice@example.com", "access")
    assert access["exp"] == session.expires_at
    assert refresh["type"] == "refresh"
    assert refresh["exp"] > session.expires_at


async def test_passwords_are_stored_as_bcrypt_hashes(client, fixtures):
    await fixtures.create_user("ada@example.com", password="secret123")
    stored = client.auth._credentials["ada@example.com"].password_hash

    assert pwd_context.identify(stored) == "bcrypt"
    assert "secret123" not in stored


async def test_password_longer_than_bcrypt_limit(client):
    password = "p" * 100
    await client.auth.sign_up(email="ada@example.com", password=password)
    await client.auth.sign_out()

    result = await client.auth.sign_in_with_password(email="ada@example.com", password=password)

    assert result.error is None


async def test_get_user_from_access_token(client, user_a):
    token = client.auth.current_session.access_token
    await client.auth.sign_out()

    result = await client.auth.get_user(jwt=token)

    assert result.error is None
    assert result.data.user.id == user_a.id


async def test_get_user_rejects_foreign_and_refresh_tokens(client, user_a):
    session = client.auth.current_session
    forged = jwt.encode(
        {"sub": user_a.id, "type": "access", "exp": session.expires_at}, "not-the-secret", algorithm="HS256"
    )

    for token in (forged, session.refresh_token, "not-a-jwt"):
        result = await client.auth.get_user(jwt=token)
        assert result.data.user is None
        assert (result.error.code, result.error.status) == ("bad_jwt", 401)


# ── Session readers ────────────────────────────────────────────────────────────

async def test_sign_out_clears_session(client, user_a):
    assert (await client.auth.get_user()).data.user.id == user_a.id

    await client.auth.sign_out()

    assert (await client.auth.get_user()).data.user is None
    assert (await client.auth.get_session()).data.session is None


async def test_expired_session_is_treated_as_absent(client, fixtures, user_a, monkeypatch):
    fixtures.create_application(user_a.id)
    expires_at = client.auth.current_session.expires_at
    monkeypatch.setattr(time, "time", lambda: expires_at + 1)

    assert (await client.auth.get_session()).data.session is None
    assert (await client.from_("applications").select()).data == []


async def test_sessions_are_per_client(config, fixtures, user_a):
    other = MockClient(config)
    assert other.auth.current_session is None
    assert fixtures.client.auth.current_session is not None


# ── update_user ────────────────────────────────────────────────────────────────

async def test_update_user_without_session(client):
    result = await client.auth.update_user(data={"name": "Ghost"})
    assert result.error.code == "no_user"
    assert result.error.message == "No user to update"
    assert result.error.status == 401


async def test_update_user_metadata_syncs_profile(client, user_a):
    before = client.database.get("users", user_a.id)

    result = await client.auth.update_user(data={"name": "Alice L.", "bio": "Engineer"})

    assert result.error is None
    assert result.data.user.user_metadata.name == "Alice L."
    assert result.data.user.updated_at > before["updated_at"]
    assert result.data.user.created_at == before["created_at"]
    profile = client.database.get("user_profiles", user_a.id)
    assert (profile["name"], profile["bio"]) == ("Alice L.", "Engineer")
    assert client.auth.current_session.user.user_metadata.name == "Alice L."


async def test_update_email_and_password(client, user_a):
    result = await client.auth.update_user(email="alice@work.example.com", password="new-password")
    assert result.error is None
    await client.auth.sign_out()

    old = await client.auth.sign_in_with_password(email="alice@example.com", password="new-password")
    new = await client.auth.sign_in_with_password(email="alice@work.example.com", password="new-password")

    assert old.error.code == "invalid_credentials"
    assert new.error is None
    assert new.data.user.id == user_a.id
    assert client.database.get("user_profiles", user_a.id)["email"] == "alice@work.example.com"


async def test_update_email_to_taken_address(client, fixtures, user_a, user_b):
    await fixtures.sign_in_as(user_a)
    result = await client.auth.update_user(email="bob@example.com")
    assert result.error.code == "user_already_exists"


# ── Password reset & OAuth ─────────────────────────────────────────────────────

async def test_reset_password_for_email(client):
    assert (await client.auth.reset_password_for_email("ada@example.com")).error is None
    assert (await client.auth.reset_password_for_email("nope")).error.code == "invalid_email"


async def test_oauth_url_with_redirect(client):
    result = await client.auth.sign_in_with_oauth("github", redirect_to="http://localhost:3000/auth/callback")

    url = urlparse(result.data.url)
    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://github.com/login/oauth/authorize"
    assert parse_qs(url.query) == {"redirect_uri": ["http://localhost:3000/auth/callback"]}


async def test_oauth_without_redirect(client):
    result = await client.auth.sign_in_with_oauth("google")
    assert result.data.url == "https://accounts.google.com/o/oauth2/v2/auth"


async def test_oauth_unknown_provider(client):
    result = await client.auth.sign_in_with_oauth("myspace")
    assert result.data.url is None
    assert result.error.code == "invalid_provider"


async def test_oauth_missing_provider_raises(client):
    with pytest.raises(AuthArgumentError):
        await client.auth.sign_in_with_oauth("")


# ── Auth state listeners ───────────────────────────────────────────────────────

async def test_auth_state_change_listener(client):
    seen = []
    sub = client.auth.on_auth_state_change(lambda event, session: seen.append((event, session is not None)))

    await client.auth.sign_up(email="ada@example.com", password="secret123")
    await client.auth.update_user(data={"bio": "hi"})
    await client.auth.sign_out()
    sub.unsubscribe()
    await client.auth.sign_in_with_password(email="ada@example.com", password="secret123")

    assert seen == [
        (AuthChangeEvent.SIGNED_IN, True),
        (AuthChangeEvent.USER_UPDATED, True),
        (AuthChangeEvent.SIGNED_OUT, False),
    ]


async def test_failing_listener_does_not_break_sign_in(client):
    def broken(event, session):
        raise RuntimeError("boom")

    client.auth.on_auth_state_change(broken)
    result = await client.auth.sign_up(email="ada@example.com", password="secret123")
    assert result.error is None
