"""Tests for the in-memory identity and provider token stores."""

import asyncio

import pytest

from authgate.core.errors import (
    AlreadyEnabled,
    DuplicateEmail,
    DuplicateUsername,
    EmailInUse,
    MissingField,
    NotEnrolling,
    ProviderAlreadyLinkedElsewhere,
    ProviderNotLinked,
    UserNotFound,
)
from authgate.store.base import ProviderLink, ProviderTokenRecord
from authgate.store.memory import MemoryIdentityStore, MemoryProviderTokenStore


@pytest.fixture
def store():
    return MemoryIdentityStore()


async def _user(store, email="a@x.com", username="alice"):
    return await store.create_user(email, username, "$2b$04$hash")


def _github(provider_id="42"):
    return ProviderLink(provider="github", provider_id=provider_id, display_name="octocat")


# ── Users ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_and_lookup(store):
    user = await _user(store, email="  A@X.com ")
    assert user.email == "a@x.com"
    assert user.two_factor.enabled is False
    assert user.providers == {}

    assert (await store.get_by_id(user.id)).id == user.id
    assert (await store.get_by_email("a@X.COM")).id == user.id
    assert (await store.get_by_username("ALICE")).id == user.id
    assert await store.get_by_id("missing") is None


@pytest.mark.asyncio
async def test_duplicate_email_and_username(store):
    await _user(store)
    with pytest.raises(DuplicateEmail):
        await _user(store, email="A@x.com", username="bob")
    with pytest.raises(DuplicateUsername):
        await _user(store, email="b@x.com", username="Alice")


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["email", "username", "password"])
async def test_create_requires_every_field(store, field):
    values = {"email": "a@x.com", "username": "alice", "password": "$2b$04$hash"}
    values[field] = "  "
    with pytest.raises(MissingField) as exc:
        await store.create_user(values["email"], values["username"], values["password"])
    assert exc.value.field == field


@pytest.mark.asyncio
async def test_returned_users_are_snapshots(store):
    user = await _user(store)
    user.username = "mallory"
    user.providers["github"] = _github()
    fresh = await store.get_by_id(user.id)
    assert fresh.username == "alice"
    assert fresh.providers == {}


@pytest.mark.asyncio
async def test_update_profile_moves_indexes(store):
    user = await _user(store)
    updated = await store.update_profile(user.id, email="new@x.com", username="alicia")
    assert updated.email == "new@x.com"
    assert updated.username == "alicia"
    assert await store.get_by_email("a@x.com") is None
    assert await store.get_by_username("alice") is None
    # The old email and username are free again
    await _user(store)


@pytest.mark.asyncio
async def test_update_profile_conflicts(store):
    alice = await _user(store)
    await _user(store, email="b@x.com", username="bob")
    with pytest.raises(EmailInUse):
        await store.update_profile(alice.id, email="B@x.com")
    with pytest.raises(DuplicateUsername):
        await store.update_profile(alice.id, username="BOB")
    # Own values are not a conflict
    same = await store.update_profile(alice.id, email="a@x.com", username="alice")
    assert same.email == "a@x.com"


@pytest.mark.asyncio
async def test_update_profile_unknown_user(store):
    with pytest.raises(UserNotFound):
        await store.update_profile("missing", username="x")


@pytest.mark.asyncio
async def test_list_users_in_creation_order(store):
    a = await _user(store)
    b = await _user(store, email="b@x.com", username="bob")
    assert [u.id for u in await store.list_users()] == [a.id, b.id]


@pytest.mark.asyncio
async def test_record_login_and_change_password(store):
    user = await _user(store)
    assert user.last_login_at is None
    await store.record_login(user.id)
    await store.change_password(user.id, "$2b$04$other")
    fresh = await store.get_by_id(user.id)
    assert fresh.last_login_at is not None
    assert fresh.password_hash == "$2b$04$other"


# ── Provider links ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_link_and_lookup_by_provider(store):
    user = await _user(store)
    linked = await store.link_provider(user.id, _github())
    assert linked.provider_names() == ["github"]
    assert (await store.get_by_provider("github", "42")).id == user.id
    assert await store.get_by_provider("discord", "42") is None


@pytest.mark.asyncio
async def test_provider_account_has_one_owner(store):
    """A links GitHub 42; B is refused; A unlinks; B succeeds."""
    a = await _user(store)
    b = await _user(store, email="b@x.com", username="bob")

    await store.link_provider(a.id, _github())
    with pytest.raises(ProviderAlreadyLinkedElsewhere):
        await store.link_provider(b.id, _github())

    await store.unlink_provider(a.id, "github")
    await store.link_provider(b.id, _github())
    assert (await store.get_by_provider("github", "42")).id == b.id


@pytest.mark.asyncio
async def test_concurrent_links_have_one_winner(store):
    users = [
        await _user(store, email=f"u{i}@x.com", username=f"user{i}") for i in range(5)
    ]
    results = await asyncio.gather(
        *(store.link_provider(u.id, _github()) for u in users), return_exceptions=True
    )
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, ProviderAlreadyLinkedElsewhere)]
    assert len(winners) == 1
    assert len(losers) == 4
    owner = await store.get_by_provider("github", "42")
    assert owner.id == winners[0].id


@pytest.mark.asyncio
async def test_relink_same_account_keeps_link_time(store):
    user = await _user(store)
    first = await store.link_provider(user.id, _github())
    again = await store.link_provider(user.id, _github())
    assert again.providers["github"].linked_at == first.providers["github"].linked_at


@pytest.mark.asyncio
async def test_relink_other_account_frees_old_pair(store):
    user = await _user(store)
    await store.link_provider(user.id, _github("42"))
    await store.link_provider(user.id, _github("43"))
    assert await store.get_by_provider("github", "42") is None
    assert (await store.get_by_provider("github", "43")).id == user.id


@pytest.mark.asyncio
async def test_unlink_missing_provider(store):
    user = await _user(store)
    with pytest.raises(ProviderNotLinked):
        await store.unlink_provider(user.id, "github")


@pytest.mark.asyncio
async def test_delete_cascades(store):
    user = await _user(store)
    await store.link_provider(user.id, _github())
    await store.delete_user(user.id)

    assert await store.get_by_id(user.id) is None
    assert await store.get_by_provider("github", "42") is None
    other = await _user(store)
    await store.link_provider(other.id, _github())

    with pytest.raises(UserNotFound):
        await store.delete_user(user.id)


# ── Second factor ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_two_factor_lifecycle(store):
    user = await _user(store)
    await store.begin_two_factor(user.id, "SECRET1")
    assert (await store.get_by_id(user.id)).two_factor.enrolling

    await store.enable_two_factor(user.id, "SECRET1", ["d1", "d2"])
    state = (await store.get_by_id(user.id)).two_factor
    assert state.enabled and state.backup_codes_remaining == 2

    with pytest.raises(AlreadyEnabled):
        await store.begin_two_factor(user.id, "SECRET2")

    await store.clear_two_factor(user.id)
    state = (await store.get_by_id(user.id)).two_factor
    assert not state.enabled and state.secret is None and state.backup_codes == []


@pytest.mark.asyncio
async def test_enable_with_stale_secret(store):
    user = await _user(store)
    await store.begin_two_factor(user.id, "SECRET1")
    await store.begin_two_factor(user.id, "SECRET2")
    with pytest.raises(NotEnrolling):
        await store.enable_two_factor(user.id, "SECRET1", ["d1"])


@pytest.mark.asyncio
async def test_backup_code_is_consumed_once(store):
    user = await _user(store)
    await store.begin_two_factor(user.id, "S")
    await store.enable_two_factor(user.id, "S", ["d1", "d2"])

    assert await store.consume_backup_code(user.id, "d1") is True
    assert await store.consume_backup_code(user.id, "d1") is False
    assert await store.consume_backup_code(user.id, "unknown") is False

    state = (await store.get_by_id(user.id)).two_factor
    assert state.backup_codes_remaining == 1
    used = [bc for bc in state.backup_codes if bc.used]
    assert len(used) == 1 and used[0].used_at is not None


@pytest.mark.asyncio
async def test_concurrent_backup_code_use(store):
    user = await _user(store)
    await store.begin_two_factor(user.id, "S")
    await store.enable_two_factor(user.id, "S", ["d1"])
    results = await asyncio.gather(
        *(store.consume_backup_code(user.id, "d1") for _ in range(5))
    )
    assert results.count(True) == 1


# ── Provider tokens ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_provider_token_store():
    tokens = MemoryProviderTokenStore()
    await tokens.put(ProviderTokenRecord(user_id="u1", provider="github", access_token="x"))
    await tokens.put(ProviderTokenRecord(user_id="u1", provider="discord", access_token="y"))
    await tokens.put(ProviderTokenRecord(user_id="u2", provider="github", access_token="z"))

    assert {r.provider for r in await tokens.list_for_user("u1")} == {"github", "discord"}
    assert await tokens.discard("u1", "github") is True
    assert await tokens.discard("u1", "github") is False
    assert await tokens.discard_all("u1") == 1
    assert await tokens.list_for_user("u1") == []
    assert len(await tokens.list_for_user("u2")) == 1
