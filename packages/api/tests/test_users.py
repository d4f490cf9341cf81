"""Tests for the user directory and profile operations."""

import uuid
from unittest.mock import AsyncMock

import pytest
from db.enums import ConnectionId
from db.models import UserConnection

from src.services.activity import Actor
from src.services.errors import BadRequestError, NotFoundError
from src.services.users import (
    ANONYMOUS_NAME,
    UserDirectory,
    anonymize_and_delete,
    list_connection_ids,
    update_profile,
)
from tests.factories import make_session, make_user, result_of


@pytest.mark.asyncio
async def test_placeholders_get_display_name_and_no_password():
    activities = AsyncMock()
    directory = UserDirectory(make_session(), activities)

    users = await directory.create_placeholders(
        {"mari.maasikas@example.com": "et"}, Actor.system(), "POST /api/x"
    )

    (user,) = users
    assert user.name == "Mari Maasikas"
    assert user.password is None
    assert user.language == "et"
    assert user.email_is_verified is False
    activities.record_create.assert_awaited_once()


@pytest.mark.asyncio
async def test_no_placeholders_means_no_flush():
    session = make_session()
    directory = UserDirectory(session, AsyncMock())
    assert await directory.create_placeholders({}, Actor.system(), None) == []
    session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_by_emails_keys_lower_case():
    user = make_user(email="Mari@Example.com")
    directory = UserDirectory(make_session(result_of(rows=[user])), AsyncMock())
    found = await directory.find_by_emails(["MARI@example.com "])
    assert found == {"mari@example.com": user}


@pytest.mark.asyncio
async def test_confirm_email_sets_flag():
    user = make_user()
    directory = UserDirectory(make_session(result_of(user)), AsyncMock())
    await directory.confirm_email(user.id)
    assert user.email_is_verified is True


# ---------------------------------------------------------------------------
# Profile updates
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_email_change_resets_verification():
    user = make_user(email="old@example.com", email_is_verified=True)
    old_code = user.email_verification_code
    connection = UserConnection(
        user_id=user.id, connection_id=ConnectionId.CITIZENOS, connection_user_id=str(user.id)
    )
    session = make_session(result_of(user), result_of(None), result_of(connection))

    updated, email_changed = await update_profile(
        session, AsyncMock(), user.id, Actor.user(user.id), None, email="new@example.com"
    )

    assert email_changed is True
    assert updated.email == "new@example.com"
    assert updated.email_is_verified is False
    assert updated.email_verification_code != old_code
    assert connection.connection_data["email"] == "new@example.com"


@pytest.mark.asyncio
async def test_email_change_case_only_is_not_a_change():
    user = make_user(email="mari@example.com", email_is_verified=True)
    session = make_session(result_of(user))

    _, email_changed = await update_profile(
        session, AsyncMock(), user.id, Actor.user(user.id), None, email="MARI@example.com"
    )

    assert email_changed is False
    assert user.email_is_verified is True


@pytest.mark.asyncio
async def test_email_taken_by_someone_else():
    user = make_user(email="old@example.com")
    other = make_user(email="new@example.com")
    session = make_session(result_of(user), result_of(other))

    with pytest.raises(BadRequestError) as exc_info:
        await update_profile(
            session, AsyncMock(), user.id, Actor.user(user.id), None, email="new@example.com"
        )
    assert exc_info.value.code == 40002


@pytest.mark.asyncio
async def test_terms_acceptance_is_stamped():
    user = make_user()
    session = make_session(result_of(user))

    await update_profile(
        session, AsyncMock(), user.id, Actor.user(user.id), None, terms_version="2.1"
    )

    assert user.terms_version == "2.1"
    assert user.terms_accepted_at is not None


@pytest.mark.asyncio
async def test_anonymize_scrubs_personal_data():
    user = make_user(company="ACME")
    activities = AsyncMock()
    session = make_session(result_of(user), result_of())

    await anonymize_and_delete(session, activities, user.id, Actor.user(user.id), None)

    assert user.name == ANONYMOUS_NAME
    assert user.email is None
    assert user.company is None
    assert user.is_deleted
    activities.record_delete.assert_awaited_once()


# ---------------------------------------------------------------------------
# Connection listing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_connection_ids_are_sorted():
    user = make_user()
    session = make_session(
        result_of(user),
        result_of(rows=[ConnectionId.SMARTID, ConnectionId.CITIZENOS, ConnectionId.ESTEID]),
    )
    assert await list_connection_ids(session, str(user.id)) == ["citizenos", "esteid", "smartid"]


@pytest.mark.asyncio
async def test_connection_ids_by_email():
    user = make_user()
    session = make_session(result_of(user), result_of(rows=[ConnectionId.GOOGLE]))
    assert await list_connection_ids(session, "Owner@Example.com") == ["google"]


@pytest.mark.asyncio
async def test_connection_ids_invalid_identifier():
    with pytest.raises(BadRequestError) as exc_info:
        await list_connection_ids(make_session(), "not-an-id")
    assert exc_info.value.code == 40001


@pytest.mark.asyncio
async def test_connection_ids_unknown_user():
    with pytest.raises(NotFoundError):
        await list_connection_ids(make_session(result_of(None)), str(uuid.uuid4()))
