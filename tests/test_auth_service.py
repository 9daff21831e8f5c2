import threading

import pytest
from sqlalchemy.exc import OperationalError

from conftest import PASSWORD, expired_issuer
from models.refresh_token import RefreshToken
from models.user import User
from utils.exceptions import DuplicateEmail, InvalidCredentials, NotFound, Unauthorized


def _live_tokens(storage, user_id):
    return (
        storage.get_session()
        .query(RefreshToken)
        .filter(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
        .all()
    )


def test_register_returns_public_view_and_persists_refresh(components):
    result = components.service.register("Alice@Example.com", PASSWORD)
    assert set(result.user) == {"id", "email", "createdAt"}
    assert result.user["email"] == "alice@example.com"

    claims = components.tokens.verify(result.refresh_token)
    record = components.ledger.validate(claims.jti)
    assert record.user_id == result.user["id"]
    assert components.tokens.verify(result.access_token).user_id == result.user["id"]


def test_duplicate_registration_mints_nothing(components):
    components.service.register("alice@example.com", PASSWORD)
    with pytest.raises(DuplicateEmail):
        components.service.register("ALICE@example.com", PASSWORD)
    assert components.storage.get_session().query(RefreshToken).count() == 1


def test_login_view_has_no_created_at(components):
    components.service.register("bob@example.com", PASSWORD)
    result = components.service.login("bob@example.com", PASSWORD)
    assert set(result.user) == {"id", "email"}


def test_login_with_bad_password_issues_no_tokens(components):
    components.service.register("bob@example.com", PASSWORD)
    with pytest.raises(InvalidCredentials):
        components.service.login("bob@example.com", "nope-nope")
    assert components.storage.get_session().query(RefreshToken).count() == 1


def test_refresh_rotates_and_old_token_is_dead(components):
    first = components.service.register("carol@example.com", PASSWORD)
    second = components.service.refresh(first.refresh_token)

    assert second.refresh_token != first.refresh_token
    assert second.user["id"] == first.user["id"]
    assert components.tokens.verify(second.access_token).user_id == first.user["id"]

    with pytest.raises(Unauthorized):
        components.service.refresh(first.refresh_token)
    # the replay does not kill the legitimate successor
    third = components.service.refresh(second.refresh_token)
    assert [t.jti for t in _live_tokens(components.storage, first.user["id"])] == [
        components.tokens.verify(third.refresh_token).jti
    ]


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
def test_refresh_rejects_unusable_input(components, token):
    with pytest.raises(Unauthorized):
        components.service.refresh(token)


def test_refresh_rejects_access_token(components):
    session = components.service.register("dave@example.com", PASSWORD)
    with pytest.raises(Unauthorized):
        components.service.refresh(session.access_token)


def test_refresh_rejects_expired_token(app, components):
    user = components.credentials.register("erin@example.com", PASSWORD)
    stale = expired_issuer(app.config["JWT_SECRET"])
    token, jti, expires_at = stale.sign_refresh(user.id)
    components.ledger.persist(jti, user.id, expires_at)
    with pytest.raises(Unauthorized):
        components.service.refresh(token)


def test_refresh_rejects_signed_token_missing_from_ledger(components):
    user = components.credentials.register("frank@example.com", PASSWORD)
    token, _, _ = components.tokens.sign_refresh(user.id)
    with pytest.raises(Unauthorized):
        components.service.refresh(token)


def test_refresh_for_deleted_user_is_unauthorized(components):
    session = components.service.register("gina@example.com", PASSWORD)
    db = components.storage.get_session()
    db.query(User).filter(User.id == session.user["id"]).delete()
    db.commit()
    with pytest.raises(Unauthorized):
        components.service.refresh(session.refresh_token)


def test_refresh_errors_are_indistinguishable(components):
    session = components.service.register("hank@example.com", PASSWORD)
    components.service.refresh(session.refresh_token)

    messages = set()
    for token in (session.refresh_token, "garbage", session.access_token, None):
        with pytest.raises(Unauthorized) as exc:
            components.service.refresh(token)
        messages.add((type(exc.value), exc.value.code, exc.value.message))
    assert len(messages) == 1


def test_logout_revokes_presented_token(components):
    session = components.service.register("ivy@example.com", PASSWORD)
    assert components.service.logout(session.refresh_token) is True
    assert components.service.logout(session.refresh_token) is False
    with pytest.raises(Unauthorized):
        components.service.refresh(session.refresh_token)


@pytest.mark.parametrize("token", [None, "", "garbage"])
def test_logout_without_usable_token_still_succeeds(components, token):
    assert components.service.logout(token) is False


def test_logout_all_kills_every_device(components):
    laptop = components.service.register("jack@example.com", PASSWORD)
    phone = components.service.login("jack@example.com", PASSWORD)

    assert components.service.logout_all(laptop.user["id"]) == 2
    for session in (laptop, phone):
        with pytest.raises(Unauthorized):
            components.service.refresh(session.refresh_token)


def test_current_user(components):
    session = components.service.register("kim@example.com", PASSWORD)
    assert components.service.current_user(session.user["id"]) == session.user
    with pytest.raises(NotFound):
        components.service.current_user("00000000-0000-0000-0000-000000000000")


def test_concurrent_double_refresh_has_one_winner(file_app):
    auth = file_app.extensions["auth"]
    start = auth.service.register("race@example.com", PASSWORD)
    user_id = start.user["id"]
    auth.storage.close()

    barrier = threading.Barrier(2)
    outcomes = []

    def refresh():
        try:
            barrier.wait()
            outcomes.append(auth.service.refresh(start.refresh_token))
        except Unauthorized as exc:
            outcomes.append(exc)
        finally:
            auth.storage.close()

    threads = [threading.Thread(target=refresh) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [o for o in outcomes if not isinstance(o, Exception)]
    losers = [o for o in outcomes if isinstance(o, Unauthorized)]
    assert len(winners) == 1
    assert len(losers) == 1

    live = _live_tokens(auth.storage, user_id)
    assert [t.jti for t in live] == [auth.tokens.verify(winners[0].refresh_token).jti]


def test_logout_survives_storage_failure(components, monkeypatch):
    session = components.service.register("lee@example.com", PASSWORD)

    def broken_revoke(jti):
        raise OperationalError("UPDATE refresh_tokens", {}, Exception("database is locked"))

    monkeypatch.setattr(components.ledger, "revoke", broken_revoke)
    assert components.service.logout(session.refresh_token) is False
