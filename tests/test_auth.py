from datetime import datetime, timedelta, timezone

import jwt
import pytest

from auth import CredentialStore, Identity, SessionIssuer
from errors import DuplicateUsername, InvalidCredentials, ValidationError
from models import User

SECRET = 'unit-test-secret-0123456789abcdef0123'


def test_register_stores_hash_not_password(app):
    with app.app_context():
        user = CredentialStore().register('  alice ', 'hunter2')
        assert user.id is not None
        assert user.username == 'alice'
        assert user.password_hash != 'hunter2'
        assert 'hunter2' not in user.password_hash


def test_register_duplicate_leaves_first_user_untouched(app):
    with app.app_context():
        store = CredentialStore()
        first = store.register('alice', 'one')
        first_hash = first.password_hash
        with pytest.raises(DuplicateUsername):
            store.register('alice', 'two')
        assert User.query.filter_by(username='alice').count() == 1
        assert store.find_by_username('alice').password_hash == first_hash
        assert store.verify('alice', 'one') == Identity(id=first.id, username='alice')


@pytest.mark.parametrize('username,password', [('', 'x'), ('   ', 'x'), ('bob', ''), (None, 'x'), ('bob', None)])
def test_register_requires_username_and_password(app, username, password):
    with app.app_context():
        with pytest.raises(ValidationError):
            CredentialStore().register(username, password)
        assert User.query.count() == 0


def test_verify_does_not_reveal_which_part_failed(app):
    with app.app_context():
        store = CredentialStore()
        store.register('alice', 'right')
        with pytest.raises(InvalidCredentials) as wrong_pw:
            store.verify('alice', 'wrong')
        with pytest.raises(InvalidCredentials) as no_user:
            store.verify('nobody', 'right')
        assert wrong_pw.value.message == no_user.value.message
        assert wrong_pw.value.status_code == no_user.value.status_code


def test_token_valid_within_lifetime_and_rejected_after():
    issuer = SessionIssuer(SECRET)
    ident = Identity(id=7, username='alice')
    now = datetime.now(timezone.utc)

    assert issuer.verify(issuer.issue(ident)) == ident
    assert issuer.verify(issuer.issue(ident, now=now - timedelta(hours=23))) == ident
    assert issuer.verify(issuer.issue(ident, now=now - timedelta(hours=25))) is None


def test_token_carries_identity_and_24h_expiry():
    issuer = SessionIssuer(SECRET)
    now = datetime(2030, 1, 1, tzinfo=timezone.utc)
    token = issuer.issue(Identity(id=3, username='bob'), now=now)
    payload = jwt.decode(token, SECRET, algorithms=['HS256'], options={'verify_exp': False})
    assert payload['id'] == 3
    assert payload['username'] == 'bob'
    assert payload['exp'] - payload['iat'] == 24 * 3600


@pytest.mark.parametrize('token', [None, '', 'garbage', 'a.b.c'])
def test_malformed_tokens_yield_no_identity(token):
    assert SessionIssuer(SECRET).verify(token) is None


def test_token_signed_with_other_secret_is_rejected():
    token = SessionIssuer('another-secret-0123456789abcdef01234').issue(Identity(id=1, username='alice'))
    assert SessionIssuer(SECRET).verify(token) is None


def test_token_without_identity_claims_is_rejected():
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode({'iat': now, 'exp': now + 60}, SECRET, algorithm='HS256')
    assert SessionIssuer(SECRET).verify(token) is None


def test_blank_secret_is_refused():
    with pytest.raises(ValueError):
        SessionIssuer('')


def test_register_losing_unique_race_reports_duplicate(app, monkeypatch):
    with app.app_context():
        store = CredentialStore()
        store.register('alice', 'one')
        # another request inserted the row between the lookup and the commit
        monkeypatch.setattr(store, 'find_by_username', lambda username: None)
        with pytest.raises(DuplicateUsername):
            store.register('alice', 'two')
        assert not store.session.new
        assert User.query.filter_by(username='alice').count() == 1
        assert store.verify('alice', 'one').username == 'alice'


@pytest.mark.parametrize('email', [['x'], 42, {'a': 1}, 'x' * 256])
def test_register_rejects_bad_email(app, email):
    with app.app_context():
        with pytest.raises(ValidationError):
            CredentialStore().register('alice', 'pw', email=email)
        assert User.query.count() == 0


def test_register_rejects_overlong_username(app):
    with app.app_context():
        with pytest.raises(ValidationError):
            CredentialStore().register('a' * 101, 'pw')
        assert User.query.count() == 0
