"""
Pytest configuration and fixtures for NIT Marketplace tests.

Fixtures are reusable test data/objects that tests can use.
Think of them as "test helpers" that set up common scenarios.
"""
import os
import time
import tempfile

# Point the app at throwaway resources before it is imported
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['UPLOAD_FOLDER'] = tempfile.mkdtemp(prefix='marketplace-test-uploads-')
os.environ['RATELIMIT_ENABLED'] = 'False'
os.environ['INSTITUTE_EMAIL_DOMAIN'] = 'nits.ac.in'
os.environ.pop('AWS_S3_BUCKET', None)

import pytest
from unittest.mock import MagicMock

import identity
from app import app, db, limiter
from models import User, Item
from identity import IdentityClient, ProviderSession


STUDENT_ID = '11111111-1111-1111-1111-111111111111'
OTHER_STUDENT_ID = '22222222-2222-2222-2222-222222222222'


@pytest.fixture(scope='function')
def client():
    """
    Create a test client for the application.

    This fixture:
    - Uses an in-memory SQLite database
    - Sets up test configuration
    - Creates all database tables
    - Yields a test client you can use to make requests
    - Cleans up after the test

    Use this in any test that needs to make HTTP requests.
    """
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False  # Disable CSRF for easier testing
    app.config['SECRET_KEY'] = 'test-secret-key'
    app.config['SERVER_NAME'] = 'localhost'  # Needed for URL building in tests
    app.config['INSTITUTE_EMAIL_DOMAIN'] = 'nits.ac.in'
    app.config['SITE_URL'] = ''
    app.config['AUTH_CALLBACK_FAIL_OPEN'] = True

    # Rate limits would trip on repeated login posts
    limiter.enabled = False

    with app.test_client() as client:
        with app.app_context():
            db.create_all()
            yield client
            db.session.remove()
            db.drop_all()


@pytest.fixture
def fake_identity(monkeypatch):
    """
    Replace the identity provider with a MagicMock.

    Tests set return values / side effects on exchange_code, set_session,
    send_magic_link, oauth_url and sign_out, then assert on the calls.
    """
    fake = MagicMock(spec=IdentityClient)
    monkeypatch.setattr(identity, '_identity', fake)
    return fake


@pytest.fixture
def no_identity(monkeypatch):
    """Run with no identity provider configured."""
    monkeypatch.setattr(identity, '_identity', None)


@pytest.fixture
def make_session():
    """Factory for provider sessions, as the identity provider would issue them."""
    def _make(email='student@cs.nits.ac.in', user_id=STUDENT_ID, access_token='access-abc',
              expires_in=3600):
        return ProviderSession(
            access_token=access_token,
            refresh_token='refresh-abc',
            token_type='bearer',
            expires_at=int(time.time()) + expires_in,
            user_id=user_id,
            email=email,
        )
    return _make


@pytest.fixture
def test_user(client):
    """
    Create a test user with a complete profile.

    Email: student@cs.nits.ac.in (a subdomain of the institute domain)
    """
    user = User(
        id=STUDENT_ID,
        email='student@cs.nits.ac.in',
        full_name='Test Student',
        department='Computer Science',
        scholar_id='2012345',
        whatsapp_number='919876543210'
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def other_user(client):
    """A second user who owns nothing the test user can touch."""
    user = User(
        id=OTHER_STUDENT_ID,
        email='other@nits.ac.in',
        full_name='Other Student',
        department='Electrical Engineering'
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def test_item(client, test_user):
    """
    Create a listing owned by test_user.
    """
    item = Item(
        title='Test Item',
        description='This is a test item description',
        price=500.00,
        price_type='negotiable',
        category='Books/Notes',
        listing_type='sell',
        condition='Good',
        images=['/uploads/test.jpg'],
        user_id=test_user.id
    )
    db.session.add(item)
    db.session.commit()
    return item


@pytest.fixture
def other_item(client, other_user):
    """A listing owned by other_user."""
    item = Item(
        title='Borrowed Oscilloscope',
        description='Digital oscilloscope for the electronics lab',
        price=300.00,
        category='Lab Equipment',
        listing_type='rent',
        images=[],
        user_id=other_user.id
    )
    db.session.add(item)
    db.session.commit()
    return item


def _sign_in(client, user, provider_session):
    with client.session_transaction() as sess:
        sess['_user_id'] = user.id
        sess['_fresh'] = True
        sess['auth_session'] = provider_session.to_dict()
    return client


@pytest.fixture
def authenticated_client(client, test_user, make_session):
    """
    Create an authenticated test client.

    This simulates a signed-in user: a Flask-Login session plus the
    provider session stored after the callback.
    """
    return _sign_in(client, test_user, make_session(email=test_user.email, user_id=test_user.id))


@pytest.fixture
def outsider_client(client, make_session):
    """
    A signed-in user whose email is not on the institute domain.

    Only reachable if the domain gate was bypassed at sign-in, e.g. after the
    allowed domain was changed.
    """
    user = User(id='33333333-3333-3333-3333-333333333333', email='student@other.edu', full_name='Outsider')
    db.session.add(user)
    db.session.commit()
    return _sign_in(client, user, make_session(email=user.email, user_id=user.id, access_token='outsider-token'))
