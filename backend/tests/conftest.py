"""
Pytest fixtures for club shop backend tests.

Each test gets its own DATA_DIR under tmp_path, a fresh session registry,
and a fresh notification dispatcher.
"""

import base64
import io

import pytest
from PIL import Image

from clubshop import create_app
from clubshop.extensions import notifier


OWNER_EMAIL = "owner@club.test"


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'DATA_DIR': str(tmp_path / "data"),
        'OWNER_EMAIL': OWNER_EMAIL,
        'MERCH_SEED_ENABLED': False,
        'PASSWORD_GATE_ENABLED': False,
        'LOGIN_PASSWORD': '',
        'LOGIN_PASSWORD_HASH': '',
        'APPROVAL_REQUIRED': False,
        'STORE_STRICT_READS': False,
        'SMTP_HOST': '',
        'SMTP_USER': '',
        'SMTP_PASS': '',
        'NOTIFY_RETRY_DELAY_SECONDS': 0,
    })
    yield app
    notifier.shutdown()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def register_user(app, email: str, first: str = "Casey", last: str = "Member", initials: str = "CM"):
    """
    Register through the API with a throwaway client so the shared test
    client never picks up the session cookie. Returns the response.
    """
    return app.test_client().post('/api/auth/register', json={
        'email': email,
        'firstName': first,
        'lastName': last,
        'initials': initials,
    })


def get_auth_token(app, email: str, **profile) -> str:
    """Helper to get a session token for a (possibly new) account."""
    response = register_user(app, email, **profile)
    assert response.status_code in (200, 201), response.json
    return response.json['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def owner_headers(app):
    token = get_auth_token(app, OWNER_EMAIL, first="Olive", last="Owner", initials="OO")
    return auth_headers(token)


@pytest.fixture(scope='function')
def member_headers(app):
    token = get_auth_token(app, "member@club.test", first="Morgan", last="Lee", initials="ML")
    return auth_headers(token)


def image_bytes(fmt: str = "PNG", size=(4, 4)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()


def image_data_url(fmt: str = "PNG") -> str:
    mime = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}[fmt]
    return f"data:{mime};base64,{base64.b64encode(image_bytes(fmt)).decode('ascii')}"


def create_merch(client, headers, **overrides) -> dict:
    """Create an item through the owner API and return it."""
    payload = {
        'name': 'Club Hat',
        'price': 25,
        'imageDataUrl': image_data_url(),
        'includeSizes': False,
        'allowInitials': False,
    }
    payload.update(overrides)
    response = client.post('/api/admin/merch', json=payload, headers=headers)
    assert response.status_code == 201, response.json
    return response.json['item']


@pytest.fixture(scope='function')
def hat(client, owner_headers):
    """One-size item at $25."""
    return create_merch(client, owner_headers)


@pytest.fixture(scope='function')
def shirt(client, owner_headers):
    """Sized item at $20 with a $23 2XL override and initials allowed."""
    return create_merch(
        client,
        owner_headers,
        name='Club Shirt',
        price=20,
        includeSizes=True,
        allowInitials=True,
        twoXlPrice=23,
    )
