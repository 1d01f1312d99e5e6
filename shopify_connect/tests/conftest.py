import pytest
from rest_framework.test import APIClient

from shopify_connect.tests.factories import make_store


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(
        username="merchant", email="merchant@example.com", password="pw"
    )


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(
        username="intruder", email="intruder@example.com", password="pw"
    )


@pytest.fixture
def store(user):
    return make_store(user)


@pytest.fixture
def disconnected_store(user):
    return make_store(
        user,
        connected=False,
        name="Fresh Shop",
        shopify_domain="fresh-shop.myshopify.com",
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def mock_statsd(mocker):
    return mocker.patch("shopify_connect.tasks.statsd")
