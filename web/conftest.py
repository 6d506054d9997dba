import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    from django.core.cache import cache
    from apps.checkout import providers

    settings.USE_HTTP_ADAPTERS = False
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    # throttle counters live in the cache and user ids get reused between tests
    cache.clear()
    providers.reset_stub_inventory()


@pytest.fixture
def shopper(client, django_user_model):
    """A logged-in test client."""
    user = django_user_model.objects.create_user(username="shopper", password="secret123")
    client.force_login(user)
    return client
