import pytest


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Async tests run on asyncio only."""

    return request.param
