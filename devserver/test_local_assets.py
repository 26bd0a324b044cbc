import pytest

from devserver.local_assets import LocalAssets
from devserver.utils_tests.backend_mock import make_request


@pytest.fixture
def assets(build_dir):
    return LocalAssets(str(build_dir), "/web/app/")


def test_relative_path(assets):
    assert assets.relative_path("/web/app/main.js") == "main.js"
    assert assets.relative_path("/web/app/chunks/1.js") == "chunks/1.js"
    assert assets.relative_path("/web/app/") is None
    assert assets.relative_path("/web/application.js") is None
    assert assets.relative_path("/web/") is None


@pytest.mark.asyncio
async def test_existing_file(assets):
    response = await assets.get_response(make_request("/web/app/main.js"))
    assert response is not None
    assert response.status_code == 200
    assert response.media_type in ("text/javascript", "application/javascript")


@pytest.mark.asyncio
async def test_missing_file(assets):
    assert await assets.get_response(make_request("/web/app/nope.js")) is None


@pytest.mark.asyncio
async def test_directory_is_not_a_file(assets):
    assert await assets.get_response(make_request("/web/app/")) is None


@pytest.mark.asyncio
async def test_missing_build_dir(tmp_path):
    assets = LocalAssets(str(tmp_path / "not-built"), "/web/app")
    assert await assets.get_response(make_request("/web/app/main.js")) is None


@pytest.mark.asyncio
async def test_nested_file(assets):
    response = await assets.get_response(make_request("/web/app/chunks/1.js"))
    assert response is not None
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_prefix_is_not_repeated_on_disk(assets):
    assert await assets.get_response(make_request("/web/app/app/main.js")) is None
