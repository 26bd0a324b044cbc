import pytest
from prometheus_client import CollectorRegistry

from devserver.utils_tests.backend_mock import LOCAL_PAGE


@pytest.fixture
def build_dir(tmp_path):
    """
    A local build output laid out the way the bundler writes it: files below
    the asset prefix sit at the top of the build directory.
    """
    (tmp_path / "index.html").write_text(LOCAL_PAGE, encoding="utf-8")
    (tmp_path / "main.js").write_text("console.log('local bundle');")
    (tmp_path / "chunks").mkdir()
    (tmp_path / "chunks" / "1.js").write_text("console.log('chunk');")
    return tmp_path


@pytest.fixture
def metrics_registry():
    """Keeps each test app's metrics out of the global registry."""
    return CollectorRegistry()
