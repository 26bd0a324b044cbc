import pytest

from devserver.routing import DEFAULT_FORWARD_PATTERNS, Route, RouteMode, RouteTable


@pytest.fixture
def table():
    return RouteTable.from_patterns(DEFAULT_FORWARD_PATTERNS, "/web")


class TestClassify:
    @pytest.mark.parametrize(
        "path",
        [
            "/v1/webapi/sites",
            "/v1/webapi/sites/cluster/nodes",
            "/portalapi/v1/accounts",
            "/portal",
            "/portal/settings",
            "/pack/v1/gravitational.io/app",
            "/proxy/v1/status",
            "/app/v1/repository",
            "/sites/v1/gravitational.io/status",
            "/web/grafana/dashboard/db/cluster",
            "/web/config.js",
        ],
    )
    def test_backend_paths_are_forwarded(self, table, path):
        assert table.classify(path) is RouteMode.FORWARD

    @pytest.mark.parametrize(
        "path", ["/web", "/web/", "/web/login", "/web/app/main.js", "/web/site/x/nodes"]
    )
    def test_root_paths_are_served_locally(self, table, path):
        assert table.classify(path) is RouteMode.SERVE_LOCAL

    @pytest.mark.parametrize("path", ["/", "/favicon.ico", "/webapp", "/v2/other"])
    def test_other_paths_are_unrouted(self, table, path):
        assert table.classify(path) is None

    def test_forward_rules_under_root_take_precedence(self, table):
        """Rules are checked before the implicit local root."""
        assert table.classify("/web/grafana/") is RouteMode.FORWARD
        assert table.classify("/web/graphs") is RouteMode.SERVE_LOCAL

    def test_matching_is_case_sensitive(self, table):
        assert table.classify("/V1/webapi") is None

    def test_wildcard_matches_path_remainder(self, table):
        assert table.classify("/v1/a/b/c/d.json") is RouteMode.FORWARD

    def test_first_match_wins(self):
        table = RouteTable(
            routes=(
                Route("/v1/local/*", RouteMode.SERVE_LOCAL),
                Route("/v1/*", RouteMode.FORWARD),
            ),
            root="/web",
        )
        assert table.classify("/v1/local/page") is RouteMode.SERVE_LOCAL
        assert table.classify("/v1/remote") is RouteMode.FORWARD

    def test_rule_order_preserved(self):
        patterns = ["/b/*", "/a/*", "/c*"]
        table = RouteTable.from_patterns(patterns, "/web")
        assert [r.pattern for r in table.routes] == patterns

    def test_classify_is_deterministic(self, table):
        results = {table.classify("/portal/x") for _ in range(5)}
        assert results == {RouteMode.FORWARD}


def test_root_trailing_slash_is_normalized():
    table = RouteTable.from_patterns([], "/web/")
    assert table.root == "/web"
    assert table.classify("/web") is RouteMode.SERVE_LOCAL
