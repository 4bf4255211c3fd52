import pytest

from espoke.discovery import cluster_name_from_tags, scheme_from_tags, value_from_tags


class TestTags:
    """Tests for `<prefix>-<value>` tag parsing."""

    @pytest.mark.parametrize(
        "tags,expected",
        [
            (["maintenance-elasticsearch", "cluster_name-prod-search"], "prod-search"),
            (["cluster_name-a", "cluster_name-b"], "a"),
            (["maintenance-elasticsearch"], ""),
            ([], ""),
        ],
    )
    def test_cluster_name(self, tags, expected):
        assert cluster_name_from_tags(tags) == expected

    def test_version(self):
        assert value_from_tags("version", ["version-7.10.2"]) == "7.10.2"

    def test_prefix_must_match_exactly(self):
        assert value_from_tags("version", ["versions-7", "myversion-8"]) == ""

    def test_scheme(self):
        assert scheme_from_tags(["https", "cluster_name-a"]) == "https"
        assert scheme_from_tags(["cluster_name-a"]) == "http"
