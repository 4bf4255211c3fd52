"""
Tests for wiring the serve command's collaborators from the probing config.
"""

from espoke.commands.serve import create_registry
from tests.unit.mocks import make_config


# =============================================================================
# create_registry
# =============================================================================


class TestCreateRegistry:
    """Tests for building the Consul registry client."""

    def test_timeout_follows_probe_period(self):
        registry = create_registry(make_config(probe_period_seconds=30.0))

        assert registry._timeout == 28.0

    def test_timeout_never_below_floor(self):
        registry = create_registry(make_config(probe_period_seconds=3.0))

        assert registry._timeout == 2.0

    def test_token_is_forwarded(self):
        registry = create_registry(
            make_config(consul_api="consul.local:8500", consul_token="secret")
        )

        assert registry._token == "secret"
        assert registry._client is None
