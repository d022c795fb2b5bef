"""Request id resolution and user address extraction for log context."""

from paxrewards.middleware.request_context import resolve_request_id, user_from_path

ADDRESS = "0x52908400098527886E0F7030069857D2E4169EE7"


class TestResolveRequestId:
    def test_keeps_client_id(self) -> None:
        assert resolve_request_id("wallet-app.42:abc") == "wallet-app.42:abc"

    def test_replaces_missing_or_malformed(self) -> None:
        for value in (None, "", "has space", "x" * 65, "semi;colon"):
            generated = resolve_request_id(value)
            assert generated != value
            assert len(generated) == 36


class TestUserFromPath:
    def test_user_routes(self) -> None:
        assert user_from_path(f"/api/v1/rewards/users/{ADDRESS}/stats") == ADDRESS
        assert user_from_path(f"/api/v1/rewards/users/{ADDRESS.lower()}") == ADDRESS.lower()

    def test_other_routes(self) -> None:
        assert user_from_path("/api/v1/rewards/lessons") is None
        assert user_from_path("/api/v1/rewards/users/not-an-address/stats") is None
        assert user_from_path(f"/api/v1/rewards/users/{ADDRESS}00/stats") is None
