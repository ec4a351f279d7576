from unittest.mock import MagicMock

import aiohttp
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from nodekeeper.errors import SigningError
from nodekeeper.node import (
    STEP_CHECK_POINTS,
    STEP_CHECK_STATUS,
    STEP_CONNECT,
    STEP_STOP_AND_CLAIM,
    LayerEdgeApi,
    NodeLifecycle,
    NodeState,
)
from nodekeeper.proxy_pool import ProxyEndpoint
from nodekeeper.wallet import WalletIdentity

BASE_URL = "https://referral-api.test"
KEY = "0x" + "11" * 32

RUNNING = {"data": {"startTimestamp": 1700000000}}
NOT_RUNNING = {"data": {"startTimestamp": None}}
POINTS = {"data": {"nodePoints": 1234}}
NODE_OK = {"message": "node action executed successfully"}


@pytest.fixture
def identity():
    return WalletIdentity(KEY, clock=lambda: 1700000000.5)


@pytest.fixture
def api():
    return LayerEdgeApi(BASE_URL)


@pytest.fixture
def lifecycle(identity, client, api, sink):
    return NodeLifecycle(identity, client, api, proxy=None, sink=sink)


def test_api_urls(api):
    assert api.verify_referral_code() == f"{BASE_URL}/api/referral/verify-referral-code"
    assert api.register_wallet("abc") == f"{BASE_URL}/api/referral/register-wallet/abc"
    assert api.node_action("0x1", "start") == f"{BASE_URL}/api/light-node/node-action/0x1/start"
    assert api.node_status("0x1") == f"{BASE_URL}/api/light-node/node-status/0x1"
    assert api.wallet_details("0x1") == f"{BASE_URL}/api/referral/wallet-details/0x1"


class TestSweepSequence:

    @pytest.mark.asyncio
    async def test_running_node_is_stopped_before_connect(self, lifecycle, transport):
        transport.routes = {
            ("GET", "node-status"): RUNNING,
            ("POST", "/stop"): {"message": "stopped"},
            ("POST", "/start"): NODE_OK,
            ("GET", "wallet-details"): POINTS,
        }

        result = await lifecycle.run()

        assert transport.step_names() == ["status", "stop", "connect", "points"]
        assert result.steps == [STEP_CHECK_STATUS, STEP_STOP_AND_CLAIM, STEP_CONNECT, STEP_CHECK_POINTS]
        assert all(outcome.succeeded for outcome in result.step_outcomes)
        assert result.node_state is NodeState.RUNNING
        assert result.points == 1234
        assert result.overall_status == "success"

    @pytest.mark.asyncio
    async def test_stopped_node_only_connects(self, lifecycle, transport):
        transport.routes = {
            ("GET", "node-status"): NOT_RUNNING,
            ("POST", "/start"): NODE_OK,
            ("GET", "wallet-details"): POINTS,
        }

        result = await lifecycle.run()

        assert transport.step_names() == ["status", "connect", "points"]
        assert result.node_state is NodeState.NOT_RUNNING

    @pytest.mark.asyncio
    async def test_failed_status_check_is_treated_as_not_running(self, lifecycle, transport, sink):
        transport.routes = {
            ("GET", "node-status"): aiohttp.ClientConnectionError("down"),
            ("POST", "/start"): NODE_OK,
            ("GET", "wallet-details"): POINTS,
        }

        result = await lifecycle.run()

        # Two attempts on the status check, then straight to connect
        assert transport.step_names() == ["status", "status", "connect", "points"]
        assert result.node_state is NodeState.NOT_RUNNING
        assert result.step_outcomes[0].succeeded is False
        assert result.step_outcomes[0].request.attempts_used == 2
        assert result.overall_status == "success"
        assert sink.named("step_failed")[0]["step"] == STEP_CHECK_STATUS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"data": {}}, {"message": "no data"}, "not json", None])
    async def test_malformed_status_is_treated_as_not_running(self, lifecycle, transport, payload):
        transport.routes = {
            ("GET", "node-status"): payload,
            ("POST", "/start"): NODE_OK,
            ("GET", "wallet-details"): POINTS,
        }

        state, outcome = await lifecycle.check_status()

        assert state is NodeState.NOT_RUNNING
        assert outcome.succeeded is False
        assert transport.step_names() == ["status"]

    @pytest.mark.asyncio
    async def test_stop_failure_does_not_block_connect(self, lifecycle, transport):
        transport.routes = {
            ("GET", "node-status"): RUNNING,
            ("POST", "/stop"): aiohttp.ClientConnectionError("stop failed"),
            ("POST", "/start"): NODE_OK,
            ("GET", "wallet-details"): POINTS,
        }

        result = await lifecycle.run()

        assert transport.step_names() == ["status", "stop", "stop", "connect", "points"]
        assert [o.succeeded for o in result.step_outcomes] == [True, False, True, True]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"message": "node already running"}, {"status": "ok"}, ""])
    async def test_connect_requires_exact_message(self, lifecycle, transport, payload):
        transport.routes = {
            ("GET", "node-status"): NOT_RUNNING,
            ("POST", "/start"): payload,
            ("GET", "wallet-details"): POINTS,
        }

        result = await lifecycle.run()

        assert result.step_outcomes[1].step == STEP_CONNECT
        assert result.step_outcomes[1].succeeded is False
        assert transport.step_names()[-1] == "points"
        assert result.points == 1234

    @pytest.mark.asyncio
    async def test_points_request_failure_still_completes(self, lifecycle, transport):
        transport.routes = {
            ("GET", "node-status"): NOT_RUNNING,
            ("POST", "/start"): NODE_OK,
            ("GET", "wallet-details"): aiohttp.ServerTimeoutError("slow"),
        }

        result = await lifecycle.run()

        assert result.points is None
        assert result.step_outcomes[-1].succeeded is False
        assert result.overall_status == "success"

    @pytest.mark.asyncio
    async def test_signing_failure_propagates(self, client, api, transport):
        identity = MagicMock()
        identity.address = "0xabc"
        identity.sign_node_action.side_effect = SigningError("bad key")
        transport.routes = {("GET", "node-status"): NOT_RUNNING}

        with pytest.raises(SigningError):
            await NodeLifecycle(identity, client, api).run()


class TestSignedActions:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method_name,path,action", [
        ("connect_node", "/start", "activation"),
        ("stop_node", "/stop", "deactivation"),
    ])
    async def test_action_body_is_signed(self, lifecycle, transport, identity, method_name, path, action):
        transport.routes = {("POST", path): NODE_OK}

        outcome = await getattr(lifecycle, method_name)()

        assert outcome.succeeded
        body = transport.calls[0].body
        assert body["timestamp"] == 1700000000500
        message = f"Node {action} request for {identity.address} at 1700000000500"
        assert Account.recover_message(encode_defunct(text=message), signature=body["sign"]) == identity.address
        assert transport.calls[0].url == f"{BASE_URL}/api/light-node/node-action/{identity.address}/{path[1:]}"

    @pytest.mark.asyncio
    async def test_stop_requires_non_empty_body(self, lifecycle, transport):
        transport.routes = {("POST", "/stop"): None}
        outcome = await lifecycle.stop_node()
        assert outcome.succeeded is False

    @pytest.mark.asyncio
    async def test_requests_use_bound_proxy(self, identity, client, api, transport):
        proxy = ProxyEndpoint.from_uri("http://1.1.1.1:8080")
        transport.routes = {("GET", "node-status"): NOT_RUNNING}

        await NodeLifecycle(identity, client, api, proxy=proxy).check_status()

        assert transport.calls[0].proxy == proxy


class TestPoints:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload,expected", [
        ({"data": {"nodePoints": 42}}, 42),
        ({"data": {"nodePoints": None}}, 0),
        ({"data": {}}, 0),
        ({"data": None}, 0),
        ({"unexpected": True}, 0),
    ])
    async def test_points_default_to_zero(self, lifecycle, transport, sink, payload, expected):
        transport.routes = {("GET", "wallet-details"): payload}

        points, outcome = await lifecycle.check_points()

        assert points == expected
        assert outcome.succeeded
        assert sink.named("node_points")[0]["points"] == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"data": "x"}, {"data": [1]}, {"data": "maintenance"}])
    async def test_non_object_data_fails_step(self, lifecycle, transport, sink, payload):
        transport.routes = {("GET", "wallet-details"): payload}

        points, outcome = await lifecycle.check_points()

        assert points is None
        assert not outcome.succeeded
        assert "data" in outcome.detail
        assert sink.named("step_failed")[0]["step"] == "check_points"
        assert sink.named("node_points") == []

    @pytest.mark.asyncio
    async def test_non_object_data_keeps_wallet_successful(self, lifecycle, transport):
        transport.routes = {
            ("GET", "node-status"): NOT_RUNNING,
            ("POST", "/start"): NODE_OK,
            ("GET", "wallet-details"): {"data": ["unexpected"]},
        }

        result = await lifecycle.run()

        assert result.overall_status == "success"
        assert result.steps == [STEP_CHECK_STATUS, STEP_CONNECT, STEP_CHECK_POINTS]
        assert result.points is None
        assert not result.step_outcomes[-1].succeeded


class TestRegistration:

    @pytest.mark.asyncio
    async def test_verify_invite_valid(self, lifecycle, transport):
        transport.routes = {("POST", "verify-referral-code"): {"data": {"valid": True}}}

        assert await lifecycle.verify_invite("abc") is True
        assert transport.calls[0].body == {"invite_code": "abc"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"data": {"valid": False}}, {"data": {"valid": "true"}}, {"data": {}}, None])
    async def test_verify_invite_invalid(self, lifecycle, transport, sink, payload):
        transport.routes = {("POST", "verify-referral-code"): payload}

        assert await lifecycle.verify_invite("abc") is False
        assert len(sink.named("invite_invalid")) == 1

    @pytest.mark.asyncio
    async def test_register_wallet(self, lifecycle, transport, identity, sink):
        transport.routes = {("POST", "register-wallet/abc"): {"message": "registered"}}

        assert await lifecycle.register_wallet("abc") is True
        assert transport.calls[0].body == {"walletAddress": identity.address}
        assert len(sink.named("wallet_registered")) == 1

    @pytest.mark.asyncio
    async def test_register_wallet_failure(self, lifecycle, transport):
        transport.routes = {("POST", "register-wallet"): aiohttp.ClientConnectionError("nope")}
        assert await lifecycle.register_wallet("abc") is False
