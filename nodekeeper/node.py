"""Per-wallet light-node lifecycle.

Every sweep, each wallet goes through the same fixed sequence, each step a
single resilient request:

1. **check_status** -- a non-null ``data.startTimestamp`` means the node is
   running.  A failed or malformed status check is read as "not running".
2. **stop_and_claim** -- only when the node is running; signed deactivation.
3. **connect** -- always; signed activation.  Succeeds only on the exact
   confirmation message.
4. **check_points** -- reads ``data.nodePoints`` (missing or null is 0).

Only the stop step is conditional; a failing step never skips the ones after
it.  Nothing is carried over between sweeps.

The one-time registration calls (:meth:`NodeLifecycle.verify_invite`,
:meth:`NodeLifecycle.register_wallet`) share the same client but are not part
of the sweep.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from nodekeeper.errors import MalformedResponseError
from nodekeeper.events import EventSink, NullEventSink
from nodekeeper.http_client import RequestOutcome, ResilientHttpClient
from nodekeeper.proxy_pool import ProxyEndpoint
from nodekeeper.wallet import ACTIVATION, DEACTIVATION, WalletIdentity

logger = logging.getLogger(__name__)

NODE_ACTION_SUCCESS_MESSAGE = "node action executed successfully"

STEP_CHECK_STATUS = "check_status"
STEP_STOP_AND_CLAIM = "stop_and_claim"
STEP_CONNECT = "connect"
STEP_CHECK_POINTS = "check_points"


class NodeState(Enum):
    """Node state as inferred from the latest status check."""

    UNKNOWN = "unknown"
    RUNNING = "running"
    NOT_RUNNING = "not_running"


@dataclass(frozen=True)
class LayerEdgeApi:
    """URL builder for the remote endpoints."""

    base_url: str

    def verify_referral_code(self) -> str:
        return f"{self.base_url}/api/referral/verify-referral-code"

    def register_wallet(self, referral_code: str) -> str:
        return f"{self.base_url}/api/referral/register-wallet/{referral_code}"

    def node_action(self, address: str, action: str) -> str:
        return f"{self.base_url}/api/light-node/node-action/{address}/{action}"

    def node_status(self, address: str) -> str:
        return f"{self.base_url}/api/light-node/node-status/{address}"

    def wallet_details(self, address: str) -> str:
        return f"{self.base_url}/api/referral/wallet-details/{address}"


@dataclass
class StepOutcome:
    """Interpreted result of one lifecycle step.

    Attributes:
        step: Step name (``check_status``, ``stop_and_claim``, ...).
        request: Raw outcome of the underlying request.
        succeeded: Whether the response met the step's success criterion.
        detail: Short human-readable explanation.
    """

    step: str
    request: RequestOutcome
    succeeded: bool
    detail: str = ""


@dataclass
class WalletSweepResult:
    """What happened to one wallet during one sweep.

    ``overall_status`` is ``"failed"`` only when processing was aborted by an
    unexpected error; failed individual steps are recorded in
    ``step_outcomes`` but leave the wallet ``"success"``.
    """

    address: str
    step_outcomes: List[StepOutcome] = field(default_factory=list)
    overall_status: str = "success"
    node_state: NodeState = NodeState.UNKNOWN
    points: Optional[float] = None
    error: Optional[str] = None

    @property
    def steps(self) -> List[str]:
        return [outcome.step for outcome in self.step_outcomes]


def _require(payload: Any, *path: str) -> Any:
    """Walk ``payload[path[0]][path[1]]...`` or raise MalformedResponseError."""
    value = payload
    walked = []
    for key in path:
        walked.append(key)
        if not isinstance(value, dict) or key not in value:
            raise MalformedResponseError(".".join(walked), payload)
        value = value[key]
    return value


def _non_empty(payload: Any) -> bool:
    return payload is not None and payload != ""


class NodeLifecycle:
    """Drive one wallet's node through the sweep sequence.

    Args:
        identity: Wallet signing key and address.
        client: Resilient client used for every request.
        api: Remote endpoint URLs.
        proxy: Proxy this wallet is bound to, or ``None``.
        sink: Event sink for per-step progress.
    """

    def __init__(
        self,
        identity: WalletIdentity,
        client: ResilientHttpClient,
        api: LayerEdgeApi,
        proxy: Optional[ProxyEndpoint] = None,
        sink: Optional[EventSink] = None,
    ):
        self.identity = identity
        self.client = client
        self.api = api
        self.proxy = proxy
        self.sink = sink or NullEventSink()

    @property
    def address(self) -> str:
        return self.identity.address

    async def _get(self, url: str) -> RequestOutcome:
        return await self.client.request("GET", url, proxy=self.proxy)

    async def _post(self, url: str, body: dict) -> RequestOutcome:
        return await self.client.request("POST", url, body=body, proxy=self.proxy)

    def _progress(self, step: str, status: str) -> None:
        self.sink.emit("step", address=self.address, step=step, status=status)

    def _finish(self, outcome: StepOutcome) -> StepOutcome:
        if not outcome.succeeded:
            self.sink.emit(
                "step_failed",
                address=self.address,
                step=outcome.step,
                detail=outcome.detail,
            )
        return outcome

    # ------------------------------------------------------------------
    # Sweep steps
    # ------------------------------------------------------------------

    async def check_status(self) -> Tuple[NodeState, StepOutcome]:
        """GET the node status.

        Returns:
            ``(RUNNING, outcome)`` when ``data.startTimestamp`` is set,
            ``(NOT_RUNNING, outcome)`` for anything else including a failed
            request or a malformed body.
        """
        self._progress(STEP_CHECK_STATUS, "processing")
        request = await self._get(self.api.node_status(self.address))
        if not request.succeeded:
            return NodeState.NOT_RUNNING, self._finish(StepOutcome(
                STEP_CHECK_STATUS, request, False, request.error or "request failed",
            ))

        try:
            started = _require(request.payload, "data", "startTimestamp")
        except MalformedResponseError as e:
            return NodeState.NOT_RUNNING, self._finish(StepOutcome(
                STEP_CHECK_STATUS, request, False, str(e),
            ))

        state = NodeState.RUNNING if started is not None else NodeState.NOT_RUNNING
        self.sink.emit(
            "node_status", address=self.address, state=state.value, start_timestamp=started,
        )
        return state, StepOutcome(STEP_CHECK_STATUS, request, True, state.value)

    async def stop_node(self) -> StepOutcome:
        """POST a signed deactivation request, which also claims points."""
        self._progress(STEP_STOP_AND_CLAIM, "processing")
        sign, timestamp = self.identity.sign_node_action(DEACTIVATION)
        request = await self._post(
            self.api.node_action(self.address, "stop"),
            {"sign": sign, "timestamp": timestamp},
        )
        if request.succeeded and _non_empty(request.payload):
            self.sink.emit("node_stopped", address=self.address, response=request.payload)
            return StepOutcome(STEP_STOP_AND_CLAIM, request, True, "stopped")
        return self._finish(StepOutcome(
            STEP_STOP_AND_CLAIM, request, False,
            request.error or "empty response",
        ))

    async def connect_node(self) -> StepOutcome:
        """POST a signed activation request."""
        self._progress(STEP_CONNECT, "processing")
        sign, timestamp = self.identity.sign_node_action(ACTIVATION)
        request = await self._post(
            self.api.node_action(self.address, "start"),
            {"sign": sign, "timestamp": timestamp},
        )
        if not request.succeeded:
            return self._finish(StepOutcome(
                STEP_CONNECT, request, False, request.error or "request failed",
            ))

        try:
            message = _require(request.payload, "message")
        except MalformedResponseError as e:
            return self._finish(StepOutcome(STEP_CONNECT, request, False, str(e)))

        if message != NODE_ACTION_SUCCESS_MESSAGE:
            return self._finish(StepOutcome(
                STEP_CONNECT, request, False, f"unexpected message: {message}",
            ))
        self.sink.emit("node_connected", address=self.address)
        return StepOutcome(STEP_CONNECT, request, True, "connected")

    async def check_points(self) -> Tuple[Optional[float], StepOutcome]:
        """GET wallet details and read the accumulated node points.

        Returns:
            ``(points, outcome)``; points is ``None`` when the request
            failed.
        """
        self._progress(STEP_CHECK_POINTS, "processing")
        request = await self._get(self.api.wallet_details(self.address))
        if not (request.succeeded and _non_empty(request.payload)):
            return None, self._finish(StepOutcome(
                STEP_CHECK_POINTS, request, False,
                request.error or "empty response",
            ))

        data = request.payload.get("data") if isinstance(request.payload, dict) else None
        if data is not None and not isinstance(data, dict):
            return None, self._finish(StepOutcome(
                STEP_CHECK_POINTS, request, False, str(MalformedResponseError("data", request.payload)),
            ))
        points = (data or {}).get("nodePoints") or 0
        self.sink.emit("node_points", address=self.address, points=points)
        return points, StepOutcome(STEP_CHECK_POINTS, request, True, str(points))

    async def run(self) -> WalletSweepResult:
        """Run the full sequence for this wallet.

        Signing errors are not caught here; the scheduler owns the wallet
        boundary.
        """
        result = WalletSweepResult(address=self.address)

        state, outcome = await self.check_status()
        result.node_state = state
        result.step_outcomes.append(outcome)

        if state is NodeState.RUNNING:
            result.step_outcomes.append(await self.stop_node())

        result.step_outcomes.append(await self.connect_node())

        points, outcome = await self.check_points()
        result.points = points
        result.step_outcomes.append(outcome)
        return result

    # ------------------------------------------------------------------
    # One-time registration
    # ------------------------------------------------------------------

    async def verify_invite(self, referral_code: str) -> bool:
        """Check that *referral_code* is accepted (``data.valid is True``)."""
        request = await self._post(
            self.api.verify_referral_code(), {"invite_code": referral_code},
        )
        valid = False
        if request.succeeded:
            try:
                valid = _require(request.payload, "data", "valid") is True
            except MalformedResponseError as e:
                logger.debug("Invite check response malformed: %s", e)
        self.sink.emit(
            "invite_checked" if valid else "invite_invalid",
            code=referral_code,
            response=request.payload,
        )
        return valid

    async def register_wallet(self, referral_code: str) -> bool:
        """Register this wallet under *referral_code*."""
        request = await self._post(
            self.api.register_wallet(referral_code),
            {"walletAddress": self.address},
        )
        registered = request.succeeded and _non_empty(request.payload)
        self.sink.emit(
            "wallet_registered" if registered else "step_failed",
            address=self.address,
            step="register_wallet",
            detail=request.payload if registered else (request.error or "empty response"),
        )
        return registered
