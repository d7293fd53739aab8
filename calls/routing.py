import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, List
from zoneinfo import ZoneInfo

from loguru import logger
from twilio.twiml.voice_response import VoiceResponse


class Leg(str, Enum):
    PRIMARY = "primary"      # human specialist
    FALLBACK = "fallback"    # always-available automated line


class CallState(str, Enum):
    IDLE = "idle"
    DECIDING = "deciding"
    DIALING_PRIMARY = "dialing_primary"
    DIALING_FALLBACK = "dialing_fallback"
    FAILOVER = "failover"
    CONNECTED = "connected"
    ENDED = "ended"


TRANSITIONS = {
    CallState.IDLE: {CallState.DECIDING},
    CallState.DECIDING: {CallState.DIALING_PRIMARY, CallState.DIALING_FALLBACK},
    CallState.DIALING_PRIMARY: {CallState.CONNECTED, CallState.FAILOVER},
    CallState.FAILOVER: {CallState.DIALING_FALLBACK},
    CallState.DIALING_FALLBACK: {CallState.CONNECTED, CallState.ENDED},
    CallState.CONNECTED: {CallState.ENDED},
    CallState.ENDED: set(),
}


class InvalidTransition(Exception):
    pass


@dataclass(frozen=True)
class CallRoutingConfig:
    primary_number: str
    fallback_number: str
    cutoff_hour: int = 13
    timezone: str = "America/New_York"
    ring_timeout: int = 20
    failover_path: str = "/calls/failover"
    transfer_message: str = "Transferring you to our virtual assistant."

    @classmethod
    def from_env(cls) -> "CallRoutingConfig":
        return cls(
            primary_number=os.getenv("PRIMARY_NUMBER", "+15039663558"),
            fallback_number=os.getenv("FALLBACK_NUMBER", "+17869470992"),
            cutoff_hour=int(os.getenv("CALL_CUTOFF_HOUR", "13")),
            timezone=os.getenv("CALL_TIMEZONE", "America/New_York"),
            ring_timeout=int(os.getenv("RING_TIMEOUT_SECONDS", "20")),
            failover_path=os.getenv("CALL_FAILOVER_PATH", "/calls/failover"),
            transfer_message=os.getenv("CALL_TRANSFER_MESSAGE", "Transferring you to our virtual assistant."),
        )


@dataclass(frozen=True)
class CallRoutingDecision:
    target_leg: Leg
    local_hour: int
    reason: str


@dataclass
class CallFlow:
    """Tracks one call leg through the routing states."""
    state: CallState = CallState.IDLE
    history: List[CallState] = field(default_factory=list)

    def advance(self, target: CallState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {target.value}")
        self.history.append(self.state)
        self.state = target


@dataclass
class CallOutcome:
    flow: CallFlow
    decision: Optional[CallRoutingDecision]
    twiml: VoiceResponse

    @property
    def state(self) -> CallState:
        return self.flow.state

    def to_xml(self) -> str:
        return str(self.twiml)


def decide_leg(now: datetime, config: CallRoutingConfig) -> CallRoutingDecision:
    """Pick the leg for the current wall-clock hour in the configured zone."""
    hour = now.astimezone(ZoneInfo(config.timezone)).hour
    if hour < config.cutoff_hour:
        return CallRoutingDecision(Leg.PRIMARY, hour, f"{hour}h is before cutoff {config.cutoff_hour}h")
    return CallRoutingDecision(Leg.FALLBACK, hour, f"{hour}h is at or after cutoff {config.cutoff_hour}h")


class CallRouter:
    """Routes inbound calls to the specialist before the cutoff, and to the automated line otherwise."""

    def __init__(self, config: CallRoutingConfig = None, clock: Callable[[], datetime] = None):
        self.config = config or CallRoutingConfig.from_env()
        self.clock = clock or (lambda: datetime.now(ZoneInfo(self.config.timezone)))

    def on_inbound_call(self) -> CallOutcome:
        flow = CallFlow()
        flow.advance(CallState.DECIDING)
        decision = decide_leg(self.clock(), self.config)
        twiml = VoiceResponse()

        if decision.target_leg is Leg.PRIMARY:
            logger.info(f"Routing to human specialist ({decision.reason})")
            flow.advance(CallState.DIALING_PRIMARY)
            dial = twiml.dial(
                timeout=self.config.ring_timeout,
                action=f"{self.config.failover_path}?leg={Leg.PRIMARY.value}",
                method="POST",
            )
            dial.number(self.config.primary_number)
        else:
            logger.info(f"Routing to automated line ({decision.reason})")
            flow.advance(CallState.DIALING_FALLBACK)
            twiml.dial(self.config.fallback_number)

        return CallOutcome(flow, decision, twiml)

    def on_dial_status(self, dial_status: Optional[str], leg: Leg = Leg.PRIMARY) -> CallOutcome:
        """Handle the dial action callback for a finished leg."""
        status = (dial_status or "").strip().lower()
        twiml = VoiceResponse()
        logger.info(f"{leg.value} leg dial status: {status or 'unknown'}")

        if leg is Leg.FALLBACK:
            flow = CallFlow(state=CallState.DIALING_FALLBACK)
            flow.advance(CallState.CONNECTED if status == "completed" else CallState.ENDED)
            if flow.state is CallState.CONNECTED:
                flow.advance(CallState.ENDED)
            twiml.hangup()
            return CallOutcome(flow, None, twiml)

        flow = CallFlow(state=CallState.DIALING_PRIMARY)
        if status == "completed":
            flow.advance(CallState.CONNECTED)
            flow.advance(CallState.ENDED)
            twiml.hangup()
            return CallOutcome(flow, None, twiml)

        # no-answer, busy, failed, canceled
        logger.info("Specialist missed the call, failing over to automated line")
        flow.advance(CallState.FAILOVER)
        decision = CallRoutingDecision(
            Leg.FALLBACK,
            self.clock().astimezone(ZoneInfo(self.config.timezone)).hour,
            f"primary leg ended with {status or 'unknown'}",
        )
        flow.advance(CallState.DIALING_FALLBACK)
        if self.config.transfer_message:
            twiml.say(self.config.transfer_message)
        twiml.dial(self.config.fallback_number)
        return CallOutcome(flow, decision, twiml)
