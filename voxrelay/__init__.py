"""VoxRelay - Twilio Media Streams to realtime speech AI relay.

Each phone call's media stream is bridged to its own realtime AI session,
so the caller talks to an AI agent with minimal added latency. Audio
tokens are forwarded unchanged in both directions.

Quick start (config-driven):
    $ pip install voxrelay
    $ voxrelay init          # generates relay.yaml
    $ OPENAI_API_KEY=sk-... voxrelay run --config relay.yaml

Quick start (programmatic):
    from voxrelay import VoxRelay

    relay = VoxRelay({"api_key": "sk-...", "listen_port": 8080})

    @relay.on_call_start
    async def handle_call(bridge):
        print(f"Call {bridge.call_id} started")

    relay.run()
"""

__version__ = "0.1.0"

# Core
from voxrelay.bridge import CallBridge
from voxrelay.config import (
    AIConfig,
    ConfigError,
    ListenerConfig,
    RelayConfig,
    load_config,
)
from voxrelay.relay import VoxRelay
from voxrelay.session import BridgeStore

# Connectors
from voxrelay.connectors.ai import AISessionConnector
from voxrelay.connectors.telephony import TelephonySessionConnector

# Events
from voxrelay.core.events import (
    AIError,
    AIInformational,
    AudioDelta,
    CallState,
    ConversationItemCreated,
    Event,
    EventType,
    MediaReceived,
    ResponseDone,
    SessionCreated,
    StreamStarted,
    StreamStopped,
    TelephonyConnected,
    TelephonyUnknown,
    TransportClosed,
    TransportOpened,
)
from voxrelay.core.session_config import GreetingConfig, SessionConfiguration, TurnDetection

# Serializers
from voxrelay.serializers.realtime import RealtimeSerializer
from voxrelay.serializers.twilio import TwilioSerializer

# Transports
from voxrelay.transports.base import BaseTransport
from voxrelay.transports.websocket import (
    WebSocketClientTransport,
    WebSocketServer,
    WebSocketServerTransport,
)

__all__ = [
    # Core
    "VoxRelay",
    "CallBridge",
    "BridgeStore",
    "RelayConfig",
    "ListenerConfig",
    "AIConfig",
    "ConfigError",
    "load_config",
    # Connectors
    "AISessionConnector",
    "TelephonySessionConnector",
    # Session settings
    "SessionConfiguration",
    "TurnDetection",
    "GreetingConfig",
    # Events
    "Event",
    "EventType",
    "CallState",
    "TelephonyConnected",
    "StreamStarted",
    "MediaReceived",
    "StreamStopped",
    "TelephonyUnknown",
    "TransportOpened",
    "TransportClosed",
    "SessionCreated",
    "AudioDelta",
    "ResponseDone",
    "ConversationItemCreated",
    "AIError",
    "AIInformational",
    # Serializers
    "TwilioSerializer",
    "RealtimeSerializer",
    # Transports
    "BaseTransport",
    "WebSocketClientTransport",
    "WebSocketServer",
    "WebSocketServerTransport",
]
