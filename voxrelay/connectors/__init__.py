"""Connectors own one peer connection each for the lifetime of a call.

- TelephonySessionConnector: the inbound Twilio Media Stream socket.
- AISessionConnector: the outbound realtime speech AI socket.

Both are thin typed transports: they parse inbound frames into events and
wrap outbound payloads in the peer's envelope. All call state lives in the
CallBridge that owns them.
"""

from voxrelay.connectors.ai import AISessionConnector
from voxrelay.connectors.telephony import TelephonySessionConnector

__all__ = [
    "AISessionConnector",
    "TelephonySessionConnector",
]
