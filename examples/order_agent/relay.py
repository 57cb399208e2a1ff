"""Example: restaurant ordering agent on a phone line.

Twilio streams the call to this relay; each call gets its own realtime AI
session configured with the menu below. The agent greets the caller as
soon as the session is ready.

Usage:
    export OPENAI_API_KEY=sk-...
    python relay.py
    ngrok http 8080

Then point a Twilio number's TwiML at:
    <Connect><Stream url="wss://YOUR_NGROK/twilio-stream"/></Connect>
"""

from __future__ import annotations

from voxrelay import CallBridge, GreetingConfig, SessionConfiguration, VoxRelay

MENU_INSTRUCTIONS = """\
You are the phone assistant for Big Daddy restaurant.

MENU:
- Chicken Burger: $12.99
- Beef Burger: $19.99

Be natural, friendly, and efficient. Take the order, get the caller's name
and address, confirm everything, and calculate the total.
"""

relay = VoxRelay({
    "listen_port": 8080,
    "listen_path": "/twilio-stream",
    "session": SessionConfiguration(instructions=MENU_INSTRUCTIONS).model_dump(),
    "greeting": GreetingConfig(
        instructions=(
            'Say the greeting immediately: "Hi! Welcome to Big Daddy! '
            "I'm here to take your order. What would you like today?\""
        ),
    ).model_dump(),
})


@relay.on_call_start
async def handle_call_start(bridge: CallBridge):
    print(f"\n[Relay] Call started: {bridge.call_id} (stream {bridge.stream_id})")


@relay.on_transcript
async def handle_transcript(bridge: CallBridge, text: str):
    print(f"[Relay] Customer said: {text}")


@relay.on_call_end
async def handle_call_end(bridge: CallBridge):
    print(f"\n[Relay] Call ended: {bridge.call_id} ({bridge.end_reason})")
    print(f"  Duration:  {bridge.duration_ms}ms")
    print(f"  Audio in:  {bridge.frames_in} frames")
    print(f"  Audio out: {bridge.frames_out} frames")


if __name__ == "__main__":
    relay.run()
