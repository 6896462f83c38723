# Inbound client -> server events
EVENT_JOIN = "join"
EVENT_MESSAGE = "message"

# Outbound server -> client events
EVENT_USERS = "users"
EVENT_SYSTEM_MESSAGE = "systemMessage"
# same wire name as the inbound chat message
EVENT_CHAT_MESSAGE = "message"

JOINED_TEMPLATE = "{name} joined the chat"
LEFT_TEMPLATE = "{name} left the chat"

# **Frame format**
# - inbound:  `{"event": "join", "data": "Alice"}` or `{"event": "message", "data": {"text": "hi"}}`
# - outbound: `{"event": "users", "data": ["Alice", "Bob"]}`
# - outbound: `{"event": "systemMessage", "data": {"text": "...", "time": 1700000000000}}`
# - outbound: `{"event": "message", "data": {"id": "...", "user": "...", "text": "...", "time": ...}}`
