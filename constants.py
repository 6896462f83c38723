import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

# Upper bound for a single delivery attempt to one client
SEND_TIMEOUT_SECONDS = float(os.getenv("SEND_TIMEOUT_SECONDS", 5))
# Frames waiting for one client before it is dropped as too slow
OUTBOUND_QUEUE_SIZE = int(os.getenv("OUTBOUND_QUEUE_SIZE", 256))
PUSH_INITIAL_USERS = os.getenv("PUSH_INITIAL_USERS", "true").lower() in ("1", "true", "yes")

MAX_DISPLAY_NAME_LENGTH = 40
MAX_MESSAGE_LENGTH = 1000
ANONYMOUS_NAME = "Anonymous"
