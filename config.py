# config.py

# ==================================================
# Network / Communication
# ==================================================

CHAT_PORT = 12345  # Fixed port shared by both peers
LISTEN_HOST = "0.0.0.0"  # Bind on every interface so a peer on another host can reach us

BUFFER_SIZE = 1024  # Max payload of one chat datagram (bytes)
MAX_DATAGRAM_SIZE = 65535  # Read buffer, large enough to detect oversize datagrams

POLL_INTERVAL = 0.2  # Seconds a blocked receive waits before re-checking the stop signal

ENCODING = "utf-8"

# ==================================================
# Logging
# ==================================================

LOG_DIR = None  # None -> ./logs

# ==================================================
# GUI
# ==================================================

WINDOW_TITLE = "CN2 - AUTH"
WINDOW_WIDTH = 500
WINDOW_HEIGHT = 250
