# ------------ Config ------------
LOG_PREFIX = "ReplyBus"               # prepended to every log line

DEFAULT_SERVERS = "nats://127.0.0.1:4222"
DEFAULT_CONNECTION_NAME = "replybus"
DEFAULT_HEALTH_SUBJECT = "replybus.ping"
DEFAULT_LOG_LEVEL = "INFO"

READY_TIMEOUT = 10.0                  # seconds to wait for subscriptions after start

# crash recovery
RESTART_BACKOFF_INITIAL = 0.1         # seconds before the first automatic restart
RESTART_BACKOFF_MAX = 5.0             # upper bound for the exponential backoff
RESTART_BACKOFF_RESET_AFTER = 30.0    # a listener up this long resets the failure streak
MAX_RESTARTS = None                   # consecutive crashes tolerated, None = unlimited

INBOX_PREFIX = "_INBOX."              # private reply addresses of the in-memory broker
ENV_PREFIX = "REPLYBUS_"
# --------------------------------
