"""Internal constants shared across the library."""

DEFAULT_BASE_TOPIC = "smarthome"
DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTTS_PORT = 8883

# ------------------------------------------------------------------
# MQTT quality of service (at least once for every message kind)
# ------------------------------------------------------------------

QOS_COMMAND = 1
QOS_STATE = 1
QOS_STATUS = 1

# ------------------------------------------------------------------
# Topic grammar
# ------------------------------------------------------------------

TOPIC_SEPARATOR = "/"
SINGLE_LEVEL_WILDCARD = "+"
MULTI_LEVEL_WILDCARD = "#"
APP_STATUS_SEGMENT = "app"

# ------------------------------------------------------------------
# Reconciliation messages written to the store
# ------------------------------------------------------------------

AWAITING_CONFIRMATION_MESSAGE = "Waiting for device response..."
STATE_UPDATED_MESSAGE = "State updated"
