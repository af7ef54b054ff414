"""Default configuration for the tunnel forwarder.

This script will be evaluated first when the forwarder attempts to load its
configuration. Configuration files may import variables from this module
with `from tunnelforward.config import SOMETHING`, and may also modify
them if the variables are mutable.
"""

# URL of the local destination that inbound connections are forwarded to
FORWARD_TO = "http://localhost:8080"

# IP address on which the forwarder accepts inbound connections when it is
# run standalone from the command line
LISTEN_HOST = "127.0.0.1"

# Port on which the forwarder accepts inbound connections when it is run
# standalone from the command line
LISTEN_PORT = 8000

# Application protocol of the inbound connections; "http" and "https"
# connections receive a 502 response when the destination is unreachable
PROTOCOL = "http"
