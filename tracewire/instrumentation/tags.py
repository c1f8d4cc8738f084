"""Span tag names (OpenTracing semantic conventions) and fixed values."""

COMPONENT = "component"
SPAN_KIND = "span.kind"
ERROR = "error"
ERROR_MESSAGE = "error.message"

HTTP_URL = "http.url"
HTTP_METHOD = "http.method"
HTTP_STATUS_CODE = "http.status_code"
HTTP_REQUEST_BODY = "http.request.body"
HTTP_X_FORWARDED_FOR = "http.headers.x-forwarded-for"
HTTP_USER_AGENT = "http.headers.user-agent"

PEER_HOST_IPV4 = "peer.ipv4"
PEER_HOSTNAME = "peer.hostname"
PEER_PORT = "peer.port"

REQUEST_ERRORS = "request.errors"
REQUEST_TIME = "request.time"
REQUEST_CANCELLED = "request.cancelled"

SERVER_COMPONENT = "tracewire-http-server"
CLIENT_COMPONENT = "tracewire-http-client"
SPAN_KIND_SERVER = "server"
SPAN_KIND_CLIENT = "client"
