"""Configuration keys and HTTP cross-origin defaults."""

CONFIG_KEY_POSTGRESQL = "pg"
CONFIG_KEY_MYSQL = "db"
CONFIG_KEY_REDIS = "redis"
CONFIG_KEY_LOG = "log"
CONFIG_HTTP_CLIENT = "httpclient"
CONFIG_APP = "app"

# Origins accepted by the HTTP server's CORS policy.
ALLOWED_ORIGINS = (
    "http://localhost:8080",
    "https://example.com",
    "https://app.example.com",
    "https://pre.stg.example.com",
    "https://app.stg.example.com",
    "https://alpha.example.com",
    "http://localhost:3000",
)

ALLOWED_HEADERS = (
    "Origin",
    "X-Requested-With",
    "Content-Type",
    "Accept",
    "Authorization",
    "Signature",
)