import os

DATABASE_URL = os.getenv("RESERVATION_DB")
if not DATABASE_URL:
    raise RuntimeError("RESERVATION_DB environment variable is not set")

REDIS_URL = os.getenv("REDIS_URL")
RABBIT_URL = os.getenv("RABBIT_URL")  # optional in dev, required if you want notifications

NOTIFICATION_EXCHANGE = os.getenv("NOTIFICATION_EXCHANGE") or "notification_events"
RESERVATION_CREATED_ROUTING_KEY = os.getenv("RESERVATION_CREATED_ROUTING_KEY") or "reservation.created"
RESERVATION_CANCELLED_ROUTING_KEY = os.getenv("RESERVATION_CANCELLED_ROUTING_KEY") or "reservation.cancelled"
RESERVATION_DECISION_ROUTING_KEY = os.getenv("RESERVATION_DECISION_ROUTING_KEY") or "reservation.decision"

ACCOMMODATION_SERVICE_URL = os.getenv("ACCOMMODATION_SERVICE_URL") or "http://accommodation-service:8000"
USER_SERVICE_URL = os.getenv("USER_SERVICE_URL") or "http://user-service:8000"

# "redis" for a lock shared across instances, "local" for a single process
LOCK_BACKEND = (os.getenv("LOCK_BACKEND") or "redis").strip().lower()
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS") or "10")
LOCK_WAIT_SECONDS = float(os.getenv("LOCK_WAIT_SECONDS") or "3")
CONTENTION_RETRIES = int(os.getenv("CONTENTION_RETRIES") or "3")

# bounds on a single Redis command / connect, so a stalled Redis cannot hang a request
REDIS_SOCKET_TIMEOUT_SECONDS = float(os.getenv("REDIS_SOCKET_TIMEOUT_SECONDS") or "2")
REDIS_CONNECT_TIMEOUT_SECONDS = float(os.getenv("REDIS_CONNECT_TIMEOUT_SECONDS") or "2")
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS") or "3")
