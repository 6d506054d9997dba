import os

app = "main:app"
host = "0.0.0.0"
port = int(os.getenv("PORT", "9001"))
workers = int(os.getenv("UVICORN_WORKERS", str(max(2, (os.cpu_count() or 1)))))
loop = "uvloop"  # requires uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
# the request-id middleware already writes one JSON line per request
access_log = False
# decrements are short; let the web process own the longer timeouts
timeout_keep_alive = int(os.getenv("UVICORN_KEEPALIVE", "5"))
