import os

wsgi_app = "shop.wsgi:application"
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"


def cpu():
    return max(1, (os.cpu_count() or 1))


# Checkout requests block on inventory and payment providers, so threads
workers = min(max(2, cpu() * 2), 8)
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

# Must stay above HTTP_TIMEOUT_SECS times the number of sequential stock calls
timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
