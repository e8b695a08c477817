"""Gunicorn settings for the stock room kiosk server."""
import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")

# Every worker writes to the same database; stock updates queue on row locks.
workers = int(os.getenv("GUNICORN_WORKERS", "2"))
threads = int(os.getenv("GUNICORN_THREADS", "4"))

# Leave room for a request that waits out DB_BUSY_TIMEOUT before failing.
timeout = int(os.getenv("GUNICORN_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))

accesslog = os.getenv("GUNICORN_ACCESS_LOGFILE", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOGFILE", "-")
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

forwarded_allow_ips = os.getenv("GUNICORN_FORWARDED_ALLOW_IPS", "*")


def worker_exit(server, worker):
    # Let queued low stock webhooks finish before the worker goes away.
    from stockapp.extensions import notifier

    notifier.shutdown(wait=True)
