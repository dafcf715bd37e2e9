"""
Gunicorn configuration for the fieldguard WSGI service.

    gunicorn --config gunicorn.conf.py "app:application"

The application is preloaded in the master process, so an invalid rule declaration or setting
stops the server before any worker is forked.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.getenv("GUNICORN_WORKERS", max(2, min(8, (2 * multiprocessing.cpu_count()) + 1))))
worker_class = "sync"
max_requests = 1000
max_requests_jitter = 500
timeout = 60
keepalive = 5
graceful_timeout = 30

# Logging; application events are rendered by structlog on stdout
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
capture_output = True

preload_app = True
proc_name = "fieldguard"

# Request limits
limit_request_line = 8192
limit_request_fields = 100
limit_request_field_size = 8192


def when_ready(server):
    server.log.info("fieldguard ready, workers=%s", workers)


def worker_abort(worker):
    worker.log.warning("Worker %s aborted", worker.pid)
