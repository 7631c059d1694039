"""
Gunicorn configuration for the Space Booking API.

Run with: gunicorn -c deploy/gunicorn.conf.py space_booking.wsgi:application
"""

import multiprocessing
import os

bind = f"{os.environ.get('GUNICORN_HOST', '127.0.0.1')}:{os.environ.get('GUNICORN_PORT', '8000')}"
backlog = 2048

workers = int(os.environ.get('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1))
worker_class = "sync"
timeout = 30
graceful_timeout = 30
keepalive = 2

# Recycle workers periodically
max_requests = 1000
max_requests_jitter = 100

preload_app = True

# Log to stdout/stderr unless files are configured
accesslog = os.environ.get('GUNICORN_ACCESS_LOG', '-')
errorlog = os.environ.get('GUNICORN_ERROR_LOG', '-')
loglevel = os.environ.get('GUNICORN_LOG_LEVEL', 'info')
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s %(D)s'

proc_name = 'space-booking'

if os.environ.get('DISABLE_ACCESS_LOG', 'False').lower() == 'true':
    accesslog = None

if os.environ.get('DJANGO_DEBUG', 'False').lower() == 'true':
    reload = True
    loglevel = 'debug'
    workers = 1


def when_ready(server):
    server.log.info("Space Booking server is ready. Server: %s", server.address)


def worker_int(worker):
    worker.log.info("Worker killed: %s", worker.pid)
