import os
from config import HOST, PORT, LOG_LEVEL

bind = os.getenv("SURVEYDESK_GUNICORN_BIND", f"{HOST}:{PORT}")
workers = int(os.getenv("SURVEYDESK_GUNICORN_WORKERS", "2"))
threads = int(os.getenv("SURVEYDESK_GUNICORN_THREADS", "4"))
# large workbooks take a while to build
timeout = int(os.getenv("SURVEYDESK_GUNICORN_TIMEOUT", "120"))
loglevel = LOG_LEVEL.lower()
accesslog = "-"
errorlog = "-"
