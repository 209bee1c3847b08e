import os

import config
from app import app, init_db


# Ensure the instance folder and tables exist when running via Gunicorn/Werkzeug.
os.makedirs(config.INSTANCE_DIR, exist_ok=True)
init_db()
