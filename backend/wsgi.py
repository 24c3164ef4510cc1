# backend/wsgi.py
from batchpos import create_app

app = create_app()
