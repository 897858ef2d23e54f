# backend/wsgi.py
from balepos import create_app

app = create_app()
