# backend/wsgi.py
from fulfillment import create_app

app = create_app()
