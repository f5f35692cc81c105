# backend/wsgi.py
from millstock import create_app

app = create_app()
