# backend/wsgi.py
from prismatech import create_app

app = create_app()
