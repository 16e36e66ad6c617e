# backend/wsgi.py
from voucherhub import create_app

app = create_app()
