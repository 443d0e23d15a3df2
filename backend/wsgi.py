# Overview: WSGI entrypoint (FLASK_APP=wsgi.py).

from cashier import create_app

app = create_app()
