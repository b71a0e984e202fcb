import os

bind = f"{os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '8080')}"
workers = 2          # bump to 3–4 if CPU allows
threads = 8          # favicon requests mostly wait on remote sites
timeout = 60
graceful_timeout = 30
keepalive = 5
preload_app = True


def when_ready(server):
    # load the default image once in the master so forked workers share it
    from app import app
    app.config["FALLBACK_CACHE"].warm()
