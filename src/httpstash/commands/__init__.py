"""Built-in CLI sub-command groups registered by :func:`httpstash.app.main`."""
