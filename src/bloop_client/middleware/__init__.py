from .asgi import BloopASGI
from .django import BloopMiddleware
from .wsgi import BloopWSGI

__all__ = ["BloopASGI", "BloopMiddleware", "BloopWSGI"]
