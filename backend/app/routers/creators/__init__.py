# app/routers/creators/__init__.py
from .tokencreate import router as tokencreate_router
from .terminal import router as terminal_router
from .coins import router as coins_router
from .websocket import router as websocket_router

__all__ = ["tokencreate_router", "terminal_router", "coins_router", "websocket_router"]
