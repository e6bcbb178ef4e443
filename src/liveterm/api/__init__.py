"""
Expose the FastAPI application instance.

Importing this module will create the FastAPI application and register
the terminal WebSocket and the HTTP routes.  Run the service with:

```sh
python -m liveterm.api
```
"""

from .main import app

__all__ = ["app"]
