"""
Todo API package.

The ASGI application lives in `todo_api.main` (`todo_api.main:app`); use
`todo_api.main.create_app()` to build one around a specific repository.
"""

__version__ = "0.1.0"
