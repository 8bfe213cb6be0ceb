"""Router package – registers all FastAPI routers on the application."""

from fastapi import FastAPI


def register_routers(app: FastAPI) -> None:
    """Include all routers on the FastAPI application.

    Imports are deferred to avoid a circular import: each router module
    does ``import main``, which in turn does ``from routers import
    register_routers``.
    """
    from routers import core, diagnostics, interrogation, ray_paths

    for module in (core, ray_paths, interrogation, diagnostics):
        app.include_router(module.router)
