"""Waymark HTTP API layer.

Usage
-----
Create and run the application::

    from waymark.api import create_app

    app = create_app()              # health-only mode
    app = create_app(dependencies)  # with dispatch and routing endpoints

Public API
----------
create_app
    Application factory that registers health endpoints and, when
    dependencies are provided, the dispatch and routing endpoints.
build_app_dependencies
    Lives in ``waymark.api.factory``; wires the SQL store, registry,
    engine, resolver and publisher from the environment.
"""

from waymark.api.app import AppDependencies, create_app

__all__ = ["AppDependencies", "create_app"]
