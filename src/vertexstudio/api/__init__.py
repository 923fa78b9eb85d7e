"""Vertex Studio — FastAPI REST API layer.

Modules
-------
main
    FastAPI application factory, route handlers, exception handlers and the
    ``main()`` CLI entry point.
models
    Pydantic models for API request validation.
orchestrator
    Create, edit, animate and list flows tying the remote client to local
    persistence.
"""
