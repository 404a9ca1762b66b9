"""
service — HTTP front end
========================

Modules
-------
api
    FastAPI app exposing ``GET /policy`` and ``POST /simulate``.
"""
