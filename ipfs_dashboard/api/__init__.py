"""Public HTTP API (FastAPI) for the node dashboard."""
