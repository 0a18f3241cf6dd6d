"""
API Package Initialization

FastAPI application for the scheduling assistant: inbound email webhook,
nudge sweep trigger and session inspection routes.
"""
