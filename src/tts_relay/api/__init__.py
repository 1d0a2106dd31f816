"""
tts-relay HTTP layer.

    tts_routes.py     /tts/*, /health, /metrics
    audio_routes.py   /audio/*
    schemas.py        Pydantic request/response models
    dependencies.py   ServiceContainer and Depends() providers
    errors.py         Error envelope and exception handlers
"""
