"""
tts-relay Services Layer.

Business logic between the HTTP layer and the providers/storage:

    - validators.py: content, settings and id validation
    - status.py: conversion state machine and status table
    - orchestrator.py: ConversionOrchestrator (probe, failover, persist)
    - delivery.py: AudioDelivery (Range handling, response mapping)
    - cleanup.py: CleanupScheduler (background sweeps)
"""
