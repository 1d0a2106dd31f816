"""
Utility Modules for tts-relay.

    - audio.py: WAV encoding and speech duration estimates
    - timeit.py: Performance measurement utilities
"""
