"""
Utility modules for tts-proxy.

    - audio.py: Audio format hints and temporary files for transcoding
    - timeit.py: Performance measurement utilities
"""
