"""
FastAPI HTTP layer for tts-proxy.

    - openai_compat.py: OpenAI-compatible endpoint (/v1/audio/speech)
    - routes.py: demo endpoint (/api/generate-tts), /health, /metrics
    - dependencies.py: settings/service providers, auth and rate limiting
    - errors.py: OpenAI and demo error bodies, error -> status mapping
    - ratelimit.py: fixed-window limiter
    - schemas.py: request/response models
"""
