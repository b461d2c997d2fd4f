"""
Vendor-facing pipeline components.

    - mapping.py: voice/format tables and speed -> speech_rate
    - models.py: requests, vendor outcomes, audio assets
    - cache.py: in-memory TTL cache
    - upstream.py: vendor submission (with retries) and task status
    - poller.py: task polling
    - fetcher.py: audio download
    - transcoder.py: ffmpeg conversion to amr/opus
"""
