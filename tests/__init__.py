"""
CycleCast Test Suite

Test Categories:
- unit/: Fast, isolated tests per module, time injected via fake clocks
- integration/: HTTP API tests through the FastAPI test client
"""
