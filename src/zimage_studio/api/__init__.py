"""
Remote task API gateways.

Components:
- http.py: ApiConfig, shared AsyncClient, status/transport error mapping
- submission.py: POST /api/generate -> TaskHandle
- status.py: GET /api/status -> TaskState (result payload decoded here)
"""
