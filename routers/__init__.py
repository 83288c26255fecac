"""
Proxy routers.

Each module owns one slice of the /api surface:
    gateway       POST /api/n8n
    auth          POST /api/login
    attendance    GET/POST /api/attendance
    client_config GET /api/config
    my_day        GET /api/google-script
"""
