import os

host = os.getenv("HOST", "0.0.0.0")
port = int(os.getenv("PORT", "9002"))
workers = int(os.getenv("UVICORN_WORKERS", str(max(2, (os.cpu_count() or 1)))))
loop = "uvloop"  # needs uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
proxy_headers = True
