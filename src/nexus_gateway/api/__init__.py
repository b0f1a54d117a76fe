"""FastAPI routers for the gateway's HTTP surface."""
