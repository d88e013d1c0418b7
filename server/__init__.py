"""Server package: FastAPI application, routers and HTTP schemas."""
