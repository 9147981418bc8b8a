"""Main entry point for running the FastAPI application with auto-reload."""
import uvicorn

from rxparse.config import settings

if __name__ == "__main__":
    print(f"Starting {settings.app_name} v{settings.version}")
    print(f"Debug mode: {settings.debug}")
    print(f"Database: {settings.db.url.split('@')[-1]}")
    backend = settings.resolved_backend()
    print(f"Parser backend: {backend.value if backend else 'none'}")
    print(f"Auto-reload: {'Enabled' if settings.debug else 'Disabled'}")
    print("-" * 50)

    uvicorn.run(
        "rxparse.api:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.debug,
        reload_dirs=["rxparse", "ai"] if settings.debug else None,
        reload_includes=["*.py"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
