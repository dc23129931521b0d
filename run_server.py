"""
BlockServed Server Runner
=========================
Run this directly: python run_server.py
Host, port and log level come from the environment / .env (see blockserved/core/config.py).
"""
import sys

# Fix console encoding for Windows
if sys.platform == 'win32':
    try:
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        sys.stderr.reconfigure(encoding='utf-8', errors='replace')
    except (AttributeError, OSError):
        pass  # Older Python or redirected output


def main():
    from blockserved.core.config import get_settings

    settings = get_settings()

    print()
    print("=" * 60)
    print(f"  {settings.app_name.upper()} v{settings.app_version}")
    print("=" * 60)
    print()
    print(f"  Database:       {settings.database_url.split('@')[-1]}")
    print(f"  Upload root:    {settings.upload_dir}")
    print(f"  Staging TTL:    {settings.staging_ttl_minutes} min")
    print(f"  Stage API:      http://localhost:{settings.port}/api/stage")
    if settings.enable_docs:
        print(f"  API Docs:       http://localhost:{settings.port}/api/docs")
    print()
    print("  Press Ctrl+C to stop")
    print("=" * 60)
    print()

    import uvicorn
    uvicorn.run(
        "blockserved.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
