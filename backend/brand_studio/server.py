"""Entry point: ``brand-studio`` serves the API with uvicorn."""
import os

import uvicorn

PORT = int(os.getenv("STUDIO_PORT", 8000))
HOST = os.getenv("STUDIO_HOST", "0.0.0.0")
RELOAD = os.getenv("STUDIO_DEV", "false").lower() == "true"


def main() -> None:
    print(f"Brand Studio -> http://localhost:{PORT}  (API docs: http://localhost:{PORT}/docs)")
    uvicorn.run(
        "brand_studio.main:app",
        host=HOST,
        port=PORT,
        reload=RELOAD,
        log_level="info",
    )


if __name__ == "__main__":
    main()
