#!/usr/bin/env python3
"""Start the ComposerFix web application.

Host and port come from COMPOSERFIX_WEB_HOST / COMPOSERFIX_WEB_PORT
(default 127.0.0.1:8000).
"""

import uvicorn

from composerfix.config import Settings, load_settings


def main(settings: Settings | None = None, reload: bool = True) -> None:
    settings = settings or load_settings()
    url = f"http://{settings.web_host}:{settings.web_port}"

    print("🚀 Starting ComposerFix Web Application...")
    print(f"📍 URL: {url}")
    print(f"📄 API docs: {url}/docs")
    print("🛑 Press Ctrl+C to stop")
    print()

    uvicorn.run(
        "apps.web.main:app",
        host=settings.web_host,
        port=settings.web_port,
        log_level=settings.log_level.lower(),
        reload=reload,
        reload_dirs=["apps", "composerfix"] if reload else None,
    )


if __name__ == "__main__":
    main()
