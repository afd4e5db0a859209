import os


class Backend:
    def __init__(self, config: dict | None = None) -> None:
        backend_cfg = (config or {}).get("chatlobby", {}).get("backend", {})
        self.BASE_URL: str = str(backend_cfg.get("base_url", os.getenv("BACKEND_BASE_URL", "http://127.0.0.1:8000")))
        self.RETRY_COUNT: int = int(backend_cfg.get("retry_count", os.getenv("BACKEND_RETRY_COUNT", "3")))
        self.RETRY_DELAY: float = float(backend_cfg.get("retry_delay", os.getenv("BACKEND_RETRY_DELAY", "0.5")))
        self.REQUEST_TIMEOUT: float = float(
            backend_cfg.get("request_timeout", os.getenv("BACKEND_REQUEST_TIMEOUT", "30"))
        )
        self.CSRF_TOKEN: str | None = backend_cfg.get("csrf_token", os.getenv("BACKEND_CSRF_TOKEN")) or None
