from prometheus_fastapi_instrumentator import Instrumentator

from coursegate.core.config import get_settings
from coursegate.core.logging import configure_logging
from . import create_app

settings = get_settings()
configure_logging(settings)
app = create_app(settings)
Instrumentator().instrument(app).expose(app)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}
