import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.server.api import order_document, orders, system
from src.server.http_error_handlers import register_exception_handlers
from src.server.settings.config import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("orderlink")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.order_secret:
        logger.warning("ORDER_SECRET saknas – signerade länkar kan inte skapas eller verifieras")
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY saknas – e-post skickas inte")
    logger.info("Startar %s (%s)", settings.app_name, settings.environment)
    yield
    logger.info("Avslutar appen...")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# CORS – offertverktyget (frontend) anropar API:t direkt
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(system.router)
app.include_router(orders.router)            # /api/order-link, /api/send-offer, /api/place-order
app.include_router(order_document.router)    # /order?token=..., offentlig utan API-nyckel
