import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from config import settings
from storefront.api.routes import router
from storefront.database.postgres_store import PostgresStore
from storefront.services.auth import SupabaseAuthClient
from storefront.services.checkout import CheckoutOrchestrator
from storefront.state.cart import Cart
from storefront.state.session import SessionContext
from storefront.state.store import JsonFileCartStore

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),  # This outputs to console/terminal
    ]
)

logger = logging.getLogger(__name__)

def log_session_change(event, session):
    who = session.email if session else "nobody"
    logger.info(f"[Admin] Session {event.value}: {who}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting up application...")
    backend = PostgresStore()
    await backend.init_pool()

    cart = Cart(JsonFileCartStore(settings.CART_STORE_DIR, settings.CART_STORE_KEY))
    session = SessionContext(SupabaseAuthClient())
    unsubscribe = session.subscribe(log_session_change)
    session.init()

    app.state.backend = backend
    app.state.cart = cart
    app.state.session = session
    app.state.checkout = CheckoutOrchestrator(cart, backend)
    yield
    # Shutdown
    logger.info("Shutting down application...")
    unsubscribe()
    await session.teardown()
    await backend.close()

app = FastAPI(lifespan=lifespan)
app.include_router(router)

@app.get("/")
def read_root():
    return {"message": "Storefront is running"}
