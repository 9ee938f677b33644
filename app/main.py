from pathlib import Path
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Header
from fastapi.responses import JSONResponse

from app.routes import router
from app.database import Base, engine, SessionLocal
from app.errors import SignatureError
from app.logger import get_logger
from app.webhooks import handle_event, verify_event

# Force-load .env (Windows-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = get_logger(__name__)

app = FastAPI(title="Bakery Storefront")

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/stripe/webhook")
@app.post("/webhook")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    payload = await request.body()

    try:
        event = verify_event(payload, stripe_signature)
    except SignatureError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    db = SessionLocal()
    try:
        handle_event(db, event)
    except Exception:
        db.rollback()
        logger.exception("Webhook processing error")
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
    finally:
        db.close()

    return {"received": True}
