import os
import time
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from loguru import logger
from dotenv import load_dotenv

# Load environment variables before the clients read them
load_dotenv()

from calls.routing import CallRouter, Leg
from graph.errors import OnboardingError
from graph.nodes.crm import is_tracked
from graph.nodes.parse import parse_intent
from graph.workflow import process_onboarding
from tools.idempotency import Idem

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level="INFO")

# Initialize FastAPI app
app = FastAPI(
    title="Client Onboarding Automation",
    description="CRM-triggered onboarding pipeline and time-based call routing",
    version="1.0.0"
)

idem = Idem()
call_router = CallRouter()


@app.post("/api/onboarding/webhook")
async def onboarding_webhook(req: Request):
    """
    CRM webhook for a newly won deal.

    Accepts a flat record or a ``{"properties": {...}}`` envelope, e.g.:
    {
        "id": "5725767000001234567",
        "Deal_Name": "Smith & Partners LLP",
        "Agent_Archetype": "Gatekeeper",
        "Email": "office@smithpartners.com",
        "Amount": 1250
    }
    """
    start_time = time.time()
    claimed = None

    try:
        payload = await req.json()
        logger.info("--- New onboarding request (webhook) ---")
        logger.debug(f"Received payload: {payload}")

        intent = parse_intent(payload)

        if is_tracked(intent.reference_id):
            if not idem.claim(intent.reference_id):
                logger.warning(f"Duplicate onboarding ignored: {intent.reference_id}")
                return JSONResponse(
                    status_code=200,
                    content={"status": "duplicate_ignored", "message": "Deal already onboarded"}
                )
            claimed = intent.reference_id

        # Vendor calls are blocking, run them off the event loop
        result = await run_in_threadpool(process_onboarding, intent)

        logger.info(f"Onboarding processed in {time.time() - start_time:.2f}s: {result.invoice_id}")
        return JSONResponse(status_code=200, content=result.to_response())

    except OnboardingError as e:
        logger.error(f"Onboarding processing error ({e.kind}): {e}")
        if claimed:
            idem.release(claimed)
        return JSONResponse(status_code=500, content={"error": str(e), "kind": e.kind})
    except ValueError as e:
        # Malformed JSON body, or a bad value surfacing after the claim
        logger.error(f"Onboarding request rejected: {e}")
        if claimed:
            idem.release(claimed)
        return JSONResponse(status_code=500, content={"error": str(e), "kind": "ValidationError"})
    except Exception:
        if claimed:
            idem.release(claimed)
        raise


@app.post("/calls/incoming")
async def incoming_call(req: Request):
    """Inbound call: dial the specialist before the cutoff hour, the automated line after."""
    form = await req.form()
    logger.info(f"Incoming call {form.get('CallSid', '')} status: {form.get('CallStatus', 'unknown')}")

    outcome = call_router.on_inbound_call()
    return Response(content=outcome.to_xml(), media_type="text/xml")


@app.post("/calls/failover")
async def call_failover(req: Request, leg: Leg = Leg.PRIMARY):
    """Dial action callback: fail over to the automated line unless the leg completed."""
    form = await req.form()
    outcome = call_router.on_dial_status(form.get("DialCallStatus"), leg)
    return Response(content=outcome.to_xml(), media_type="text/xml")


@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0",
        "services": {
            "redis": "connected" if idem.r else "disconnected",
            "workflow": "ready"
        }
    }


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting Client Onboarding Automation")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info"
    )
