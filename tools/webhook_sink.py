"""
Webhook Sink - A simple local server for testing webhook delivery.

Receives webhooks, verifies X-Webhook-Signature, and logs events.

Usage:
    python tools/webhook_sink.py --port 9090 --secret <registration secret>

Then register http://localhost:9090/webhook and trigger
POST /api/admin/webhooks/{id}/test.
"""
import argparse
import json
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from uvicorn import run as uvicorn_run

from sheetshare.features.webhooks.signing import SIGNATURE_HEADER, verify_signature

app = FastAPI(title="Webhook Sink", version="1.0.0")
WEBHOOK_SECRET: Optional[str] = None
DELIVERIES = []  # In-memory log


@app.post("/webhook")
async def receive_webhook(request: Request):
    """Receive and verify webhook delivery."""
    if not WEBHOOK_SECRET:
        raise HTTPException(status_code=400, detail="Webhook secret not configured")

    body_bytes = await request.body()
    signature_header = request.headers.get(SIGNATURE_HEADER)
    if not signature_header:
        print("Missing signature header")
        raise HTTPException(status_code=400, detail="Missing signature header")

    if not verify_signature(WEBHOOK_SECRET, body_bytes, signature_header):
        print("Invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        body = json.loads(body_bytes)
    except json.JSONDecodeError:
        body = {"raw": body_bytes.decode("utf-8", errors="replace")}

    delivery = {
        "received_at": datetime.now(timezone.utc).isoformat(),
        "event": body.get("event"),
        "user_agent": request.headers.get("User-Agent"),
        "signature_verified": True,
        "body": body,
    }
    DELIVERIES.append(delivery)

    print(f"Webhook delivered: {body.get('event', 'unknown')}")
    print(f"   Body: {json.dumps(body, indent=2)}")

    return {"status": "ok", "event": body.get("event")}


@app.get("/")
async def status():
    """Health check and status."""
    return {
        "status": "running",
        "deliveries_received": len(DELIVERIES),
        "webhook_secret_configured": WEBHOOK_SECRET is not None,
    }


@app.get("/deliveries")
async def list_deliveries():
    """List all received deliveries."""
    return {"deliveries": DELIVERIES}


@app.delete("/deliveries")
async def clear_deliveries():
    """Clear delivery history."""
    global DELIVERIES
    count = len(DELIVERIES)
    DELIVERIES = []
    return {"cleared": count}


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Webhook Sink for testing")
    parser.add_argument("--port", type=int, default=9090, help="Port to listen on (default: 9090)")
    parser.add_argument("--secret", type=str, required=True, help="Signing secret of the registration under test")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")

    args = parser.parse_args()

    global WEBHOOK_SECRET
    WEBHOOK_SECRET = args.secret

    print(f"Webhook Sink starting on {args.host}:{args.port}")
    print(f"Webhook endpoint: http://{args.host}:{args.port}/webhook")
    print(f"Status/deliveries: http://{args.host}:{args.port}/deliveries")
    print()

    uvicorn_run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
