"""
Print a signed Mercado Pago notification for exercising the webhook locally.

Usage:
    python scripts/sign_webhook.py <data_id> [topic] [request_id]
"""

import sys
import os
import time
import uuid

# Add project root to sys.path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.services.signature import build_manifest, compute_signature


def main() -> None:
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    data_id = sys.argv[1]
    topic = sys.argv[2] if len(sys.argv) > 2 else "merchant_order"
    request_id = sys.argv[3] if len(sys.argv) > 3 else str(uuid.uuid4())

    if not settings.mercadopago_webhook_secret:
        print("MERCADOPAGO_WEBHOOK_SECRET is not set")
        sys.exit(1)

    ts = str(int(time.time()))
    signature = compute_signature(
        settings.mercadopago_webhook_secret,
        build_manifest(data_id, request_id, ts),
    )

    print(
        f"curl -X POST '{settings.backend_url}/webhooks/mercadopago"
        f"?type={topic}&data.id={data_id}' \\\n"
        f"  -H 'x-signature: ts={ts},v1={signature}' \\\n"
        f"  -H 'x-request-id: {request_id}'"
    )


if __name__ == "__main__":
    main()
