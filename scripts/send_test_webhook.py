#!/usr/bin/env python3
"""
Send a signed test webhook

Builds a Razorpay-style payment_link.paid event for a company, signs the exact
bytes with RAZORPAY_WEBHOOK_SECRET and posts them to the API. Useful for
checking a deployment end to end in test mode.

Usage:
    python scripts/send_test_webhook.py --company <id> --payment-id pay_test_123
    python scripts/send_test_webhook.py --company <id> --url https://api.example.com
    python scripts/send_test_webhook.py --company <id> --bad-signature
"""

import json
import sys

import httpx

from script_utils import create_base_parser, print_header, print_summary

from app.core.config import get_settings
from app.services.razorpay import compute_signature


def build_event(company_id: str, payment_id: str, amount_paise: int) -> dict:
    notes = {"companyId": company_id}
    return {
        "entity": "event",
        "event": "payment_link.paid",
        "payload": {
            "payment_link": {"entity": {"id": "plink_test", "status": "paid", "notes": notes}},
            "payment": {
                "entity": {
                    "id": payment_id,
                    "amount": amount_paise,
                    "currency": "INR",
                    "status": "captured",
                    "notes": notes,
                }
            },
        },
    }


def main() -> int:
    parser = create_base_parser("Send a signed test payment webhook")
    parser.add_argument("--payment-id", default="pay_test_0001", help="Provider payment id")
    parser.add_argument("--amount", type=int, default=100000, help="Amount in paise")
    parser.add_argument("--url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--bad-signature", action="store_true", help="Send a wrong signature")
    args = parser.parse_args()

    if not args.company:
        parser.error("--company is required")

    secret = get_settings().razorpay_webhook_secret
    if not secret:
        print("RAZORPAY_WEBHOOK_SECRET is not set")
        return 1

    body = json.dumps(build_event(args.company, args.payment_id, args.amount)).encode()
    signature = "0" * 64 if args.bad_signature else compute_signature(body, secret)

    print_header("SEND TEST WEBHOOK")
    resp = httpx.post(
        f"{args.url.rstrip('/')}/v1/webhooks/razorpay",
        content=body,
        headers={"Content-Type": "application/json", "X-Razorpay-Signature": signature},
        timeout=30.0,
    )
    print_summary({"status_code": resp.status_code, "response": resp.text})
    return 0 if resp.status_code < 400 else 1


if __name__ == "__main__":
    sys.exit(main())
