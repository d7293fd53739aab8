#!/usr/bin/env python3
"""
Smoke check against a running Client Onboarding Automation server.
"""

import requests
import sys
import time


def check_health(base_url="http://localhost:8000"):
    """Check the health endpoint."""
    try:
        response = requests.get(f"{base_url}/health", timeout=10)
        if response.status_code == 200:
            print(f"✅ Health check passed: {response.json()}")
            return True
        print(f"❌ Health check failed: {response.status_code}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Health check error: {e}")
        return False


def check_onboarding_webhook(base_url="http://localhost:8000"):
    """Send a demo deal through the onboarding webhook (no CRM write-back)."""
    sample_deal = {
        "id": f"DEMO-{int(time.time())}",
        "Deal_Name": "Smoke Check Law Group",
        "Agent_Archetype": "Concierge",
        "Practice_Area": "Family Law",
        "Email": "smoke-check@example.com",
    }

    try:
        response = requests.post(f"{base_url}/api/onboarding/webhook", json=sample_deal, timeout=60)
        if response.status_code == 200:
            print(f"✅ Onboarding webhook passed: {response.json()}")
            return True
        print(f"❌ Onboarding webhook failed: {response.status_code}")
        print(f"Response: {response.text}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Onboarding webhook error: {e}")
        return False


def check_missing_fields(base_url="http://localhost:8000"):
    """A deal without an archetype must be rejected."""
    try:
        response = requests.post(
            f"{base_url}/api/onboarding/webhook",
            json={"Deal_Name": "Incomplete Firm"},
            timeout=30
        )
        if response.status_code == 500 and "agent_archetype" in response.json().get("error", ""):
            print("✅ Validation check passed")
            return True
        print(f"❌ Validation not enforced: {response.status_code} {response.text}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Validation check error: {e}")
        return False


def check_call_routing(base_url="http://localhost:8000"):
    """Inbound call and failover callbacks should return TwiML."""
    try:
        incoming = requests.post(f"{base_url}/calls/incoming", data={"CallStatus": "ringing"}, timeout=10)
        failover = requests.post(f"{base_url}/calls/failover", data={"DialCallStatus": "no-answer"}, timeout=10)

        ok = all(
            r.status_code == 200 and r.headers.get("content-type", "").startswith("text/xml") and "<Dial" in r.text
            for r in (incoming, failover)
        )
        if ok:
            print("✅ Call routing passed")
            return True
        print(f"❌ Call routing failed: {incoming.text} / {failover.text}")
        return False
    except requests.exceptions.RequestException as e:
        print(f"❌ Call routing error: {e}")
        return False


def main():
    """Run all checks."""
    print("🚀 Smoke checking Client Onboarding Automation")
    print("=" * 50)

    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    checks = [
        ("Health Check", lambda: check_health(base_url)),
        ("Onboarding Webhook", lambda: check_onboarding_webhook(base_url)),
        ("Missing Fields", lambda: check_missing_fields(base_url)),
        ("Call Routing", lambda: check_call_routing(base_url)),
    ]

    passed = 0
    for name, check in checks:
        print(f"\n🧪 Running {name}...")
        if check():
            passed += 1

    print("\n" + "=" * 50)
    print(f"📊 Results: {passed}/{len(checks)} checks passed")
    return 0 if passed == len(checks) else 1


if __name__ == "__main__":
    sys.exit(main())
