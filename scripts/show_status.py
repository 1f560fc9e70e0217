"""Quick status dump of a running DigitPulse instance."""
import sys

import httpx

from digitpulse.cli.dashboard import print_status

base = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8080"

r = httpx.get(f"{base}/strategies")
d = r.json()
strategies = d.get("strategies", {})
print(f"{len(strategies)} strategies, connected={d.get('connected')}, "
      f"total P/L {d.get('total_profit', 0.0):+.2f}")
for sid, status in strategies.items():
    print_status(status)
    events = httpx.get(f"{base}/strategies/{sid}/events").json().get("events", [])
    for e in events[-5:]:
        print(f"    {e['timestamp']} [{e['level']}] {e['message']}")
