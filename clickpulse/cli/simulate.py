# ==============================================================================
# Simulate Command
# ==============================================================================
"""
Drive a TrackingAgent against a simulated page.

A random visitor clicks, scrolls, navigates and submits forms on a fake
shop. Batches are recorded in memory (or POSTed to --endpoint) and printed,
which makes the batching and retry behavior easy to observe.
"""

import asyncio
import json
import random
import time
from collections import Counter
from typing import Annotated, Optional

import typer

from clickpulse.agent import Element, Page, RecordingTransport, TrackingAgent
from clickpulse.agent.transport import HttpTransport
from clickpulse.cli.shared import (
    BOX_WIDTH,
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    configure_logging,
)
from clickpulse.utils.config import get_settings

SHOP_URL = "https://shop.example.com"
PAGES = ["/", "/products", "/products/42", "/cart", "/checkout"]
BUTTONS = [
    Element("BUTTON", id="add-to-cart-button", class_name="btn btn-primary", text="Add to cart"),
    Element("BUTTON", class_name="btn", text="Next"),
    Element("A", id="nav-home", text="Home"),
    Element("DIV", class_name="product-card", text="Blue Sneakers"),
]
CHECKOUT_FORM = Element(
    "FORM",
    id="checkout-form",
    action=f"{SHOP_URL}/checkout",
    method="post",
    fields=[("email", "email"), ("card", "text")],
)
# Retries before giving up on undelivered events at the end of the run
MAX_FINAL_FLUSHES = 5


async def _run(
    interactions: int,
    transport,
    site_credential: str,
    batch_size: Optional[int],
    seed: Optional[int],
) -> TrackingAgent:
    rng = random.Random(seed)
    now = [time.time()]

    settings = get_settings().agent.model_copy(update={"batch_timeout_seconds": 0.05})
    if batch_size:
        settings = settings.model_copy(update={"batch_size": batch_size})

    page = Page(
        url=f"{SHOP_URL}/",
        title="Example Shop",
        referrer="https://search.example.org/?q=sneakers",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) clickpulse-simulator",
        scroll_height=3200,
        globals={"siteCredential": site_credential},
    )
    agent = TrackingAgent.from_page(page, settings=settings, transport=transport, clock=lambda: now[0])
    agent.start()

    for _ in range(interactions):
        now[0] += rng.uniform(0.5, 4.0)
        action = rng.choices(["click", "scroll", "navigate", "submit"], weights=[5, 3, 2, 1])[0]
        if action == "click":
            page.click(rng.choice(BUTTONS), rng.randint(0, 1280), rng.randint(0, 720))
        elif action == "scroll":
            page.scroll_to(rng.randint(0, page.scroll_height))
        elif action == "navigate":
            path = rng.choice(PAGES)
            page.navigate(f"{SHOP_URL}{path}", title=f"Example Shop {path}")
        else:
            page.submit(CHECKOUT_FORM)
        # Let timers and in-flight sends make progress
        await asyncio.sleep(0.01)

    page.unload()
    await agent.drain()
    for _ in range(MAX_FINAL_FLUSHES):
        if not agent.queue:
            break
        agent.flush(force=True)
        await agent.drain()

    agent.stop()
    return agent


def simulate(
    events: Annotated[int, typer.Option("--events", "-n", help="Number of visitor interactions")] = 25,
    batch_size: Annotated[
        Optional[int], typer.Option("--batch-size", "-b", help="Override AGENT_BATCH_SIZE")
    ] = None,
    fail: Annotated[int, typer.Option("--fail", help="Make the first N sends fail")] = 0,
    seed: Annotated[Optional[int], typer.Option("--seed", help="Random seed")] = None,
    endpoint: Annotated[
        Optional[str], typer.Option("--endpoint", help="POST batches to this ingestion URL")
    ] = None,
    site_credential: Annotated[
        str, typer.Option("--credential", help="Site credential to send")
    ] = "demo-site",
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output batches as JSON")] = False,
) -> None:
    """Simulate a visitor and show the batches the agent delivers.

    Examples:
        clickpulse simulate --events 40
        clickpulse simulate --fail 2 --seed 7
        clickpulse simulate --endpoint http://localhost:8000/api/track
    """
    configure_logging("WARNING")

    recorder = RecordingTransport()
    recorder.fail_next(fail)
    transport = HttpTransport(endpoint) if endpoint else recorder

    agent = asyncio.run(_run(events, transport, site_credential, batch_size, seed))
    transport.close()

    if endpoint:
        print(f"\n  {C.BRIGHT_GREEN}{I.CHECK}{C.RESET} Delivered to {endpoint}")
        if agent.queue:
            print(f"  {C.BRIGHT_RED}{I.CROSS} {len(agent.queue)} events undelivered{C.RESET}")
        print()
        return

    if json_output:
        print(json.dumps(recorder.batches, indent=2))
        return

    W = BOX_WIDTH
    print()
    print(_box_header("SIMULATED DELIVERY", W))
    print(_empty_line(W))
    print(_box_line(f"  {'Session':<18}{C.WHITE}{agent.session_id}{C.RESET}", W))
    print(_box_line(f"  {'Send attempts':<18}{recorder.attempts}", W))
    print(_box_line(f"  {'Batches':<18}{len(recorder.batches)}", W))
    print(_box_line(f"  {'Events delivered':<18}{len(recorder.events)}", W))
    print(_box_line(f"  {'Undelivered':<18}{len(agent.queue)}", W))
    print(_empty_line(W))
    for number, batch in enumerate(recorder.batches, start=1):
        types = ", ".join(f"{t}x{n}" for t, n in Counter(e["event_type"] for e in batch).items())
        print(_box_line(f"  {I.BULLET} #{number:<3}{len(batch):>3} events  {C.DIM}{types[:42]}{C.RESET}", W))
    print(_empty_line(W))
    print(_box_bottom(W))
    print()

