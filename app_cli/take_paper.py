from __future__ import annotations
import argparse, asyncio, contextlib, logging, threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from attempt_core.driver import AttemptDriver
from attempt_core.engine import AttemptEngine
from attempt_core.entitlements import parse_expiry
from attempt_core.errors import AttemptError
from attempt_core.question_bank import load_bank
from attempt_core.store import AttemptStore
from attempt_core.transport import HttpTransport, LocalTransport, TransportError
from attempt_core.types import Identity

log = logging.getLogger("take_paper")


async def ask(prompt: str) -> str:
    # a daemon reader keeps input() off the loop and never holds up exit
    loop = asyncio.get_running_loop()
    fut = loop.create_future()

    def settle(line: str | None, exc: BaseException | None) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(line)

    def read() -> None:
        try:
            line, exc = input(prompt), None
        except EOFError as err:
            line, exc = None, err
        if not loop.is_closed():
            loop.call_soon_threadsafe(settle, line, exc)

    threading.Thread(target=read, daemon=True).start()
    return (await fut).strip()


def _clock(driver: AttemptDriver) -> str:
    left = driver.time_left
    if left is None:
        return "untimed"
    return f"{left // 60:02d}:{left % 60:02d} left"


async def _answer_loop(driver: AttemptDriver, items: List[Dict[str, Any]], timer: asyncio.Task) -> None:
    while not driver.finished:
        idx = driver.current
        it = items[idx]
        print(f"\n[{idx + 1}/{len(items)}] ({it['marks']} marks) {_clock(driver)}")
        print(it["prompt"])
        if it["type"] == "mcq":
            for i, opt in enumerate(it["options"]):
                mark = "*" if driver.selections.get(it["id"]) == i else " "
                print(f"  {mark}[{i}] {opt}")
        else:
            current = driver.texts.get(it["id"])
            if current:
                print(f"  (saved: {current})")
        reply = asyncio.ensure_future(ask("answer, n/p to move, s to submit: "))
        await asyncio.wait({reply, timer}, return_when=asyncio.FIRST_COMPLETED)
        if not reply.done():
            reply.cancel()
            print("\nTime is up.")
            break
        try:
            v = reply.result()
        except EOFError:
            v = "s"
        if driver.finished:
            break
        if v == "s":
            try:
                await driver.submit()
            except TransportError as exc:
                print(f"Submission failed ({exc}), try again.")
        elif v == "n":
            await driver.navigate(idx + 1)
        elif v == "p":
            await driver.navigate(idx - 1)
        elif it["type"] == "mcq":
            if v.isdigit() and int(v) < len(it["options"]):
                if not await driver.select_option(it["id"], int(v)):
                    print("Choice not saved, try again.")
            else:
                print("Enter an option index.")
        elif v:
            driver.type_text(it["id"], v)
            await driver.blur(it["id"])


def _print_results(res: Dict[str, Any]) -> None:
    score = res["attempt"]["score"] or {}
    print(f"\nScore: {score.get('correct')}/{score.get('totalQuestions')} ({score.get('percentage')}%)")
    if res["attempt"].get("autoSubmitted"):
        print("Submitted automatically when time ran out.")
    for q in res["questionResults"]:
        flag = "manual" if q["needsManualMarking"] else ("ok" if q["isCorrect"] else "x")
        print(f"  Q{q['order']}: {flag}")


async def run(args) -> int:
    expires = parse_expiry(args.expires) or datetime.now(timezone.utc) + timedelta(days=1)
    who = Identity(user_id=args.user, role="student", subscription_expires_at=expires)
    if args.base_url:
        transport = HttpTransport(args.base_url, who)
    else:
        engine = AttemptEngine(AttemptStore(args.data_dir), load_bank(args.bank))
        transport = LocalTransport(engine, who)
    try:
        paper = await transport.get_paper(args.paper)
        attempt = await transport.start_or_resume(args.paper)
        items = sorted(paper["items"], key=lambda i: i["order"])
        print(f"{paper['title']}: {len(items)} questions")
        driver = AttemptDriver(transport, attempt, [i["id"] for i in items])
        timer = asyncio.create_task(driver.run())
        try:
            await _answer_loop(driver, items, timer)
        finally:
            if not driver.finished:
                timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        print(f"\nResults for attempt {driver.attempt_id}")
        _print_results(await transport.get_results(driver.attempt_id))
    except (AttemptError, TransportError) as exc:
        log.error("%s", exc)
        return 1
    finally:
        if isinstance(transport, HttpTransport):
            await transport.aclose()
    return 0


def main():
    ap = argparse.ArgumentParser(description="Sit a timed assessment paper in the terminal.")
    ap.add_argument("--paper", required=True)
    ap.add_argument("--user", default="student-cli")
    ap.add_argument("--expires", default=None, help="subscription expiry (ISO-8601); defaults to tomorrow")
    ap.add_argument("--base-url", default=None, help="attempt API base url; runs in-process when omitted")
    ap.add_argument("--bank", default=None)
    ap.add_argument("--data-dir", default=None)
    ap.add_argument("-v", "--verbose", action="store_true")
    a = ap.parse_args()
    logging.basicConfig(level=logging.INFO if a.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    raise SystemExit(asyncio.run(run(a)))


if __name__ == "__main__": main()
