import asyncio

from justflow import FlowCancelled, flow, run_action


@flow
def poll_forever(interval: float):
    polls = 0
    try:
        while True:
            yield asyncio.sleep(interval)
            polls += 1
            print(f"🔄 poll #{polls}")
    except FlowCancelled as e:
        print(f"🛑 cancelled ({e.reason}) after {polls} polls")
        return polls
    finally:
        print("🧹 released poller resources")


async def main() -> None:
    future = run_action(lambda: poll_forever(0.05))
    await asyncio.sleep(0.18)

    print(f"cancel delivered: {future.cancel('user requested stop')}")
    print(f"flow returned: {await future}")

    # Cancelling a finished flow does nothing.
    print(f"cancel again: {future.cancel()}")


if __name__ == "__main__":
    asyncio.run(main())
