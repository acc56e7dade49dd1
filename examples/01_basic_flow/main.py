import asyncio
import logging
import random
from dataclasses import dataclass, field

from justflow import FlowRecorder, flow, run_action, simple_logging_middleware


@dataclass
class Store:
    users: dict[int, str] = field(default_factory=dict)


async def fetch_user(user_id: int) -> str:
    """Simulates a slow remote lookup."""
    await asyncio.sleep(random.uniform(0.01, 0.05))
    return f"user-{user_id}"


recorder = FlowRecorder()


@flow(middleware=[simple_logging_middleware, recorder])
def load_users(store: Store, ids: list[int]):
    for user_id in ids:
        # Each yield suspends the flow until the lookup finishes.
        store.users[user_id] = yield fetch_user(user_id)
    return len(store.users)


async def main() -> None:
    logging.basicConfig(level=logging.DEBUG)
    store = Store()

    loaded = await run_action(lambda: load_users(store, [1, 2, 3]), scope=store)
    print(f"Loaded {loaded} users: {store.users}")

    for ctx in recorder.steps:
        print(f"  {ctx.type.value:<17} id={ctx.id} parents={ctx.all_parent_ids}")


if __name__ == "__main__":
    asyncio.run(main())
