"""Example wrapping the step manager with per-session locking."""

import asyncio

from checkoutflow import SerializedStepManager, StepManager
from checkoutflow.persistence import InMemoryStepRepository


async def main():
    repository = InMemoryStepRepository()
    manager = SerializedStepManager(StepManager(repository=repository, advance_on_valid=True))

    await asyncio.gather(*(manager.initialize_steps(f"session-{i}") for i in range(3)))

    # concurrent submissions for the same session run one after another
    results = await asyncio.gather(
        manager.validate_step("session-0", "cart", {"hasItems": True, "totalAmount": 10}),
        manager.validate_step("session-0", "shipping", {"address": "1 Main St"}),
    )
    for result in results:
        print(result.model_dump())

    progress = await manager.get_step_progress("session-0")
    print(f"session-0 is on {progress.current_step}")


if __name__ == "__main__":
    asyncio.run(main())
