"""Simple example walking one session through the checkout steps."""

import asyncio
import uuid

from checkoutflow import StepManager, get_repository
from checkoutflow.errors import CheckoutStepError


async def main():
    """Basic checkout progression example."""
    manager = StepManager(repository=get_repository(), advance_on_valid=False)
    session_id = str(uuid.uuid4())

    await manager.initialize_steps(session_id)
    print(f"📋 Session: {session_id}")

    result = await manager.validate_step(
        session_id, "cart", {"hasItems": True, "totalAmount": 42.5}
    )
    print(f"🛒 Cart valid: {result.is_valid}")

    try:
        await manager.move_to_next_step(session_id)
    except CheckoutStepError as e:
        # validation alone does not complete a step
        print(f"⛔ {e}")

    cart = await manager.repository.find_first(session_id, "cart")
    await manager.complete_step(cart.id)
    progress = await manager.jump_to_step(session_id, "shipping")
    await manager.track_navigation(session_id, "shipping", "jump")

    print(f"➡️  Current step: {progress.current_step}")
    print(f"✅ Completed: {progress.completed_steps}")

    analytics = await manager.get_step_analytics(session_id)
    for name, metrics in analytics.items():
        print(f"   {name}: {metrics.model_dump()}")


if __name__ == "__main__":
    asyncio.run(main())
