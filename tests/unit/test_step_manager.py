"""Step progression, validation, tracking and analytics tests."""

from datetime import timedelta

import pytest

from checkoutflow import StepManager
from checkoutflow.catalog import STRICT_CATALOG
from checkoutflow.contracts import StepInstance, utcnow
from checkoutflow.errors import (
    AnalyticsFailure,
    InitializationFailure,
    NoNextStep,
    NoPreviousStep,
    ProgressFetchFailure,
    ProgressionBlocked,
    StepConfigNotFound,
    StepNotFound,
    TargetNotFound,
    TargetUnavailable,
)
from checkoutflow.persistence import InMemoryStepRepository

VALID_PAYMENT = {"cardNumber": "4111111111111111", "expiryDate": "12/25", "cvv": "123"}


class FailingRepository(InMemoryStepRepository):
    """Repository whose every operation raises."""

    async def create(self, instance):
        raise RuntimeError("DB Error")

    async def find_many(self, session_id):
        raise RuntimeError("DB Error")

    async def find_first(self, session_id, step_name):
        raise RuntimeError("DB Error")

    async def update(self, instance_id, data):
        raise RuntimeError("DB Error")


@pytest.fixture
def repo():
    return InMemoryStepRepository()


@pytest.fixture
def manager(repo):
    return StepManager(repository=repo, advance_on_valid=False)


async def _active(repo, session_id):
    return [s.step_name for s in await repo.find_many(session_id) if s.is_active]


async def _complete(manager, session_id, step_name):
    step = await manager.repository.find_first(session_id, step_name)
    await manager.complete_step(step.id)


@pytest.mark.asyncio
async def test_initialize_creates_six_steps_with_cart_active(manager, repo):
    created = await manager.initialize_steps("s1")

    assert len(created) == 6
    steps = await repo.find_many("s1")
    assert [s.order for s in steps] == [1, 2, 3, 4, 5, 6]
    assert [s.step_name for s in steps if s.is_active] == ["cart"]
    assert steps[0].started_at is not None
    assert all(s.started_at is None for s in steps[1:])
    assert not any(s.is_completed for s in steps)


@pytest.mark.asyncio
async def test_initialize_twice_keeps_existing_steps(manager, repo):
    first = await manager.initialize_steps("s1")
    await _complete(manager, "s1", "cart")
    await manager.jump_to_step("s1", "shipping")

    second = await manager.initialize_steps("s1")

    steps = await repo.find_many("s1")
    assert len(steps) == 6
    assert [s.id for s in second] == [s.id for s in first]
    assert len([s for s in steps if s.is_active]) == 1
    assert [s.step_name for s in steps if s.is_completed] == ["cart"]


@pytest.mark.asyncio
async def test_initialize_wraps_persistence_errors(caplog):
    manager = StepManager(repository=FailingRepository(), advance_on_valid=False)

    with pytest.raises(InitializationFailure, match="Failed to initialize checkout steps"):
        await manager.initialize_steps("s1")
    assert "Error initializing checkout steps" in caplog.text


@pytest.mark.asyncio
async def test_progress_for_unknown_session_is_not_started(manager):
    progress = await manager.get_step_progress("missing")

    assert progress.current_step == "cart"
    assert progress.completed_steps == []
    assert progress.available_steps == []
    assert progress.next_step is None
    assert progress.previous_step is None
    assert progress.can_proceed is False
    assert progress.errors == {}


@pytest.mark.asyncio
async def test_progress_after_initialize(manager):
    await manager.initialize_steps("s1")
    progress = await manager.get_step_progress("s1")

    assert progress.current_step == "cart"
    assert progress.completed_steps == []
    assert progress.available_steps == ["cart"]
    assert progress.next_step == "shipping"
    assert progress.previous_step is None
    assert progress.can_proceed is False


@pytest.mark.asyncio
async def test_progress_wraps_persistence_errors(caplog):
    manager = StepManager(repository=FailingRepository(), advance_on_valid=False)

    with pytest.raises(ProgressFetchFailure, match="Failed to get step progress"):
        await manager.get_step_progress("s1")
    assert "Error getting step progress" in caplog.text


@pytest.mark.asyncio
async def test_progress_falls_back_to_cart_without_active_step(manager, repo):
    await manager.initialize_steps("s1")
    cart = await repo.find_first("s1", "cart")
    await manager.deactivate_step(cart.id)

    progress = await manager.get_step_progress("s1")
    assert progress.current_step == "cart"
    assert progress.next_step == "cart"
    assert progress.previous_step is None
    assert progress.can_proceed is False


@pytest.mark.asyncio
async def test_move_to_next_step_blocked_when_incomplete(manager):
    await manager.initialize_steps("s1")

    with pytest.raises(
        ProgressionBlocked, match="Cannot proceed to next step - validation failed"
    ):
        await manager.move_to_next_step("s1")


@pytest.mark.asyncio
async def test_validation_alone_does_not_complete(manager, repo):
    await manager.initialize_steps("s1")

    result = await manager.validate_step("s1", "cart", {"hasItems": True, "totalAmount": 50})
    assert result.is_valid is True
    assert result.errors == {}

    cart = await repo.find_first("s1", "cart")
    assert cart.is_completed is False
    assert cart.is_active is True
    with pytest.raises(ProgressionBlocked):
        await manager.move_to_next_step("s1")


@pytest.mark.asyncio
async def test_move_to_next_step_after_completion(manager, repo):
    await manager.initialize_steps("s1")
    await _complete(manager, "s1", "cart")
    cart = await repo.find_first("s1", "cart")
    await manager.activate_step(cart.id)

    progress = await manager.move_to_next_step("s1")

    assert progress.current_step == "shipping"
    assert progress.completed_steps == ["cart"]
    assert progress.previous_step == "cart"
    assert "shipping" in progress.available_steps
    assert await _active(repo, "s1") == ["shipping"]


@pytest.mark.asyncio
async def test_no_next_step_at_confirmation(manager, repo):
    await manager.initialize_steps("s1")
    confirmation = await repo.find_first("s1", "confirmation")
    cart = await repo.find_first("s1", "cart")
    await manager.deactivate_step(cart.id)
    await manager.activate_step(confirmation.id)

    with pytest.raises(NoNextStep, match="No next step available"):
        await manager.move_to_next_step("s1")


@pytest.mark.asyncio
async def test_move_to_previous_step(manager, repo):
    await manager.initialize_steps("s1")
    await _complete(manager, "s1", "cart")
    await manager.jump_to_step("s1", "shipping")

    progress = await manager.move_to_previous_step("s1")

    assert progress.current_step == "cart"
    cart = await repo.find_first("s1", "cart")
    assert cart.is_completed is True
    assert cart.is_active is True
    assert await _active(repo, "s1") == ["cart"]


@pytest.mark.asyncio
async def test_move_to_previous_step_resets_timer(manager, repo):
    await manager.initialize_steps("s1")
    cart = await repo.find_first("s1", "cart")
    old_start = utcnow() - timedelta(hours=1)
    await repo.update(cart.id, {"started_at": old_start, "is_active": False})
    shipping = await repo.find_first("s1", "shipping")
    await repo.update(shipping.id, {"is_active": True})

    await manager.move_to_previous_step("s1")

    cart = await repo.find_first("s1", "cart")
    assert cart.started_at > old_start


@pytest.mark.asyncio
async def test_no_previous_step_at_cart(manager):
    await manager.initialize_steps("s1")

    with pytest.raises(NoPreviousStep, match="No previous step available"):
        await manager.move_to_previous_step("s1")


@pytest.mark.asyncio
async def test_jump_to_unavailable_step(manager):
    await manager.initialize_steps("s1")

    with pytest.raises(TargetUnavailable, match="Target step is not available"):
        await manager.jump_to_step("s1", "billing")
    with pytest.raises(TargetUnavailable):
        await manager.jump_to_step("s1", "shipping")


@pytest.mark.asyncio
async def test_jump_to_unknown_step(manager):
    await manager.initialize_steps("s1")

    with pytest.raises(TargetNotFound, match="Target step not found"):
        await manager.jump_to_step("s1", "nonexistent")
    with pytest.raises(TargetNotFound):
        await manager.jump_to_step("empty-session", "cart")


@pytest.mark.asyncio
async def test_jump_keeps_single_active_step(manager, repo):
    await manager.initialize_steps("s1")
    await _complete(manager, "s1", "cart")
    await _complete(manager, "s1", "shipping")

    progress = await manager.jump_to_step("s1", "billing")
    assert progress.current_step == "billing"
    assert await _active(repo, "s1") == ["billing"]

    progress = await manager.jump_to_step("s1", "cart")
    assert progress.current_step == "cart"
    assert await _active(repo, "s1") == ["cart"]


@pytest.mark.asyncio
async def test_complete_step_accumulates_time_and_attempts(manager, repo):
    await manager.initialize_steps("s1")
    cart = await repo.find_first("s1", "cart")
    await repo.update(
        cart.id,
        {"started_at": utcnow() - timedelta(seconds=30), "time_spent": 10, "attempts": 2},
    )

    completed = await manager.complete_step(cart.id)

    assert completed.is_completed is True
    assert completed.is_active is False
    assert completed.completed_at is not None
    assert completed.last_attempt_at is not None
    assert completed.attempts == 3
    assert 40 <= completed.time_spent <= 42


@pytest.mark.asyncio
async def test_complete_step_without_start_adds_no_time(manager, repo):
    await manager.initialize_steps("s1")
    billing = await repo.find_first("s1", "billing")

    completed = await manager.complete_step(billing.id)
    assert completed.time_spent == 0


@pytest.mark.asyncio
async def test_complete_unknown_step(manager):
    with pytest.raises(StepNotFound, match="Step not found"):
        await manager.complete_step("nope")


@pytest.mark.asyncio
async def test_validate_shipping_success_records_attempt(manager, repo):
    await manager.initialize_steps("s1")
    data = {"address": "123 Main St", "shippingMethod": "standard", "email": "test@example.com"}

    result = await manager.validate_step("s1", "shipping", data)

    assert result.is_valid is True
    assert result.errors == {}
    shipping = await repo.find_first("s1", "shipping")
    assert shipping.attempts == 1
    assert shipping.step_data == data
    assert shipping.validation_errors == {}
    assert shipping.last_attempt_at is not None
    assert shipping.is_active is False


@pytest.mark.asyncio
async def test_validate_reports_required_fields(manager, repo):
    await manager.initialize_steps("s1")

    result = await manager.validate_step("s1", "shipping", {"address": "   "})

    assert result.is_valid is False
    assert result.errors == {
        "address": ["Shipping address is required"],
        "shippingMethod": ["Please select a shipping method"],
    }
    shipping = await repo.find_first("s1", "shipping")
    assert shipping.validation_errors == result.errors


@pytest.mark.asyncio
async def test_validate_payment_formats(manager):
    await manager.initialize_steps("s1")

    result = await manager.validate_step("s1", "payment", VALID_PAYMENT)
    assert result.is_valid is True

    result = await manager.validate_step(
        "s1",
        "payment",
        {"cardNumber": "4111111111111112", "expiryDate": "13/25", "cvv": "12"},
    )
    assert result.is_valid is False
    assert result.errors["cardNumber"] == ["Invalid card number"]
    assert result.errors["expiryDate"] == ["Invalid expiry date format (MM/YY)"]
    assert result.errors["cvv"] == ["Invalid CVV format"]


@pytest.mark.asyncio
async def test_validate_email_on_any_step(manager):
    await manager.initialize_steps("s1")

    result = await manager.validate_step(
        "s1", "cart", {"hasItems": True, "totalAmount": 10, "email": "not-an-email"}
    )
    assert result.is_valid is False
    assert result.errors == {"email": ["Invalid email format"]}


@pytest.mark.asyncio
async def test_validate_cart_minimum_and_review_terms(repo):
    manager = StepManager(repository=repo, catalog=STRICT_CATALOG, advance_on_valid=False)
    await manager.initialize_steps("s1")

    result = await manager.validate_step("s1", "cart", {"hasItems": True, "totalAmount": 0})
    assert result.errors == {"totalAmount": ["Cart total must be greater than zero"]}

    result = await manager.validate_step(
        "s1", "review", {"termsAccepted": False, "privacyAccepted": True}
    )
    assert result.errors == {"termsAccepted": ["You must accept the terms and conditions"]}


@pytest.mark.asyncio
async def test_empty_cart_passes_default_rules(manager):
    await manager.initialize_steps("s1")

    result = await manager.validate_step("s1", "cart", {})
    assert result.is_valid is True
    assert result.errors == {}

@pytest.mark.asyncio
async def test_strict_catalog_requires_cart_items(repo):
    manager = StepManager(repository=repo, catalog=STRICT_CATALOG, advance_on_valid=False)
    await manager.initialize_steps("s1")

    result = await manager.validate_step("s1", "cart", {})
    assert result.errors == {"hasItems": ["Cart must contain at least one item"]}


@pytest.mark.asyncio
async def test_validate_missing_step(manager):
    with pytest.raises(StepNotFound, match="Step not found"):
        await manager.validate_step("s1", "cart", {})


@pytest.mark.asyncio
async def test_validate_step_without_configuration(manager, repo):
    await repo.create(StepInstance(session_id="s1", step_name="giftwrap", order=7))

    with pytest.raises(StepConfigNotFound, match="Step configuration not found"):
        await manager.validate_step("s1", "giftwrap", {})


@pytest.mark.asyncio
async def test_progress_reports_current_step_errors(manager):
    await manager.initialize_steps("s1")
    await manager.validate_step("s1", "cart", {"email": "not-an-email"})

    progress = await manager.get_step_progress("s1")
    assert progress.errors == {"email": ["Invalid email format"]}


@pytest.mark.asyncio
async def test_advance_on_valid_completes_active_step(repo):
    manager = StepManager(repository=repo, advance_on_valid=True)
    await manager.initialize_steps("s1")

    result = await manager.validate_step("s1", "cart", {"hasItems": True, "totalAmount": 5})
    assert result.is_valid

    progress = await manager.get_step_progress("s1")
    assert progress.current_step == "shipping"
    assert progress.completed_steps == ["cart"]

    # an inactive step is validated but not completed
    await manager.validate_step("s1", "billing", {"address": "x", "paymentMethod": "card"})
    billing = await repo.find_first("s1", "billing")
    assert billing.is_completed is False


@pytest.mark.asyncio
async def test_track_navigation_appends(manager, repo):
    await manager.initialize_steps("s1")

    await manager.track_navigation("s1", "shipping", "next")
    await manager.track_navigation("s1", "shipping", "back")

    shipping = await repo.find_first("s1", "shipping")
    assert [e.action for e in shipping.navigation_history] == ["next", "back"]
    entry = shipping.navigation_history[0]
    assert entry.step_name == "shipping"
    assert entry.session_id == "s1"
    assert entry.timestamp is not None


@pytest.mark.asyncio
async def test_track_navigation_never_raises(manager, caplog):
    await manager.track_navigation("s1", "nonexistent", "next")

    failing = StepManager(repository=FailingRepository(), advance_on_valid=False)
    await failing.track_navigation("s1", "cart", "next")
    assert "Error tracking navigation" in caplog.text


@pytest.mark.asyncio
async def test_step_analytics(manager, repo):
    await manager.initialize_steps("s1")
    cart = await repo.find_first("s1", "cart")
    shipping = await repo.find_first("s1", "shipping")
    await repo.update(cart.id, {"time_spent": 30, "attempts": 1, "is_completed": True})
    await repo.update(shipping.id, {"time_spent": 60, "attempts": 2})

    analytics = await manager.get_step_analytics("s1")

    assert set(analytics) == {"cart", "shipping", "billing", "payment", "review", "confirmation"}
    assert analytics["cart"].completion_rate == 100
    assert analytics["cart"].abandonment_rate == 0
    assert analytics["cart"].average_time == 30
    assert analytics["shipping"].completion_rate == 0
    assert analytics["shipping"].abandonment_rate == 100
    assert analytics["shipping"].average_time == 30
    assert analytics["billing"].abandonment_rate == 0
    assert analytics["billing"].average_time == 0


@pytest.mark.asyncio
async def test_completed_step_never_abandoned(manager, repo):
    await manager.initialize_steps("s1")
    cart = await repo.find_first("s1", "cart")
    await repo.update(cart.id, {"is_completed": True, "attempts": 0})

    analytics = await manager.get_step_analytics("s1")
    assert analytics["cart"].completion_rate == 100
    assert analytics["cart"].abandonment_rate == 0


@pytest.mark.asyncio
async def test_analytics_skips_unknown_steps(manager, repo):
    await repo.create(StepInstance(session_id="s1", step_name="giftwrap", order=7, attempts=3))

    assert await manager.get_step_analytics("s1") == {}


@pytest.mark.asyncio
async def test_analytics_wraps_persistence_errors():
    manager = StepManager(repository=FailingRepository(), advance_on_valid=False)

    with pytest.raises(AnalyticsFailure, match="Failed to get step analytics"):
        await manager.get_step_analytics("s1")
