"""Static checkout step catalog shared by every session."""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

FormatName = Literal["credit_card", "expiry", "cvv"]


class StepRule(BaseModel):
    """Validation rule for a single submitted field."""

    model_config = ConfigDict(frozen=True)

    required: bool = False
    format: Optional[FormatName] = None
    min: Optional[float] = None


class StepDefinition(BaseModel):
    """Configuration of one checkout step."""

    model_config = ConfigDict(frozen=True)

    name: str
    order: int = Field(ge=1)
    required: bool = True
    can_skip: bool = False
    validation_rules: Dict[str, StepRule] = Field(default_factory=dict)
    dependencies: Tuple[str, ...] = ()
    error_messages: Dict[str, str] = Field(default_factory=dict)
    display_name: Optional[str] = None
    description: Optional[str] = None

    @property
    def title(self) -> str:
        return self.display_name or self.name


class StepCatalog:
    """Read-only lookup of step definitions keyed by name.

    Definitions are iterated in ``order``. The catalog refuses duplicate names
    and orders that do not form the sequence ``1..n``.
    """

    def __init__(self, definitions: Iterable[StepDefinition]) -> None:
        ordered = sorted(definitions, key=lambda d: d.order)
        names = [d.name for d in ordered]
        if len(set(names)) != len(names):
            raise ValueError("Duplicate step names in catalog")
        if [d.order for d in ordered] != list(range(1, len(ordered) + 1)):
            raise ValueError("Step orders must be exactly 1..n")
        unknown = {
            dep for d in ordered for dep in d.dependencies if dep not in names
        }
        if unknown:
            raise ValueError(f"Unknown step dependencies: {sorted(unknown)}")
        self._definitions = MappingProxyType({d.name: d for d in ordered})

    def get(self, name: str) -> Optional[StepDefinition]:
        return self._definitions.get(name)

    def __getitem__(self, name: str) -> StepDefinition:
        return self._definitions[name]

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[StepDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def names(self) -> List[str]:
        return list(self._definitions)

    def first(self) -> StepDefinition:
        return next(iter(self._definitions.values()))


DEFAULT_CATALOG = StepCatalog(
    [
        StepDefinition(
            name="cart",
            order=1,
            required=True,
            validation_rules={
                "hasItems": StepRule(),
                "totalAmount": StepRule(),
            },
            error_messages={
                "hasItems": "Cart must contain at least one item",
                "totalAmount": "Cart total must be greater than zero",
            },
            dependencies=(),
            display_name="Cart Review",
            description="Review your cart items and quantities",
        ),
        StepDefinition(
            name="shipping",
            order=2,
            required=True,
            validation_rules={
                "address": StepRule(required=True),
                "shippingMethod": StepRule(required=True),
            },
            error_messages={
                "address": "Shipping address is required",
                "shippingMethod": "Please select a shipping method",
            },
            dependencies=("cart",),
            display_name="Shipping Address",
            description="Enter your shipping address",
        ),
        StepDefinition(
            name="billing",
            order=3,
            required=True,
            validation_rules={
                "address": StepRule(required=True),
                "paymentMethod": StepRule(required=True),
            },
            error_messages={
                "address": "Billing address is required",
                "paymentMethod": "Please select a payment method",
            },
            dependencies=("shipping",),
            display_name="Billing Address",
            description="Enter your billing address",
        ),
        StepDefinition(
            name="payment",
            order=4,
            required=True,
            validation_rules={
                "cardNumber": StepRule(required=True, format="credit_card"),
                "expiryDate": StepRule(required=True, format="expiry"),
                "cvv": StepRule(required=True, format="cvv"),
            },
            error_messages={
                "cardNumber": "Valid card number is required",
                "expiryDate": "Valid expiry date is required",
                "cvv": "Valid CVV is required",
            },
            dependencies=("billing",),
            display_name="Payment Method",
            description="Enter your payment information",
        ),
        StepDefinition(
            name="review",
            order=5,
            required=True,
            validation_rules={
                "termsAccepted": StepRule(required=True),
                "privacyAccepted": StepRule(required=True),
            },
            error_messages={
                "termsAccepted": "You must accept the terms and conditions",
                "privacyAccepted": "You must accept the privacy policy",
            },
            dependencies=("payment",),
            display_name="Order Review",
            description="Review your order details before confirmation",
        ),
        StepDefinition(
            name="confirmation",
            order=6,
            required=False,
            can_skip=True,
            dependencies=("review",),
            display_name="Order Confirmation",
            description="Your order has been confirmed",
        ),
    ]
)


def _strict_cart(definition: StepDefinition) -> StepDefinition:
    return definition.model_copy(
        update={
            "validation_rules": {
                **definition.validation_rules,
                "hasItems": StepRule(required=True),
                "totalAmount": StepRule(min=0.01),
            }
        }
    )


# Same steps as DEFAULT_CATALOG, but the cart must be non-empty with a positive total.
STRICT_CATALOG = StepCatalog(
    [_strict_cart(d) if d.name == "cart" else d for d in DEFAULT_CATALOG]
)

CATALOGS: Dict[str, StepCatalog] = {
    "default": DEFAULT_CATALOG,
    "strict": STRICT_CATALOG,
}
