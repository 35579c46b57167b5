"""
Inventory Policy.

Runtime switches for the stock kernel, with defaults matching the behavior
described for the manufacturing platform.  Values are normally loaded by
``stock_config.load_policy()``; the kernel only consumes the resulting
object and never reads files itself.
"""

from dataclasses import asdict, dataclass
from typing import Self

from stock_kernel.logging_config import get_logger

logger = get_logger("domain.policy")


VALID_VALUATION_METHODS = {"weighted_average", "last_price", "standard_cost"}


@dataclass(frozen=True)
class InventoryPolicy:
    """
    Configuration for costing, availability and procurement behavior.

        policy = InventoryPolicy(
            raw_valuation_method="last_price",
            offset_open_purchase_supply=False,
        )
    """

    # Costing (per SKU type)
    raw_valuation_method: str = "weighted_average"
    finished_valuation_method: str = "weighted_average"

    # Availability
    apply_scrap_allowance: bool = False
    # Availability only; start_production builds the quantity it is given.
    consume_finished_stock_first: bool = False
    max_bom_depth: int = 32

    # Procurement
    offset_open_purchase_supply: bool = True
    merge_into_open_drafts: bool = False
    purchase_currency: str = "INR"

    def __post_init__(self):
        for name in ("raw_valuation_method", "finished_valuation_method"):
            value = getattr(self, name)
            if value not in VALID_VALUATION_METHODS:
                raise ValueError(
                    f"{name} must be one of {sorted(VALID_VALUATION_METHODS)}, "
                    f"got '{value}'"
                )
        if self.max_bom_depth <= 0:
            raise ValueError("max_bom_depth must be positive")
        if len(self.purchase_currency) != 3:
            raise ValueError(
                f"purchase_currency must be an ISO 4217 code, got '{self.purchase_currency}'"
            )

        logger.debug("inventory_policy_initialized", extra=asdict(self))

    @classmethod
    def with_defaults(cls) -> Self:
        """Create a policy with the platform defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create a policy from a mapping (e.g., a parsed YAML file)."""
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown inventory policy keys: {sorted(unknown)}")
        logger.info(
            "inventory_policy_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    def valuation_method_for(self, sku_type: str) -> str:
        """Valuation method governing a SKU of the given type."""
        if sku_type == "RAW":
            return self.raw_valuation_method
        return self.finished_valuation_method
